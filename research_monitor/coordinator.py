# -*- coding: utf-8 -*-
"""
Execution coordinator for research runs.

The coordinator is the only writer of run state. Every inbound RunEvent goes
through handle_event(), which dispatches on the event kind to the graph state
and the report accumulator and pushes the results to the view port. It also
turns user submissions into research requests on the connection.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from research_monitor.config import PipelineConfig
from research_monitor.connection import ConnectionManager
from research_monitor.events import EventKind, RunEvent
from research_monitor.graph_state import GraphState, StageStatus
from research_monitor.logger_config import logger
from research_monitor.report import MarkdownRenderer, ReportAccumulator
from research_monitor.scheduler import AsyncioScheduler, ScheduledHandle, Scheduler
from research_monitor.view import LogLevel, ViewPort

EMPTY_QUERY_MESSAGE = "Please enter a topic to research"
REPORT_PLACEHOLDER = "📝 Generating report..."


class RunOutcome:
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RunSession:
    """Run-level state: idle, running (is_active) or completed (is_completed)."""

    started_at: Optional[float] = None
    is_active: bool = False
    is_completed: bool = False

    def start(self, now: float) -> None:
        self.started_at = now
        self.is_active = True
        self.is_completed = False

    def complete(self) -> None:
        self.is_active = False
        self.is_completed = True

    def abort(self) -> None:
        self.is_active = False


def format_elapsed(seconds: float) -> str:
    """Format elapsed seconds as mm:ss."""
    total = max(0, math.floor(seconds))
    minutes, secs = divmod(total, 60)
    return f"{minutes:02d}:{secs:02d}"


class ExecutionCoordinator:
    """Dispatches run events and owns the session, graph and report state."""

    def __init__(
        self,
        connection: ConnectionManager,
        view: Optional[ViewPort] = None,
        pipeline: Optional[PipelineConfig] = None,
        *,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.monotonic,
        renderer: Optional[MarkdownRenderer] = None,
        on_run_end: Optional[Callable[[str], None]] = None,
    ):
        self.pipeline = pipeline or PipelineConfig()
        self.connection = connection
        self.view = view or ViewPort()
        self.scheduler = scheduler or AsyncioScheduler()
        self.clock = clock
        self.on_run_end = on_run_end

        self.session = RunSession()
        self.graph = GraphState(
            self.pipeline.stages,
            self.view,
            branch_prefix=self.pipeline.branch_prefix,
            branch_label=self.pipeline.branch_label,
        )
        self.report = ReportAccumulator(self.pipeline.report_stage, renderer)
        self._tick_handle: Optional[ScheduledHandle] = None

        self._handlers: Dict[str, Callable[[RunEvent], None]] = {
            EventKind.RUN_START: self._on_run_start,
            EventKind.STAGE_START: self._on_stage_start,
            EventKind.STAGE_COMPLETE: self._on_stage_complete,
            EventKind.STREAM_CHUNK: self._on_stream_chunk,
            EventKind.STAGE_ERROR: self._on_stage_error,
            EventKind.RUN_COMPLETE: self._on_run_complete,
        }
        connection.on_event(self.handle_event)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def handle_event(self, event: RunEvent) -> None:
        """Apply one event. Events must be passed in delivery order."""
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.warning(f"[Coordinator] No handler for event kind {event.kind!r}")
            return
        handler(event)

    async def submit(self, raw_query: str) -> bool:
        """Request a research run for ``raw_query``.

        Returns:
            True if the request was sent
        """
        query = (raw_query or "").strip()
        if not query:
            self.view.notify_validation_error(EMPTY_QUERY_MESSAGE)
            return False

        if not await self.connection.send({"type": "research", "query": query}):
            logger.warning("[Coordinator] Research request not sent")
            return False

        logger.info(f"[Coordinator] Research requested: {query}")
        self.view.clear_input()
        return True

    def stop(self) -> None:
        """Stop the elapsed-time tick, e.g. when the front end shuts down."""
        self._stop_tick()

    @property
    def elapsed_text(self) -> str:
        if self.session.started_at is None:
            return format_elapsed(0)
        return format_elapsed(self.clock() - self.session.started_at)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_run_start(self, event: RunEvent) -> None:
        self.session.start(self.clock())
        self._start_tick()
        self.view.set_submit_enabled(False)
        self.graph.reset()
        self.report.clear()
        self.view.show_report(False)
        self.view.set_elapsed(format_elapsed(0))
        self.connection.set_run_state(True, False)
        self._log("🚀 Research started")

    def _on_stage_start(self, event: RunEvent) -> None:
        stage_id = event.stage_id
        name = self.graph.display_name(stage_id)

        if self.graph.is_branch_stage(stage_id):
            self.graph.ensure_dynamic_stage(stage_id)
            self.graph.set_status(stage_id, StageStatus.ACTIVE)
            self._log(f"🔍 {name}: parallel search started")
        else:
            self.graph.set_status(stage_id, StageStatus.ACTIVE)
            self._log(f"📍 {name}: started")

        if stage_id == self.pipeline.report_stage and self.report.begin_stage(stage_id):
            self.view.show_report(True, REPORT_PLACEHOLDER)

        self.view.set_progress(*self.graph.progress_summary())

    def _on_stage_complete(self, event: RunEvent) -> None:
        stage_id = event.stage_id
        name = self.graph.display_name(stage_id)
        self.graph.set_status(stage_id, StageStatus.COMPLETED)

        if stage_id == self.pipeline.query_stage:
            queries = event.aux("search_queries") or []
            count = len(queries) if isinstance(queries, (list, tuple)) else 0
            self._log(f"✅ {name}: generated {count} queries", LogLevel.SUCCESS)
        elif stage_id == self.pipeline.merge_stage:
            self._log(f"✅ {name}: merged {self.graph.dynamic_count} search results", LogLevel.SUCCESS)
        elif self.graph.is_branch_stage(stage_id):
            self._log(f"✅ {name}: search complete", LogLevel.SUCCESS)
        else:
            self._log(f"✅ {name}: complete", LogLevel.SUCCESS)

        self.view.set_progress(*self.graph.progress_summary())

        if stage_id == self.pipeline.report_stage and self.report.finalize(stage_id):
            self.view.set_report_content(self.report.render())

    def _on_stream_chunk(self, event: RunEvent) -> None:
        if event.chunk is None:
            return
        if event.stage_id == self.pipeline.report_stage:
            if self.report.append_chunk(event.stage_id, event.chunk):
                self.view.set_report_content(self.report.render())
            else:
                logger.debug(f"[Coordinator] Report chunk outside active report stage: {event.chunk!r}")
        elif event.chunk.strip():
            self.view.append_stream_chunk(self.graph.display_name(event.stage_id), event.chunk)

    def _on_stage_error(self, event: RunEvent) -> None:
        stage_id = event.stage_id
        self.graph.set_status(stage_id, StageStatus.FAILED)
        self._log(f"❌ {self.graph.display_name(stage_id)}: {event.error_message or 'unknown error'}", LogLevel.ERROR)
        self._stop_tick()
        self.session.abort()
        self.connection.set_run_state(False, False)
        self.view.set_submit_enabled(True)
        logger.error(f"[Coordinator] Run failed at {stage_id}: {event.error_message}")
        self._notify_run_end(RunOutcome.FAILED)

    def _on_run_complete(self, event: RunEvent) -> None:
        self._stop_tick()
        self._update_elapsed()
        self.view.set_submit_enabled(True)
        self.session.complete()
        self.connection.set_run_state(False, True)
        self._log("🎉 Research complete", LogLevel.SUCCESS)
        self._notify_run_end(RunOutcome.COMPLETED)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log(self, message: str, level: str = LogLevel.INFO) -> None:
        logger.info(f"[Coordinator] {message}")
        self.view.append_log(message, level)

    def _start_tick(self) -> None:
        self._stop_tick()
        self._tick_handle = self.scheduler.schedule_every(self.pipeline.tick_period, self._update_elapsed)

    def _stop_tick(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _update_elapsed(self) -> None:
        if self.session.started_at is None:
            return
        self.view.set_elapsed(self.elapsed_text)

    def _notify_run_end(self, outcome: str) -> None:
        if self.on_run_end is not None:
            self.on_run_end(outcome)
