# -*- coding: utf-8 -*-
"""Shared fixtures for research_monitor tests."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from research_monitor.config import PipelineConfig
from research_monitor.graph_state import StageSpec
from research_monitor.scheduler import ScheduledHandle, Scheduler
from research_monitor.view import ViewPort


@pytest.fixture(autouse=True)
def _isolate_test_logs(monkeypatch, tmp_path):
    """Keep tests from writing log sessions into the working directory."""
    import research_monitor.logger_config as logger_config

    monkeypatch.setenv(logger_config.LOG_BASE_DIR_ENV, str(tmp_path / "rm_logs"))
    logger_config.reset_logging_session()
    yield
    logger_config.reset_logging_session()


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class _FakeHandle(ScheduledHandle):
    def __init__(self, due: float, action: Callable[[], None], period: Optional[float]) -> None:
        self.due = due
        self.action = action
        self.period = period
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class FakeScheduler(Scheduler):
    """Scheduler driven by advance(); also serves as the clock."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: List[_FakeHandle] = []

    def clock(self) -> float:
        return self.now

    def schedule_after(self, delay: float, action: Callable[[], None]) -> ScheduledHandle:
        handle = _FakeHandle(self.now + delay, action, None)
        self.handles.append(handle)
        return handle

    def schedule_every(self, period: float, action: Callable[[], None]) -> ScheduledHandle:
        handle = _FakeHandle(self.now + period, action, period)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[_FakeHandle]:
        return [h for h in self.handles if not h.cancelled]

    def pending_delays(self) -> List[float]:
        return [round(h.due - self.now, 6) for h in self.pending if h.period is None]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self.pending if h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due)
            self.now = handle.due
            if handle.period is None:
                handle.cancel()
            else:
                handle.due += handle.period
            handle.action()
        self.now = target


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


# ---------------------------------------------------------------------------
# View
# ---------------------------------------------------------------------------


@dataclass
class RecordingView(ViewPort):
    """ViewPort that records every call for assertions."""

    calls: List[Tuple[str, Tuple[Any, ...]]] = field(default_factory=list)
    logs: List[Tuple[str, str]] = field(default_factory=list)
    stream_lines: List[Tuple[str, str]] = field(default_factory=list)
    reports: List[Any] = field(default_factory=list)
    notices: List[str] = field(default_factory=list)
    submit_enabled: Optional[bool] = None
    input_cleared: int = 0
    connected: Optional[bool] = None
    elapsed: Optional[str] = None
    progress: Optional[Tuple[int, int]] = None
    report_visible: Optional[bool] = None
    branch_count: Optional[int] = None
    layouts: List[Any] = field(default_factory=list)
    stage_updates: Dict[str, Any] = field(default_factory=dict)
    added_stages: List[str] = field(default_factory=list)

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))

    def set_submit_enabled(self, enabled: bool) -> None:
        self._record("set_submit_enabled", enabled)
        self.submit_enabled = enabled

    def clear_input(self) -> None:
        self._record("clear_input")
        self.input_cleared += 1

    def append_log(self, message: str, level: str = "info") -> None:
        self._record("append_log", message, level)
        self.logs.append((level, message))

    def append_stream_chunk(self, stage_label: str, chunk: str) -> None:
        self._record("append_stream_chunk", stage_label, chunk)
        self.stream_lines.append((stage_label, chunk))

    def set_connection_status(self, connected: bool) -> None:
        self._record("set_connection_status", connected)
        self.connected = connected

    def set_elapsed(self, text: str) -> None:
        self._record("set_elapsed", text)
        self.elapsed = text

    def set_progress(self, completed: int, total: int) -> None:
        self._record("set_progress", completed, total)
        self.progress = (completed, total)

    def show_report(self, visible: bool, placeholder: Optional[str] = None) -> None:
        self._record("show_report", visible, placeholder)
        self.report_visible = visible

    def set_report_content(self, report: Any) -> None:
        self._record("set_report_content", report)
        self.reports.append(report)

    def set_graph_layout(self, layout: Any, stages: Sequence[Any]) -> None:
        self._record("set_graph_layout", layout, tuple(stages))
        self.layouts.append((layout, [s.id for s in stages]))

    def add_stage(self, stage: Any) -> None:
        self._record("add_stage", stage)
        self.added_stages.append(stage.id)

    def set_stage_status(self, stage: Any) -> None:
        self._record("set_stage_status", stage)
        self.stage_updates[stage.id] = stage

    def set_branch_count(self, count: int) -> None:
        self._record("set_branch_count", count)
        self.branch_count = count

    def notify_validation_error(self, message: str) -> None:
        self._record("notify_validation_error", message)
        self.notices.append(message)

    def logs_at(self, level: str) -> List[str]:
        return [message for lvl, message in self.logs if lvl == level]


@pytest.fixture
def view() -> RecordingView:
    return RecordingView()


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

_CLOSE = object()


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: List[str] = []
        self.closed = False
        self.fail_sends = False

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> Any:
        frame = await self.incoming.get()
        if frame is _CLOSE:
            raise StopAsyncIteration
        return frame

    async def send(self, data: str) -> None:
        if self.closed or self.fail_sends:
            raise ConnectionResetError("socket closed")
        self.sent.append(data)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.incoming.put_nowait(_CLOSE)

    def feed(self, message: Any) -> None:
        """Queue a frame; dicts are JSON-encoded."""
        self.incoming.put_nowait(json.dumps(message) if isinstance(message, dict) else message)

    def drop(self) -> None:
        """Simulate the server closing the connection."""
        self.closed = True
        self.incoming.put_nowait(_CLOSE)

    def sent_json(self) -> List[Dict[str, Any]]:
        return [json.loads(s) for s in self.sent]


class _FakeConnect:
    def __init__(self, connector: "FakeConnector", url: str) -> None:
        self._connector = connector
        self._url = url
        self._ws: Optional[FakeWebSocket] = None

    async def __aenter__(self) -> FakeWebSocket:
        if self._connector.refuse > 0:
            self._connector.refuse -= 1
            raise ConnectionRefusedError(f"refused: {self._url}")
        self._ws = FakeWebSocket()
        self._connector.sockets.append(self._ws)
        return self._ws

    async def __aexit__(self, *exc_info: Any) -> bool:
        if self._ws is not None:
            self._ws.closed = True
        return False


class FakeConnector:
    """Callable used in place of websockets.connect."""

    def __init__(self, refuse: int = 0) -> None:
        self.refuse = refuse
        self.urls: List[str] = []
        self.sockets: List[FakeWebSocket] = []

    def __call__(self, url: str) -> _FakeConnect:
        self.urls.append(url)
        return _FakeConnect(self, url)

    @property
    def current(self) -> FakeWebSocket:
        return self.sockets[-1]


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


async def settle(rounds: int = 10) -> None:
    """Let pending connection tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


@pytest.fixture
def pipeline() -> PipelineConfig:
    """Default five-stage research pipeline."""
    return PipelineConfig()


@pytest.fixture
def single_stage_pipeline() -> PipelineConfig:
    """One static stage named 'classify' and no report stage in the graph."""
    return PipelineConfig(stages=[StageSpec("classify", "Classify")], report_stage="report")
