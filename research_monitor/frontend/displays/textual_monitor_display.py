# -*- coding: utf-8 -*-
"""
Textual Terminal Display for research runs.

ResearchMonitorApp hosts the query input, the status ribbon, the stage graph,
the live log and the streamed report. TextualView adapts the app to the
ViewPort interface the coordinator writes to.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional, Sequence

from rich.text import Text
from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, VerticalScroll
from textual.widgets import Button, Footer, Input, Markdown, RichLog, Static

from research_monitor.config import MonitorConfig
from research_monitor.connection import ConnectionManager, Connector
from research_monitor.coordinator import ExecutionCoordinator
from research_monitor.events import EventRecorder
from research_monitor.graph_state import Layout, Stage
from research_monitor.logger_config import logger
from research_monitor.scheduler import AsyncioScheduler, Scheduler
from research_monitor.view import LogLevel, ViewPort

from .textual_widgets import NoticeModal, RunStatusRibbon, StageGraph

if TYPE_CHECKING:
    from research_monitor.report import RenderedReport

STREAMING_SUFFIX = "\n\n*✍️ Generating...*"

LOG_STYLES = {
    LogLevel.INFO: "cyan",
    LogLevel.SUCCESS: "green",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "bold red",
}


class TextualView(ViewPort):
    """ViewPort backed by the widgets of a ResearchMonitorApp."""

    def __init__(self, app: "ResearchMonitorApp") -> None:
        self.app = app

    def set_submit_enabled(self, enabled: bool) -> None:
        self.app.query_one("#start_button", Button).disabled = not enabled

    def clear_input(self) -> None:
        self.app.query_one("#query_input", Input).value = ""

    def append_log(self, message: str, level: str = LogLevel.INFO) -> None:
        line = Text(f"[{datetime.now().strftime('%H:%M:%S')}] ", style="dim")
        line.append(message, style=LOG_STYLES.get(level, ""))
        self.app.query_one("#live_log", RichLog).write(line)

    def append_stream_chunk(self, stage_label: str, chunk: str) -> None:
        line = Text(f"{stage_label}: ", style="magenta")
        line.append(chunk)
        self.app.query_one("#live_log", RichLog).write(line)

    def set_connection_status(self, connected: bool) -> None:
        self.app.query_one(RunStatusRibbon).set_connected(connected)

    def set_elapsed(self, text: str) -> None:
        self.app.query_one(RunStatusRibbon).set_elapsed(text)

    def set_progress(self, completed: int, total: int) -> None:
        self.app.query_one(RunStatusRibbon).set_progress(completed, total)

    def show_report(self, visible: bool, placeholder: Optional[str] = None) -> None:
        self.app.query_one("#report_container").display = visible
        markdown = self.app.query_one("#report_markdown", Markdown)
        markdown.update(placeholder or "")

    def set_report_content(self, report: "RenderedReport") -> None:
        source = report.source + STREAMING_SUFFIX if report.streaming else report.source
        self.app.query_one("#report_markdown", Markdown).update(source)
        self.app.query_one("#report_container", VerticalScroll).scroll_end(animate=False)

    def set_graph_layout(self, layout: Layout, stages: Sequence[Stage]) -> None:
        self.app.query_one(StageGraph).set_layout(layout, stages)

    def add_stage(self, stage: Stage) -> None:
        self.app.query_one(StageGraph).add_stage(stage)

    def set_stage_status(self, stage: Stage) -> None:
        self.app.query_one(StageGraph).update_stage(stage)

    def set_branch_count(self, count: int) -> None:
        self.app.query_one(StageGraph).set_branch_count(count)

    def notify_validation_error(self, message: str) -> None:
        self.app.push_screen(NoticeModal(message))


class ResearchMonitorApp(App):
    """Live view of research runs on a research server."""

    TITLE = "Research Monitor"

    CSS = """
    #query_bar {
        height: auto;
        padding: 0 1;
    }

    #query_input {
        width: 1fr;
    }

    #start_button {
        width: auto;
        margin-left: 1;
    }

    #body {
        height: 1fr;
    }

    #live_log {
        width: 1fr;
        border: round $primary-darken-2;
    }

    #report_container {
        width: 2fr;
        border: round $success-darken-1;
        padding: 0 1;
    }

    #report_title {
        text-style: bold;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
        Binding("ctrl+l", "clear_log", "Clear log"),
    ]

    def __init__(
        self,
        config: MonitorConfig,
        *,
        connector: Optional[Connector] = None,
        scheduler: Optional[Scheduler] = None,
        recorder: Optional[EventRecorder] = None,
    ) -> None:
        super().__init__()
        self.config = config
        self.view = TextualView(self)
        scheduler = scheduler or AsyncioScheduler()
        self.connection = ConnectionManager(
            config.server.websocket_url,
            self.view,
            scheduler,
            active_delay=config.reconnect.active_delay,
            idle_delay=config.reconnect.idle_delay,
            max_reconnect_attempts=config.reconnect.max_attempts,
            max_consecutive_malformed=config.reconnect.max_consecutive_malformed,
            connector=connector,
            recorder=recorder,
        )
        self.coordinator = ExecutionCoordinator(
            self.connection,
            self.view,
            config.pipeline,
            scheduler=scheduler,
        )

    def compose(self) -> ComposeResult:
        with Horizontal(id="query_bar"):
            yield Input(placeholder="Enter a research topic...", id="query_input")
            yield Button("Start", id="start_button", variant="primary")
        yield RunStatusRibbon()
        yield StageGraph(id="stage_graph")
        with Horizontal(id="body"):
            yield RichLog(id="live_log", wrap=True, markup=False)
            with VerticalScroll(id="report_container"):
                yield Static("Report", id="report_title")
                yield Markdown("", id="report_markdown")
        yield Footer()

    def on_mount(self) -> None:
        graph = self.coordinator.graph
        self.view.set_graph_layout(graph.layout, graph.stages())
        self.view.set_progress(*graph.progress_summary())
        self.query_one("#report_container").display = False
        self.query_one("#query_input", Input).focus()
        logger.info(f"[TUI] Connecting to {self.connection.url}")
        self.connection.connect()

    async def on_unmount(self) -> None:
        await self.connection.close()

    @on(Input.Submitted, "#query_input")
    async def _on_query_submitted(self, event: Input.Submitted) -> None:
        if self.query_one("#start_button", Button).disabled:
            return
        await self.coordinator.submit(event.value)

    @on(Button.Pressed, "#start_button")
    async def _on_start_pressed(self) -> None:
        await self.coordinator.submit(self.query_one("#query_input", Input).value)

    def action_clear_log(self) -> None:
        self.query_one("#live_log", RichLog).clear()
