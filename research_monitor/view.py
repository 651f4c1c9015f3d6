# -*- coding: utf-8 -*-
"""
View port for the monitor core.

The core never looks up presentation elements itself. Everything it shows goes
through the named setters of a ViewPort, which the Textual UI, the console
front end and the test suite each implement. The base class is a no-op so a
front end only overrides what it displays.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional, Sequence

from rich.console import Console
from rich.markdown import Markdown
from rich.rule import Rule
from rich.text import Text

if TYPE_CHECKING:
    from research_monitor.graph_state import Layout, Stage
    from research_monitor.report import RenderedReport


class LogLevel:
    """Live-log entry levels."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class ViewPort:
    """Named setters the core uses to update the presentation layer."""

    def set_submit_enabled(self, enabled: bool) -> None:
        pass

    def clear_input(self) -> None:
        pass

    def append_log(self, message: str, level: str = LogLevel.INFO) -> None:
        pass

    def append_stream_chunk(self, stage_label: str, chunk: str) -> None:
        pass

    def set_connection_status(self, connected: bool) -> None:
        pass

    def set_elapsed(self, text: str) -> None:
        pass

    def set_progress(self, completed: int, total: int) -> None:
        pass

    def show_report(self, visible: bool, placeholder: Optional[str] = None) -> None:
        pass

    def set_report_content(self, report: "RenderedReport") -> None:
        pass

    def set_graph_layout(self, layout: "Layout", stages: Sequence["Stage"]) -> None:
        """Replace the whole graph container with ``stages`` in ``layout``."""

    def add_stage(self, stage: "Stage") -> None:
        pass

    def set_stage_status(self, stage: "Stage") -> None:
        pass

    def set_branch_count(self, count: int) -> None:
        pass

    def notify_validation_error(self, message: str) -> None:
        pass


class ConsoleView(ViewPort):
    """Line-oriented view that prints to a rich Console.

    Used by the ``watch`` and ``replay`` commands. Graph changes are shown as
    log lines; the report is printed once, when it is final.
    """

    LEVEL_STYLES = {
        LogLevel.INFO: "cyan",
        LogLevel.SUCCESS: "green",
        LogLevel.WARNING: "yellow",
        LogLevel.ERROR: "bold red",
    }

    def __init__(self, console: Optional[Console] = None, show_stream: bool = True):
        self.console = console or Console()
        self.show_stream = show_stream
        self.final_report: Optional[str] = None
        self._progress = (0, 0)

    def append_log(self, message: str, level: str = LogLevel.INFO) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        text = Text(f"[{stamp}] ", style="dim")
        text.append(message, style=self.LEVEL_STYLES.get(level, ""))
        self.console.print(text)

    def append_stream_chunk(self, stage_label: str, chunk: str) -> None:
        if not self.show_stream:
            return
        text = Text(f"{stage_label}: ", style="magenta")
        text.append(chunk.strip())
        self.console.print(text)

    def set_connection_status(self, connected: bool) -> None:
        label = "connected" if connected else "disconnected"
        self.console.print(Text(f"● {label}", style="green" if connected else "red"))

    def set_progress(self, completed: int, total: int) -> None:
        if (completed, total) != self._progress:
            self._progress = (completed, total)
            self.console.print(Text(f"progress {completed}/{total}", style="dim"))

    def set_report_content(self, report: "RenderedReport") -> None:
        if report.streaming:
            return
        self.final_report = report.source
        self.console.print(Rule("Report"))
        self.console.print(Markdown(report.source))
        self.console.print(Rule())

    def notify_validation_error(self, message: str) -> None:
        self.console.print(Text(message, style="bold red"))
