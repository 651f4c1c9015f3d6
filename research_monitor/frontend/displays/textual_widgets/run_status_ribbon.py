# -*- coding: utf-8 -*-
"""
Run Status Ribbon Widget for the research monitor TUI.

Displays connection state, elapsed run time and stage progress.

Design:
```
┌─────────────────────────────────────────────────┐
│ ● Connected │ ⏱ 01:24 │ Progress 3/7 ━━━━░░░░░ │
└─────────────────────────────────────────────────┘
```
"""

from typing import Optional

from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.widget import Widget
from textual.widgets import Label, Static

PROGRESS_BAR_WIDTH = 10


def progress_bar(completed: int, total: int, width: int = PROGRESS_BAR_WIDTH) -> str:
    if total <= 0:
        return "░" * width
    filled = min(width, round(width * completed / total))
    return "━" * filled + "░" * (width - filled)


class RunStatusRibbon(Widget):
    """Single-line status bar under the query input."""

    DEFAULT_CSS = """
    RunStatusRibbon {
        width: 100%;
        height: auto;
        min-height: 1;
        background: $surface;
        border-bottom: solid $primary-darken-3;
        padding: 0 1;
    }

    RunStatusRibbon .ribbon-container {
        width: 100%;
        height: auto;
    }

    RunStatusRibbon .ribbon-section {
        width: auto;
        padding: 0 1;
    }

    RunStatusRibbon .ribbon-divider {
        width: auto;
        color: $text-muted;
    }

    RunStatusRibbon #connection_status.connected {
        color: $success;
    }

    RunStatusRibbon #connection_status.disconnected {
        color: $error;
    }
    """

    def __init__(self, *, id: Optional[str] = None, classes: Optional[str] = None) -> None:
        super().__init__(id=id, classes=classes)
        self.connected = False
        self.elapsed = "00:00"
        self.progress = (0, 0)
        self._connection_label = Label("○ Disconnected", id="connection_status", classes="ribbon-section disconnected")
        self._elapsed_label = Label("⏱ 00:00", id="elapsed_time", classes="ribbon-section")
        self._progress_label = Label(self._progress_text(), id="progress", classes="ribbon-section")

    def compose(self) -> ComposeResult:
        with Horizontal(classes="ribbon-container"):
            yield self._connection_label
            yield Static("│", classes="ribbon-divider")
            yield self._elapsed_label
            yield Static("│", classes="ribbon-divider")
            yield self._progress_label

    def set_connected(self, connected: bool) -> None:
        self.connected = connected
        self._connection_label.update("● Connected" if connected else "○ Disconnected")
        self._connection_label.set_class(connected, "connected")
        self._connection_label.set_class(not connected, "disconnected")

    def set_elapsed(self, text: str) -> None:
        self.elapsed = text
        self._elapsed_label.update(f"⏱ {text}")

    def set_progress(self, completed: int, total: int) -> None:
        self.progress = (completed, total)
        self._progress_label.update(self._progress_text())

    def _progress_text(self) -> str:
        completed, total = self.progress
        return f"Progress {completed}/{total} {progress_bar(completed, total)}"
