# -*- coding: utf-8 -*-
"""Blocking notice shown for input validation failures."""

from textual import on
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import ModalScreen
from textual.widgets import Button, Label


class NoticeModal(ModalScreen[None]):
    """Modal with a message and an OK button."""

    DEFAULT_CSS = """
    NoticeModal {
        align: center middle;
    }

    NoticeModal #notice_container {
        width: 50;
        height: auto;
        padding: 1 2;
        border: thick $error;
        background: $surface;
    }

    NoticeModal #notice_message {
        width: 100%;
        margin-bottom: 1;
    }
    """

    BINDINGS = [
        Binding("escape", "dismiss_notice", "Close"),
        Binding("enter", "dismiss_notice", "Close", show=False),
    ]

    def __init__(self, message: str) -> None:
        super().__init__()
        self.message = message

    def compose(self) -> ComposeResult:
        with Container(id="notice_container"):
            yield Label(self.message, id="notice_message")
            yield Button("OK", id="notice_ok", variant="primary")

    @on(Button.Pressed, "#notice_ok")
    def _on_ok(self) -> None:
        self.dismiss(None)

    def action_dismiss_notice(self) -> None:
        self.dismiss(None)
