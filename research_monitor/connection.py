# -*- coding: utf-8 -*-
"""
WebSocket connection management for the research server.

ConnectionManager owns the single persistent connection: it decodes inbound
frames into RunEvents for one registered consumer, sends research requests,
and reconnects on its own according to what the run was doing when the
connection dropped:

- run completed: stay disconnected, nothing to report
- run in progress: warn and reconnect after the active delay (3s)
- idle: note the disconnect and reconnect after the idle delay (5s)
"""

import asyncio
import json
from contextlib import suppress
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

import websockets
from websockets.exceptions import WebSocketException

from research_monitor.errors import EventParseError
from research_monitor.events import EventRecorder, RunEvent, decode_frame
from research_monitor.logger_config import logger
from research_monitor.scheduler import AsyncioScheduler, ScheduledHandle, Scheduler
from research_monitor.view import LogLevel, ViewPort

EventHandler = Callable[[RunEvent], None]
GiveUpHandler = Callable[[], None]
Connector = Callable[[str], Any]

_TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"


class ConnectionManager:
    """Persistent WebSocket connection with cause-dependent reconnection.

    Attributes:
        url: WebSocket endpoint (ws:// or wss://, path /ws)
        malformed_frames: Total frames dropped because they failed to decode
        reconnect_attempts: Reconnections scheduled since the last open
    """

    def __init__(
        self,
        url: str,
        view: Optional[ViewPort] = None,
        scheduler: Optional[Scheduler] = None,
        *,
        active_delay: float = 3.0,
        idle_delay: float = 5.0,
        max_reconnect_attempts: Optional[int] = None,
        max_consecutive_malformed: int = 20,
        connector: Optional[Connector] = None,
        recorder: Optional[EventRecorder] = None,
    ):
        self.url = url
        self._view = view or ViewPort()
        self._scheduler = scheduler or AsyncioScheduler()
        self._active_delay = active_delay
        self._idle_delay = idle_delay
        self._max_reconnect_attempts = max_reconnect_attempts
        self._max_consecutive_malformed = max_consecutive_malformed
        self._connector: Connector = connector or websockets.connect
        self._recorder = recorder

        self._state = ConnectionState.DISCONNECTED
        self._ws: Any = None
        self._task: Optional[asyncio.Task] = None
        self._handler: Optional[EventHandler] = None
        self._give_up_handler: Optional[GiveUpHandler] = None
        self._opened = asyncio.Event()
        self._reconnect_handle: Optional[ScheduledHandle] = None
        self._closing = False

        # Last known run state, pushed by the coordinator
        self._run_active = False
        self._run_completed = False

        self._consecutive_malformed = 0
        self.malformed_frames = 0
        self.reconnect_attempts = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == ConnectionState.OPEN

    def on_event(self, handler: EventHandler) -> None:
        """Register the consumer of decoded events, replacing any previous one."""
        self._handler = handler

    def on_give_up(self, handler: GiveUpHandler) -> None:
        """Register a callback for when the reconnection limit is reached."""
        self._give_up_handler = handler

    def set_run_state(self, is_active: bool, is_completed: bool = False) -> None:
        """Record the run state that decides the next reconnection."""
        self._run_active = is_active
        self._run_completed = is_completed

    async def wait_open(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for the connection to open."""
        try:
            await asyncio.wait_for(self._opened.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Start connecting. Must be called from the running event loop."""
        if self._closing or self._state != ConnectionState.DISCONNECTED:
            return
        self._state = ConnectionState.CONNECTING
        logger.debug(f"[Connection] Connecting to {self.url}")
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def close(self) -> None:
        """Close the connection for good; no reconnection follows."""
        self._closing = True
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        ws = self._ws
        if ws is not None:
            with suppress(*_TRANSPORT_ERRORS):
                await ws.close()

        task = self._task
        if task is not None and not task.done():
            if ws is None:
                task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        if self._recorder is not None:
            self._recorder.close()

    async def _run(self) -> None:
        try:
            async with self._connector(self.url) as ws:
                self._ws = ws
                self._state = ConnectionState.OPEN
                self._opened.set()
                self._consecutive_malformed = 0
                self.reconnect_attempts = 0
                logger.info(f"[Connection] Connected to {self.url}")
                self._view.set_connection_status(True)
                self._view.append_log("Connection established", LogLevel.SUCCESS)

                async for frame in ws:
                    self._handle_frame(frame)
                    if self._consecutive_malformed >= self._max_consecutive_malformed:
                        logger.warning(
                            f"[Connection] {self._consecutive_malformed} consecutive malformed frames, " "forcing reconnect",
                        )
                        await ws.close()
                        break
        except _TRANSPORT_ERRORS as e:
            logger.warning(f"[Connection] Transport error: {e!r}")
            if self._run_active:
                self._view.append_log("⚠️ Connection error", LogLevel.WARNING)
        except Exception:
            logger.opt(exception=True).error("[Connection] Unexpected error while reading frames")
            self._view.append_log("⚠️ Connection error", LogLevel.WARNING)
        finally:
            self._ws = None
            self._state = ConnectionState.DISCONNECTED
            self._opened.clear()

        self._on_disconnected()

    def _on_disconnected(self) -> None:
        self._view.set_connection_status(False)
        if self._closing:
            logger.debug("[Connection] Closed")
            return

        if self._run_completed:
            logger.debug("[Connection] Disconnected after run completion, not reconnecting")
            return

        if self._max_reconnect_attempts is not None and self.reconnect_attempts >= self._max_reconnect_attempts:
            logger.error(f"[Connection] Giving up after {self.reconnect_attempts} reconnection attempts")
            self._view.append_log("Reconnection limit reached; restart the monitor to retry", LogLevel.ERROR)
            if self._give_up_handler is not None:
                self._give_up_handler()
            return

        if self._run_active:
            delay = self._active_delay
            self._view.append_log("⚠️ Connection lost unexpectedly", LogLevel.WARNING)
        else:
            delay = self._idle_delay
            self._view.append_log("Disconnected", LogLevel.INFO)

        self.reconnect_attempts += 1
        logger.info(f"[Connection] Reconnecting in {delay:g}s (attempt {self.reconnect_attempts})")
        self._reconnect_handle = self._scheduler.schedule_after(delay, self._reconnect)

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        # A connection opened in the meantime supersedes this timer
        if self._state == ConnectionState.DISCONNECTED:
            self.connect()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def feed_frame(self, frame: Union[str, bytes]) -> None:
        """Decode and dispatch one frame as if it had arrived on the transport."""
        self._handle_frame(frame)

    def _handle_frame(self, frame: Union[str, bytes]) -> None:
        if self._recorder is not None:
            self._recorder.record(frame)

        try:
            event = decode_frame(frame)
        except EventParseError as e:
            self._consecutive_malformed += 1
            self.malformed_frames += 1
            logger.warning(f"[Connection] Dropped malformed frame: {e}")
            self._view.append_log(f"Dropped malformed message: {e}", LogLevel.WARNING)
            return

        self._consecutive_malformed = 0
        if self._handler is None:
            logger.debug(f"[Connection] No handler registered, dropping {event.kind}")
            return
        try:
            self._handler(event)
        except Exception:
            logger.opt(exception=True).error(f"[Connection] Event handler failed on {event.kind}")

    async def send(self, payload: Dict[str, Any]) -> bool:
        """Send a JSON request.

        Returns:
            False if the connection is not open or the send failed
        """
        ws = self._ws
        if ws is None or self._state != ConnectionState.OPEN:
            self._view.append_log("No WebSocket connection", LogLevel.ERROR)
            return False
        try:
            await ws.send(json.dumps(payload, ensure_ascii=False))
        except _TRANSPORT_ERRORS as e:
            logger.warning(f"[Connection] Send failed: {e!r}")
            self._view.append_log("Failed to send request", LogLevel.ERROR)
            return False
        return True
