# -*- coding: utf-8 -*-
"""
Deferred and periodic work for the monitor.

Reconnection delays and the elapsed-time tick go through a Scheduler so the
core never touches the event loop directly. AsyncioScheduler is the production
implementation; tests substitute a manually advanced fake.
"""

import asyncio
from typing import Callable, Optional

Action = Callable[[], None]


class ScheduledHandle:
    """Cancellable handle for scheduled work."""

    def cancel(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @property
    def cancelled(self) -> bool:  # pragma: no cover - interface
        raise NotImplementedError


class Scheduler:
    """Interface for scheduling work on the monitor's event loop."""

    def schedule_after(self, delay: float, action: Action) -> ScheduledHandle:
        """Run ``action`` once after ``delay`` seconds."""
        raise NotImplementedError

    def schedule_every(self, period: float, action: Action) -> ScheduledHandle:
        """Run ``action`` every ``period`` seconds until cancelled."""
        raise NotImplementedError


class _TimerHandle(ScheduledHandle):
    def __init__(self) -> None:
        self._handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """Scheduler backed by ``loop.call_later``.

    The loop is resolved lazily so the scheduler can be created before the
    loop starts running (e.g. before a Textual app mounts).
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule_after(self, delay: float, action: Action) -> ScheduledHandle:
        handle = _TimerHandle()

        def _fire() -> None:
            handle._handle = None
            if not handle.cancelled:
                action()

        handle._handle = self._get_loop().call_later(delay, _fire)
        return handle

    def schedule_every(self, period: float, action: Action) -> ScheduledHandle:
        handle = _TimerHandle()
        loop = self._get_loop()

        def _fire() -> None:
            if handle.cancelled:
                return
            # Re-arm before running so the action may cancel the handle itself
            handle._handle = loop.call_later(period, _fire)
            action()

        handle._handle = loop.call_later(period, _fire)
        return handle
