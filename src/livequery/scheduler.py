"""Time- and event-based refetch triggers.

- IntervalTimer: repeating timer built on the running loop's call_later
- FocusManager: the "application regained focus" signal queries listen to
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from livequery.duration import to_seconds

logger = logging.getLogger(__name__)


class IntervalTimer:
    """Calls a callback every interval ms until cancelled."""

    def __init__(self, interval: int, callback: Callable[[], None]) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._interval = interval
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def interval(self) -> int:
        return self._interval

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        """Arm the timer on the running loop."""
        if self._handle is not None:
            return
        self._schedule(asyncio.get_running_loop())

    def cancel(self) -> None:
        """Disarm the timer. Safe to call more than once."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self, loop: asyncio.AbstractEventLoop) -> None:
        self._handle = loop.call_later(to_seconds(self._interval), self._fire)

    def _fire(self) -> None:
        # Re-arm first so a failing callback does not stop the timer
        self._schedule(asyncio.get_running_loop())
        try:
            self._callback()
        except Exception:
            logger.exception("Interval callback failed")


class FocusManager:
    """
    Source of "regained focus" notifications.

    The environment (a window, a terminal, a test) calls focus() or
    set_focused(True) each time the application regains focus; every
    subscribed listener is called once per occurrence.
    """

    def __init__(self, *, focused: bool = True) -> None:
        self._focused = focused
        self._listeners: set[Callable[[], None]] = set()

    @property
    def is_focused(self) -> bool:
        return self._focused

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Add a listener; returns a function that removes it."""
        self._listeners.add(listener)

        def unsubscribe() -> None:
            self._listeners.discard(listener)

        return unsubscribe

    def set_focused(self, focused: bool) -> None:
        """Record the focus state; losing then regaining focus signals."""
        was_focused = self._focused
        self._focused = focused
        if focused and not was_focused:
            self._emit()

    def focus(self) -> None:
        """Signal one "regained focus" occurrence."""
        self._focused = True
        self._emit()

    def _emit(self) -> None:
        logger.debug("Window focused, notifying %d listeners", len(self._listeners))
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Focus listener failed")


__all__ = ["FocusManager", "IntervalTimer"]
