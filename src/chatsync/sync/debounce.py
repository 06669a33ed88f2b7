import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Final

from chatsync.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_WINDOW: Final = 0.25


class DebounceState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    FIRED = "fired"


class Debouncer:
    """
    Collapses bursts of triggers into a single callback invocation.

    `trigger()` moves the machine to PENDING and pushes the deadline to
    `now + window`; the callback runs once the deadline passes without another
    trigger. Deadlines are checked by `poll()`, or automatically by an
    event-loop timer when a loop is given.
    """

    state: DebounceState
    due_at: float | None
    fire_count: int
    window: float
    _callback: Callable[[], object]
    _clock: Clock
    _loop: asyncio.AbstractEventLoop | None
    _timer: asyncio.TimerHandle | None

    def __init__(
        self,
        callback: Callable[[], object],
        window: float = DEFAULT_DEBOUNCE_WINDOW,
        clock: Clock | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if window < 0:
            raise ValueError("Debounce window must be non-negative.")
        self._callback = callback
        self.window = window
        self._clock = clock or SystemClock()
        self._loop = loop
        self._timer = None
        self.state = DebounceState.IDLE
        self.due_at = None
        self.fire_count = 0

    def trigger(self) -> None:
        self.due_at = self._clock.now() + self.window
        self.state = DebounceState.PENDING
        # One timer at a time; it re-arms itself when the deadline moved.
        if self._loop is not None and self._timer is None:
            self._timer = self._loop.call_later(self.window, self._on_timer)

    def poll(self) -> bool:
        """Fires the callback if a pending deadline has passed. Returns True if it fired."""
        if self.state is not DebounceState.PENDING or self.due_at is None:
            return False
        if self._clock.now() < self.due_at:
            return False
        self._fire()
        return True

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.state = DebounceState.IDLE
        self.due_at = None

    def _on_timer(self) -> None:
        self._timer = None
        if self.poll() or self.state is not DebounceState.PENDING or self.due_at is None:
            return
        if self._loop is not None:
            remaining = max(self.due_at - self._clock.now(), 0.0)
            self._timer = self._loop.call_later(remaining, self._on_timer)

    def _fire(self) -> None:
        self.state = DebounceState.FIRED
        self.due_at = None
        self.fire_count += 1
        try:
            _ = self._callback()
        except Exception:
            logger.exception("Error in debounced callback")
