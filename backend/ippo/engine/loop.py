"""Single-threaded engine loop.

Timers and external input are both turned into messages and processed in
FIFO order, one at a time. `advance_to()` walks time forward firing due
timers in chronological order and drains the queue after every fire, so
two ticks never interleave and every callback sees the loop time at which
it was due.
"""
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ippo.engine.clock import Clock

logger = logging.getLogger(__name__)


@dataclass
class TimerHandle:
    id: int
    name: str
    interval: float
    callback: Callable[[], Any]
    repeat: bool
    due: float
    cancelled: bool = False
    pending: bool = False  # a Tick for this timer is queued


@dataclass
class Tick:
    timer: TimerHandle


@dataclass
class Cancel:
    reason: str = ""


@dataclass
class SampleArrived:
    heart_rate: int
    cadence: int


@dataclass
class Finish:
    """End the active sprint early."""


@dataclass
class Call:
    fn: Callable[..., Any]
    args: tuple = field(default_factory=tuple)


class EngineLoop:
    def __init__(self, clock: Clock):
        self._clock = clock
        self._now = clock.now()
        self._queue: deque = deque()
        self._timers: dict[int, TimerHandle] = {}
        self._ids = itertools.count(1)
        self._handlers: dict[type, Callable[[Any], Any]] = {}
        self._busy = False

    @property
    def clock(self) -> Clock:
        return self._clock

    def time(self) -> float:
        """Loop time: the due time of the timer being fired, else last advance."""
        return self._now

    # --- timers ---

    def schedule(
        self,
        interval: float,
        callback: Callable[[], Any],
        repeat: bool = True,
        name: str = "",
    ) -> TimerHandle:
        handle = TimerHandle(
            id=next(self._ids),
            name=name or getattr(callback, "__name__", "timer"),
            interval=float(interval),
            callback=callback,
            repeat=repeat,
            due=self._now + interval,
        )
        self._timers[handle.id] = handle
        return handle

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is None:
            return
        handle.cancelled = True
        self._timers.pop(handle.id, None)

    def active_timers(self) -> list[TimerHandle]:
        return sorted(self._timers.values(), key=lambda h: (h.due, h.id))

    # --- messages ---

    def on(self, message_type: type, handler: Callable[[Any], Any]) -> None:
        self._handlers[message_type] = handler

    def post(self, message: Any) -> None:
        self._queue.append(message)

    def run_pending(self) -> int:
        """Drain queued messages unless a drain is already in progress."""
        if self._busy:
            return 0
        self._busy = True
        try:
            return self._drain()
        finally:
            self._busy = False

    def _drain(self) -> int:
        handled = 0
        while self._queue:
            self._dispatch(self._queue.popleft())
            handled += 1
        return handled

    def _dispatch(self, message: Any) -> None:
        if isinstance(message, Tick):
            timer = message.timer
            timer.pending = False
            if timer.cancelled:
                return
            timer.callback()
        elif isinstance(message, Call):
            message.fn(*message.args)
        else:
            handler = self._handlers.get(type(message))
            if handler is None:
                logger.debug("No handler for %s, dropping", type(message).__name__)
                return
            handler(message)

    # --- time ---

    def advance_to(self, target: Optional[float] = None) -> bool:
        """Fire every timer due up to `target` (default: clock now).

        Returns False when called re-entrantly from inside a callback; the
        outer call is already walking time forward.
        """
        if self._busy:
            return False
        if target is None:
            target = self._clock.now()
        self._busy = True
        try:
            self._drain()
            while True:
                timer = self._next_due(target)
                if timer is None:
                    break
                self._now = max(self._now, timer.due)
                if timer.repeat:
                    timer.due += timer.interval
                else:
                    self._timers.pop(timer.id, None)
                if not timer.pending:
                    timer.pending = True
                    self._queue.append(Tick(timer))
                self._drain()
            self._now = max(self._now, target)
            self._drain()
        finally:
            self._busy = False
        return True

    def advance(self, seconds: float) -> bool:
        return self.advance_to(self._now + seconds)

    def _next_due(self, target: float) -> Optional[TimerHandle]:
        due = [t for t in self._timers.values() if not t.cancelled and t.due <= target]
        if not due:
            return None
        return min(due, key=lambda t: (t.due, t.id))
