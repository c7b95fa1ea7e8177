import time


class Clock:
    """Source of engine time, in seconds. Only differences are meaningful."""

    def now(self) -> float:
        raise NotImplementedError


class MonotonicClock(Clock):
    def now(self) -> float:
        return time.monotonic()


class ManualClock(Clock):
    """Clock that only moves when told to. Used by tests and replays."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def set(self, t: float) -> None:
        if t < self._now:
            raise ValueError("ManualClock cannot move backwards")
        self._now = float(t)

    def advance(self, seconds: float) -> float:
        self.set(self._now + seconds)
        return self._now
