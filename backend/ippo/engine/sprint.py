"""Sprint lifecycle.

    idle --start--> countdown --1s ticks--> active --0.1s ticks--> validating
        --> completed --(2s)--> idle

`cancel()` from countdown or active goes straight to failed and resets to
idle after 1s. Every timer callback re-checks the state it expects before
touching anything, so a tick that lands after a cancel does nothing.
"""
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ippo.core import constants as C
from ippo.engine import events
from ippo.engine.events import EventBus
from ippo.engine.loop import EngineLoop, TimerHandle
from ippo.engine.scoring import score_window
from ippo.schemas.sprint import SprintResult, SprintState

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SprintWindow:
    """Live data of the sprint in progress."""

    target_duration: float
    baseline_hr: int
    start_time: Optional[float] = None  # loop time when active began
    started_at: Optional[datetime] = None
    hr_samples: list[int] = field(default_factory=list)
    cadence_samples: list[int] = field(default_factory=list)
    peak_hr: int = 0
    peak_cadence: int = 0

    def add_sample(self, heart_rate: int, cadence: int) -> None:
        self.hr_samples.append(heart_rate)
        self.cadence_samples.append(cadence)
        self.peak_hr = max(self.peak_hr, heart_rate)
        self.peak_cadence = max(self.peak_cadence, cadence)


class SprintSession:
    def __init__(
        self,
        loop: EngineLoop,
        bus: EventBus,
        rng: Optional[random.Random] = None,
        max_hr: int = C.DEFAULT_MAX_HR,
        wall_clock: Callable[[], datetime] = _utcnow,
    ):
        self._loop = loop
        self._bus = bus
        self._rng = rng or random.Random()
        self.max_hr = max_hr
        self._wall_clock = wall_clock

        self.state = SprintState.idle
        self.window: Optional[SprintWindow] = None
        self.countdown_remaining = C.COUNTDOWN_SECONDS
        self.last_result: Optional[SprintResult] = None

        self._countdown_timer: Optional[TimerHandle] = None
        self._sprint_timer: Optional[TimerHandle] = None
        self._reset_timer: Optional[TimerHandle] = None

    # --- lifecycle ---

    def start(self, baseline_hr: int) -> bool:
        """Begin the countdown. No-op unless idle."""
        if self.state != SprintState.idle:
            logger.debug("Ignoring sprint start while %s", self.state.value)
            return False

        target = self._rng.uniform(C.SPRINT_MIN_DURATION_S, C.SPRINT_MAX_DURATION_S)
        self.window = SprintWindow(target_duration=target, baseline_hr=max(0, int(baseline_hr)))
        self.countdown_remaining = C.COUNTDOWN_SECONDS
        self.state = SprintState.countdown
        self._countdown_timer = self._loop.schedule(
            C.COUNTDOWN_TICK_S, self._tick_countdown, name="sprint_countdown"
        )
        logger.info("Sprint countdown started (target %.1fs, baseline %d bpm)", target, self.window.baseline_hr)
        return True

    def _tick_countdown(self) -> None:
        if self.state != SprintState.countdown:
            return
        self.countdown_remaining -= 1
        self._bus.emit(events.COUNTDOWN_TICK, self.countdown_remaining)
        if self.countdown_remaining <= 0:
            self._loop.cancel(self._countdown_timer)
            self._countdown_timer = None
            self._begin_active()

    def _begin_active(self) -> None:
        self.window.start_time = self._loop.time()
        self.window.started_at = self._wall_clock()
        self.state = SprintState.active
        self._bus.emit(events.SPRINT_START)
        self._sprint_timer = self._loop.schedule(C.SPRINT_TICK_S, self._tick_sprint, name="sprint_tick")

    def _tick_sprint(self) -> None:
        if self.state != SprintState.active:
            return
        if self.time_remaining <= 0:
            self._finish()

    def finish(self) -> Optional[SprintResult]:
        """End an active sprint now and score what was collected."""
        if self.state != SprintState.active:
            return None
        return self._finish()

    def _finish(self) -> SprintResult:
        self._loop.cancel(self._sprint_timer)
        self._sprint_timer = None

        # No sample is accepted past this point
        self.state = SprintState.validating
        window = self.window
        elapsed = self.elapsed
        started_at = window.started_at or self._wall_clock()
        result = score_window(
            window.hr_samples,
            window.cadence_samples,
            baseline_hr=window.baseline_hr,
            max_hr=self.max_hr,
            start_time=started_at,
            end_time=started_at + timedelta(seconds=elapsed),
            target_duration=window.target_duration,
            duration=elapsed,
        )
        self.last_result = result
        self.state = SprintState.completed
        logger.info(
            "Sprint finished: score %.1f (%s) over %d samples",
            result.score,
            "valid" if result.is_valid else "invalid",
            result.sample_count,
        )
        self._bus.emit(events.SPRINT_END, result)
        self._schedule_reset(C.COMPLETED_RESET_DELAY_S, SprintState.completed)
        return result

    def cancel(self) -> bool:
        if self.state not in (SprintState.countdown, SprintState.active):
            return False
        self._loop.cancel(self._countdown_timer)
        self._loop.cancel(self._sprint_timer)
        self._countdown_timer = None
        self._sprint_timer = None
        self.state = SprintState.failed
        logger.info("Sprint cancelled")
        self._schedule_reset(C.CANCELLED_RESET_DELAY_S, SprintState.failed)
        return True

    def _schedule_reset(self, delay: float, expected: SprintState) -> None:
        self._loop.cancel(self._reset_timer)

        def _auto_reset():
            if self.state == expected:
                self.reset()

        self._reset_timer = self._loop.schedule(delay, _auto_reset, repeat=False, name="sprint_reset")

    def reset(self) -> None:
        for timer in (self._countdown_timer, self._sprint_timer, self._reset_timer):
            self._loop.cancel(timer)
        self._countdown_timer = self._sprint_timer = self._reset_timer = None
        self.state = SprintState.idle
        self.window = None
        self.countdown_remaining = C.COUNTDOWN_SECONDS

    # --- telemetry ---

    def add_sample(self, heart_rate: int, cadence: int) -> bool:
        """Record a sample. Silently dropped unless the sprint is active."""
        if self.state != SprintState.active:
            return False
        self.window.add_sample(max(0, int(heart_rate)), max(0, int(cadence)))
        return True

    # --- read-outs ---

    @property
    def elapsed(self) -> float:
        if self.window is None or self.window.start_time is None:
            return 0.0
        return max(0.0, self._loop.time() - self.window.start_time)

    @property
    def time_remaining(self) -> float:
        if self.window is None or self.window.start_time is None:
            return 0.0
        return max(0.0, self.window.target_duration - self.elapsed)

    @property
    def progress(self) -> float:
        if self.window is None or self.window.start_time is None:
            return 0.0
        return min(1.0, self.elapsed / self.window.target_duration)

    @property
    def is_in_final_seconds(self) -> bool:
        return self.state == SprintState.active and 0 < self.time_remaining <= C.FINAL_SECONDS_WINDOW_S
