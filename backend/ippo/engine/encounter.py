"""Encounter scheduling.

Every check interval during a run we decide whether to offer a sprint.
The chance climbs with the time since the last encounter (or since the run
started) and becomes certain once the pity timer is reached. After an
encounter resolves there is a recovery window with no checks at all.

The scheduler only announces encounters; whoever listens to
`encounter_triggered` starts the sprint.
"""
import logging
import random
from typing import Callable, Optional

from ippo.core import constants as C
from ippo.engine import events
from ippo.engine.events import EventBus
from ippo.engine.loop import EngineLoop, TimerHandle

logger = logging.getLogger(__name__)


def probability_for(
    seconds_since_last: float,
    tiers: list[tuple[float, float, float]] = C.ENCOUNTER_PROBABILITY_TIERS,
    max_probability: float = C.MAX_ENCOUNTER_PROBABILITY,
    pity_after: float = C.PITY_TIMER_MAX_S,
) -> float:
    """Flat probability of the tier containing `seconds_since_last`.

    Tiers are closed ranges tested in order; past the last tier the cap
    applies, and at or past the pity timer the answer is 1.0.
    """
    for low, high, probability in tiers:
        if low <= seconds_since_last <= high:
            return probability
    return 1.0 if seconds_since_last >= pity_after else max_probability


class EncounterScheduler:
    def __init__(
        self,
        loop: EngineLoop,
        bus: EventBus,
        rng: Optional[random.Random] = None,
        roll: Optional[Callable[[], float]] = None,
        is_blocked: Optional[Callable[[], bool]] = None,
    ):
        self._loop = loop
        self._bus = bus
        self._roll = roll or (rng or random.Random()).random
        # Checks are skipped while this says so (e.g. a sprint still on screen)
        self._is_blocked = is_blocked or (lambda: False)
        # Added to the tier probability; not capped, so >= 1.0 means always
        self.probability_boost = 0.0

        self.is_active = False
        self.is_in_recovery = False
        self.run_start_time: Optional[float] = None
        self.last_encounter_time: Optional[float] = None
        self.recovery_ends_at: Optional[float] = None
        self.last_probability: Optional[float] = None

        self._check_timer: Optional[TimerHandle] = None
        self._recovery_timer: Optional[TimerHandle] = None

    # --- run lifecycle ---

    @property
    def is_running(self) -> bool:
        return self.run_start_time is not None

    def start_run(self) -> None:
        self.end_run()
        self.run_start_time = self._loop.time()
        self._check_timer = self._loop.schedule(
            C.ENCOUNTER_CHECK_INTERVAL_S, self.check, name="encounter_check"
        )
        logger.info("Encounter checks started")

    def end_run(self) -> None:
        self._loop.cancel(self._check_timer)
        self._loop.cancel(self._recovery_timer)
        self._check_timer = None
        self._recovery_timer = None
        self.run_start_time = None
        self.last_encounter_time = None
        self.recovery_ends_at = None
        self.last_probability = None
        self.is_active = False
        self.is_in_recovery = False

    # --- checks ---

    @property
    def time_since_last_encounter(self) -> float:
        if self.run_start_time is None:
            return 0.0
        anchor = self.last_encounter_time
        if anchor is None:
            anchor = self.run_start_time
        return self._loop.time() - anchor

    def check(self) -> bool:
        """One probability check. Returns True if an encounter was triggered."""
        if self.is_active or self.is_in_recovery or self.run_start_time is None:
            return False
        if self._is_blocked():
            return False

        run_duration = self._loop.time() - self.run_start_time
        if not run_duration > C.WARMUP_DURATION_S:
            return False

        since = self.time_since_last_encounter
        if not since > C.MIN_TIME_BETWEEN_ENCOUNTERS_S:
            return False

        probability = probability_for(since) + self.probability_boost
        self.last_probability = probability
        roll = self._roll()
        if roll < probability or since >= C.PITY_TIMER_MAX_S:
            logger.debug("Encounter roll %.3f < %.3f after %.0fs", roll, probability, since)
            return self.trigger()
        return False

    def trigger(self) -> bool:
        if self.is_active:
            return False
        self.is_active = True
        self.last_encounter_time = self._loop.time()
        logger.info("Encounter triggered")
        self._bus.emit(events.ENCOUNTER_TRIGGERED)
        return True

    # --- resolution and recovery ---

    def complete(self) -> bool:
        """Mark the active encounter resolved and start recovery."""
        if not self.is_active:
            return False
        self.is_active = False
        self._start_recovery()
        return True

    def _start_recovery(self) -> None:
        self._loop.cancel(self._recovery_timer)
        self.is_in_recovery = True
        self.recovery_ends_at = self._loop.time() + C.RECOVERY_DURATION_S
        self._recovery_timer = self._loop.schedule(
            C.RECOVERY_TICK_S, self._tick_recovery, name="encounter_recovery"
        )

    def _tick_recovery(self) -> None:
        if not self.is_in_recovery:
            return
        if self.recovery_remaining <= 0:
            self._end_recovery()

    def _end_recovery(self) -> None:
        self._loop.cancel(self._recovery_timer)
        self._recovery_timer = None
        self.is_in_recovery = False
        self.recovery_ends_at = None
        self._bus.emit(events.RECOVERY_ENDED)

    @property
    def recovery_remaining(self) -> float:
        if not self.is_in_recovery or self.recovery_ends_at is None:
            return 0.0
        return max(0.0, self.recovery_ends_at - self._loop.time())
