"""Application context tying the engine pieces together for one player.

Owns the loop, the sprint session and the encounter scheduler for the
duration of a run, and is the only writer of the ledger and pet
collection. Hosts that call in from several threads (the HTTP app) go
through `lock`, so every mutation is serialized.
"""
import logging
import random
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from ippo.core.content import BonusKind, pet_by_id
from ippo.core.time_utils import seconds_to_mmss
from ippo.engine import events
from ippo.engine.clock import Clock, MonotonicClock
from ippo.engine.encounter import EncounterScheduler
from ippo.engine.events import EventBus
from ippo.engine.loop import Cancel, EngineLoop, Finish, SampleArrived
from ippo.engine.progression import (
    DailyCheck,
    PetInstance,
    ProgressionLedger,
    apply_reward,
    daily_check,
    equipped_pet,
    record_activity,
)
from ippo.engine.rewards import (
    RewardContext,
    RewardResolver,
    encounter_boost,
    open_loot_box,
    pet_ability_bonus,
    run_reward,
)
from ippo.engine.sprint import SprintSession
from ippo.schemas.reward import Encounter, LootBoxContents, Rarity, RewardBundle
from ippo.schemas.run import RunSummary
from ippo.schemas.sprint import SprintResult, SprintState

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50


@dataclass
class RunTally:
    started_at: float = 0.0
    sprints: int = 0
    valid_sprints: int = 0
    encounters: int = 0
    rp: int = 0
    xp: int = 0
    coins: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GameEngine:
    def __init__(
        self,
        ledger: Optional[ProgressionLedger] = None,
        pets: Optional[list[PetInstance]] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        store=None,
        player_id: str = "local",
        max_hr: int = 190,
        tz_name: Optional[str] = None,
        weekly_reset_weekday: int = 0,
        weekly_reset_hour: int = 0,
        encounter_roll: Optional[Callable[[], float]] = None,
        wall_clock: Callable[[], datetime] = _utcnow,
    ):
        self.lock = threading.RLock()
        self.player_id = player_id
        self.tz_name = tz_name
        self.weekly_reset_weekday = weekly_reset_weekday
        self.weekly_reset_hour = weekly_reset_hour
        self._rng = rng or random.Random()
        self._wall_clock = wall_clock
        self.store = store

        self.ledger = ledger if ledger is not None else ProgressionLedger()
        self.pets = pets if pets is not None else []

        self.bus = EventBus()
        self.loop = EngineLoop(clock or MonotonicClock())
        self.sprint = SprintSession(self.loop, self.bus, self._rng, max_hr=max_hr, wall_clock=wall_clock)
        self.encounters = EncounterScheduler(
            self.loop,
            self.bus,
            self._rng,
            roll=encounter_roll,
            is_blocked=lambda: self.sprint.state != SprintState.idle,
        )
        self.resolver = RewardResolver(self._rng)

        self.latest_hr = 0
        self.run_active = False
        self.run: Optional[RunTally] = None
        self.current_encounter: Optional[Encounter] = None
        self.history: list[Encounter] = []

        self.loop.on(SampleArrived, self._on_sample)
        self.loop.on(Cancel, self._on_cancel)
        self.loop.on(Finish, self._on_finish)
        self.bus.subscribe(events.ENCOUNTER_TRIGGERED, self._on_encounter_triggered)
        self.bus.subscribe(events.SPRINT_END, self._on_sprint_end)

    @classmethod
    def from_store(cls, store, player_id: str = "local", **kwargs) -> "GameEngine":
        ledger = store.load_ledger(player_id)
        pets = store.load_pets(player_id)
        return cls(ledger=ledger, pets=pets, store=store, player_id=player_id, **kwargs)

    # --- time ---

    def pump(self, target: Optional[float] = None) -> None:
        with self.lock:
            self.loop.advance_to(target)

    # --- run lifecycle ---

    def start_run(self) -> bool:
        with self.lock:
            if self.run_active:
                return False
            self.run_active = True
            self.run = RunTally(started_at=self.loop.time())
            self.encounters.probability_boost = encounter_boost(self.pets, self.ledger.unlocked_abilities)
            self.encounters.start_run()
            logger.info("Run started for %s", self.player_id)
            return True

    def end_run(self, now: Optional[datetime] = None) -> Optional[RunSummary]:
        """Stop the run, pay the per-minute reward and summarize the run."""
        with self.lock:
            if not self.run_active:
                return None
            if self.sprint.state in (SprintState.countdown, SprintState.active):
                self._on_cancel(Cancel("run ended"))
            self.encounters.end_run()
            self.current_encounter = None

            tally = self.run
            elapsed = max(0.0, self.loop.time() - tally.started_at)
            time_reward = run_reward(elapsed, has_pet=equipped_pet(self.pets) is not None)
            if not time_reward.is_empty:
                self.apply(time_reward, counts_as_sprint=False)
            summary = RunSummary(
                duration_seconds=round(elapsed, 1),
                duration_display=seconds_to_mmss(elapsed),
                sprints=tally.sprints,
                valid_sprints=tally.valid_sprints,
                encounters=tally.encounters,
                rp_earned=tally.rp,
                xp_earned=tally.xp,
                coins_earned=tally.coins,
                time_reward=time_reward,
            )

            self.run_active = False
            self.run = None
            record_activity(self.ledger, now or self._wall_clock(), self.tz_name)
            self.save()
            logger.info(
                "Run ended for %s after %s: %d/%d valid sprints, %d XP",
                self.player_id,
                summary.duration_display,
                summary.valid_sprints,
                summary.sprints,
                summary.xp_earned,
            )
            return summary

    # --- sprint control ---

    def start_sprint(self, baseline_hr: Optional[int] = None) -> bool:
        """Start a sprint now.

        During a run this forces an encounter, so the sprint is rewarded like
        any other. Outside a run it is a practice sprint with no rewards.
        """
        with self.lock:
            if baseline_hr is not None:
                self.latest_hr = max(0, int(baseline_hr))
            if self.run_active:
                return self.force_encounter()
            if self.sprint.state != SprintState.idle:
                return False
            return self.sprint.start(self.latest_hr)

    def force_encounter(self) -> bool:
        """Trigger an encounter now, skipping the probability roll."""
        with self.lock:
            if not self.run_active or self.encounters.is_in_recovery:
                return False
            if self.sprint.state != SprintState.idle:
                return False
            return self.encounters.trigger()

    def cancel_sprint(self) -> bool:
        with self.lock:
            if self.sprint.state not in (SprintState.countdown, SprintState.active):
                return False
            self.loop.post(Cancel("requested"))
            self.loop.run_pending()
            return self.sprint.state == SprintState.failed

    def finish_sprint(self) -> Optional[SprintResult]:
        """Queue an early finish behind any pending samples and score it."""
        with self.lock:
            if self.sprint.state != SprintState.active:
                return None
            previous = self.sprint.last_result
            self.loop.post(Finish())
            self.loop.run_pending()
            result = self.sprint.last_result
            return result if result is not previous else None

    def submit_sample(self, heart_rate: int, cadence: int) -> None:
        with self.lock:
            self.loop.post(SampleArrived(heart_rate, cadence))
            self.loop.run_pending()

    def _on_sample(self, message: SampleArrived) -> None:
        self.latest_hr = max(0, int(message.heart_rate))
        self.sprint.add_sample(message.heart_rate, message.cadence)

    def _on_finish(self, message: Finish) -> None:
        self.sprint.finish()

    def _on_cancel(self, message: Cancel) -> None:
        if not self.sprint.cancel():
            return
        if self.encounters.is_active:
            self._close_encounter(None, None)

    # --- encounter flow ---

    def _on_encounter_triggered(self) -> None:
        self.current_encounter = Encounter(triggered_at=self._wall_clock())
        if not self.sprint.start(self.latest_hr):
            logger.warning("Encounter triggered while sprint was %s", self.sprint.state.value)
            self._close_encounter(None, None)

    def _on_sprint_end(self, result: SprintResult) -> None:
        if self.store is not None:
            self.store.record_sprint(self.player_id, result)
        if not self.encounters.is_active:
            logger.debug("Practice sprint finished, no reward")
            return

        if self.run is not None:
            self.run.sprints += 1
            if result.is_valid:
                self.run.valid_sprints += 1
        bundle = self.resolver.resolve(result, RewardContext(self.ledger, self.pets))
        self.apply(bundle, result.is_valid)
        self._close_encounter(result, bundle)

    def apply(self, bundle: RewardBundle, sprint_valid: bool = True, counts_as_sprint: bool = True):
        """The single write path from a resolved bundle into the ledger."""
        outcome = apply_reward(
            self.ledger,
            bundle,
            self.pets,
            sprint_valid=sprint_valid,
            now=self._wall_clock(),
            new_pet_id=str(uuid.uuid4()),
            counts_as_sprint=counts_as_sprint,
        )
        if self.run is not None:
            self.run.rp += bundle.rp
            self.run.xp += bundle.xp
            self.run.coins += bundle.coins
        if outcome.caught_pet is not None:
            logger.info("Caught %s", outcome.caught_pet.definition_id)
            self.bus.emit(events.PET_CAUGHT, outcome.caught_pet.definition_id)
        self.bus.emit(events.REWARD_APPLIED, bundle)
        return outcome

    def _close_encounter(self, result: Optional[SprintResult], bundle: Optional[RewardBundle]) -> None:
        encounter = self.current_encounter or Encounter(triggered_at=self._wall_clock())
        encounter.sprint_result = result
        encounter.reward = bundle
        self.history.insert(0, encounter)
        del self.history[HISTORY_LIMIT:]
        self.current_encounter = None
        self.encounters.complete()
        if self.run is not None:
            self.run.encounters += 1
        self.bus.emit(events.ENCOUNTER_COMPLETE, encounter)
        self.save()

    # --- progression ---

    def daily_check(self, now: Optional[datetime] = None) -> DailyCheck:
        with self.lock:
            summary = daily_check(
                self.ledger,
                now or self._wall_clock(),
                self._rng,
                self.tz_name,
                self.weekly_reset_weekday,
                self.weekly_reset_hour,
            )
            self.save()
            return summary

    def equip_pet(self, pet_id: str) -> bool:
        with self.lock:
            if not any(p.id == pet_id for p in self.pets):
                return False
            for pet in self.pets:
                pet.is_equipped = pet.id == pet_id
            if self.run_active:
                self.encounters.probability_boost = encounter_boost(self.pets, self.ledger.unlocked_abilities)
            self.save()
            return True

    def add_pet(self, definition_id: str, equip: bool = False) -> Optional[PetInstance]:
        """Grant a pet outside of catching (starter choice, admin)."""
        with self.lock:
            if pet_by_id(definition_id) is None:
                return None
            if any(p.definition_id == definition_id for p in self.pets):
                return None
            pet = PetInstance(id=str(uuid.uuid4()), definition_id=definition_id, caught_at=self._wall_clock())
            self.pets.append(pet)
            if equip:
                for other in self.pets:
                    other.is_equipped = other is pet
            self.save()
            return pet

    def open_loot_box(self, rarity: Rarity) -> Optional[LootBoxContents]:
        with self.lock:
            key = Rarity(rarity).value
            if self.ledger.loot_boxes.get(key, 0) <= 0:
                return None
            bonus = pet_ability_bonus(equipped_pet(self.pets))
            coin_bonus = bonus.value if bonus is not None and bonus.kind == BonusKind.loot_coins else 0.0
            contents = open_loot_box(Rarity(key), self._rng, coin_bonus)
            self.ledger.loot_boxes[key] -= 1
            self.ledger.coins += contents.coins
            self.ledger.gems += contents.gems
            self.save()
            return contents

    # --- persistence ---

    def save(self) -> bool:
        """Hand the current state to the store. Failures never block play."""
        if self.store is None:
            return True
        ok = self.store.save_ledger(self.player_id, self.ledger)
        ok = self.store.save_pets(self.player_id, self.pets) and ok
        if not ok:
            logger.warning("Save failed for %s; in-memory state stays authoritative", self.player_id)
        return ok
