"""Long-lived progression: RP ranks, player level, pet evolution, streaks
and inactivity decay.

Rank, division, level and evolution stage are all derived from the stored
totals on every read; nothing here stores them separately.
"""
import logging
import random
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from ippo.core import constants as C
from ippo.core.content import (
    DIVISIONS_PER_RANK,
    RANKS,
    TOP_RANK_RP_CEILING,
    RankDef,
    next_rank,
    pet_by_id,
)
from ippo.core.time_utils import days_between, local_day, next_weekly_reset, to_local_datetime
from ippo.schemas.reward import Rarity, RewardBundle

logger = logging.getLogger(__name__)


# --- pure lookups ---


def rank_for_rp(rp: int) -> RankDef:
    rp = max(0, rp)
    current = RANKS[0]
    for rank in RANKS:
        if rank.base_rp <= rp:
            current = rank
    return current


def division_for_rp(rp: int, top_rank_ceiling: int = TOP_RANK_RP_CEILING) -> int:
    """Division within the current rank, 1 (entry) to 3 (top).

    Lower ranks split [base, next base) into equal thirds. The top rank has
    no next rank, so its span runs to `top_rank_ceiling`; RP beyond the
    ceiling stays in division 3.
    """
    rp = max(0, rp)
    rank = rank_for_rp(rp)
    upper = next_rank(rank)
    ceiling = upper.base_rp if upper is not None else top_rank_ceiling
    width = (ceiling - rank.base_rp) / DIVISIONS_PER_RANK
    if width <= 0:
        return DIVISIONS_PER_RANK
    index = int((rp - rank.base_rp) // width)
    return min(DIVISIONS_PER_RANK, index + 1)


def xp_required(level: int) -> int:
    """Total XP needed to reach `level`. Level 1 is free."""
    if level <= 1:
        return 0
    scaling = level - 1
    return int(C.LEVEL_XP_BASE * scaling * (1.0 + scaling * C.LEVEL_XP_SCALING))


def level_for_xp(xp: int) -> int:
    level = 1
    while level < C.MAX_LEVEL and xp_required(level + 1) <= xp:
        level += 1
    return level


def xp_progress(xp: int) -> float:
    """Fraction of the way from the current level to the next."""
    level = level_for_xp(xp)
    if level >= C.MAX_LEVEL:
        return 1.0
    current = xp_required(level)
    needed = xp_required(level + 1) - current
    if needed <= 0:
        return 1.0
    return min(1.0, max(0.0, (xp - current) / needed))


def stage_for_xp(xp: int) -> int:
    stage = 1
    for i, threshold in enumerate(C.PET_STAGE_XP_THRESHOLDS):
        if xp >= threshold:
            stage = i + 1
    return min(stage, C.MAX_PET_STAGE)


def streak_bonus(streak_days: int) -> float:
    bonus = 0.0
    for min_days, fraction in C.STREAK_BONUS_TIERS:
        if streak_days >= min_days:
            bonus = fraction
    return bonus


# --- state ---


@dataclass
class PetInstance:
    id: str
    definition_id: str
    experience: int = 0
    mood: int = C.DEFAULT_MOOD
    ability_level: int = 1
    is_equipped: bool = False
    caught_at: Optional[datetime] = None

    @property
    def evolution_stage(self) -> int:
        return stage_for_xp(self.experience)

    @property
    def stage_name(self) -> str:
        return C.PET_STAGE_NAMES[self.evolution_stage - 1]

    @property
    def effectiveness(self) -> float:
        """How strongly this pet's special ability applies."""
        stage = self.evolution_stage
        if stage <= 3:
            stage_multiplier = 0.50
        elif stage <= 6:
            stage_multiplier = 0.75
        elif stage <= 9:
            stage_multiplier = 1.00
        else:
            stage_multiplier = 1.25
        level = min(C.MAX_PET_ABILITY_LEVEL, max(1, self.ability_level))
        return stage_multiplier * (1.0 + (level - 1) * 0.25)

    @property
    def mood_multiplier(self) -> float:
        mood = min(C.MAX_MOOD, max(C.MIN_MOOD, self.mood))
        if mood >= 8:
            return 1.0
        if mood >= 5:
            return 0.85
        return 0.6

    @property
    def definition(self):
        return pet_by_id(self.definition_id)


@dataclass
class ProgressionLedger:
    rp: int = 0
    weekly_rp: int = 0
    experience: int = 0
    coins: int = 0
    gems: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: Optional[date] = None
    # Last missed day already charged by decay
    decay_applied_through: Optional[date] = None
    weekly_reset_at: Optional[datetime] = None
    ability_points: int = 0
    pet_points: int = 0
    unlocked_abilities: set[str] = field(default_factory=set)
    loot_boxes: dict[str, int] = field(default_factory=dict)
    sprints_since_last_catch: int = 0
    total_sprints: int = 0
    total_valid_sprints: int = 0

    @property
    def level(self) -> int:
        return level_for_xp(self.experience)

    @property
    def rank(self) -> RankDef:
        return rank_for_rp(self.rp)

    @property
    def division(self) -> int:
        return division_for_rp(self.rp)


def owned_pet_ids(pets: list[PetInstance]) -> set[str]:
    return {p.definition_id for p in pets}


def equipped_pet(pets: list[PetInstance]) -> Optional[PetInstance]:
    for pet in pets:
        if pet.is_equipped:
            return pet
    return None


# --- mutations (single writer) ---


@dataclass
class RewardApplication:
    levels_gained: int = 0
    pet_stages_gained: int = 0
    caught_pet: Optional[PetInstance] = None


def apply_reward(
    ledger: ProgressionLedger,
    bundle: RewardBundle,
    pets: list[PetInstance],
    sprint_valid: bool = True,
    now: Optional[datetime] = None,
    new_pet_id: Optional[str] = None,
    counts_as_sprint: bool = True,
) -> RewardApplication:
    """Apply a resolved bundle to the ledger and pet collection in place.

    Run-completion bundles pass `counts_as_sprint=False` so sprint totals
    and the catch pity counter are left alone.
    """
    outcome = RewardApplication()
    level_before = ledger.level

    if counts_as_sprint:
        ledger.total_sprints += 1
        if sprint_valid:
            ledger.total_valid_sprints += 1

    ledger.rp += bundle.rp
    ledger.weekly_rp += bundle.rp
    ledger.experience += bundle.xp
    ledger.coins += bundle.coins

    outcome.levels_gained = max(0, ledger.level - level_before)
    ledger.ability_points += outcome.levels_gained * C.ABILITY_POINTS_PER_LEVEL

    pet = equipped_pet(pets)
    if pet is not None and bundle.pet_xp > 0:
        stage_before = pet.evolution_stage
        pet.experience += int(bundle.pet_xp * pet.mood_multiplier)
        stage_after = pet.evolution_stage
        outcome.pet_stages_gained = stage_after - stage_before
        for stage in range(stage_before + 1, stage_after + 1):
            if stage in C.PET_POINT_STAGES:
                ledger.pet_points += 1

    if bundle.loot_rarity is not None:
        key = Rarity(bundle.loot_rarity).value
        ledger.loot_boxes[key] = ledger.loot_boxes.get(key, 0) + 1

    if bundle.caught_pet_id is not None:
        if bundle.caught_pet_id not in owned_pet_ids(pets):
            caught = PetInstance(
                id=new_pet_id or bundle.caught_pet_id,
                definition_id=bundle.caught_pet_id,
                caught_at=now,
            )
            pets.append(caught)
            outcome.caught_pet = caught
        ledger.sprints_since_last_catch = 0
    elif sprint_valid and counts_as_sprint:
        ledger.sprints_since_last_catch += 1

    return outcome


def apply_daily_decay(
    ledger: ProgressionLedger,
    now,
    rng: Optional[random.Random] = None,
    tz_name: Optional[str] = None,
) -> int:
    """Remove RP for each full day missed since the last activity.

    The activity day and today are not counted. Each missed day takes a
    random amount from the current rank's range, so a player sliding down
    into Bronze stops losing RP there. Returns the RP removed.
    """
    if ledger.last_activity_date is None:
        return 0
    rng = rng or random.Random()
    anchor = ledger.last_activity_date
    if ledger.decay_applied_through is not None and ledger.decay_applied_through > anchor:
        anchor = ledger.decay_applied_through
    elapsed = days_between(anchor, now, tz_name)
    if elapsed <= 1:
        return 0
    ledger.decay_applied_through = local_day(now, tz_name) - timedelta(days=1)

    removed = 0
    for _ in range(elapsed - 1):
        low, high = rank_for_rp(ledger.rp).decay_per_day
        if high <= 0 or ledger.rp <= 0:
            break
        amount = min(ledger.rp, rng.randint(low, high))
        ledger.rp -= amount
        removed += amount

    if removed:
        logger.info("Decayed %d RP over %d missed days", removed, elapsed - 1)
    return removed


def update_streak(ledger: ProgressionLedger, now, tz_name: Optional[str] = None) -> int:
    """Advance the day streak for activity on `now`'s calendar day."""
    today = local_day(now, tz_name)
    if ledger.last_activity_date is None:
        ledger.current_streak = 1
    else:
        elapsed = days_between(ledger.last_activity_date, today, tz_name)
        if elapsed == 1:
            ledger.current_streak += 1
        elif elapsed > 1:
            ledger.current_streak = 1
        elif ledger.current_streak == 0:
            ledger.current_streak = 1
    ledger.longest_streak = max(ledger.longest_streak, ledger.current_streak)
    return ledger.current_streak


def record_activity(ledger: ProgressionLedger, now, tz_name: Optional[str] = None) -> int:
    streak = update_streak(ledger, now, tz_name)
    ledger.last_activity_date = local_day(now, tz_name)
    return streak


def _next_reset_utc(now: datetime, tz_name: Optional[str], weekday: int, hour: int) -> datetime:
    # Boundary is local wall time; stored in UTC
    local_now = to_local_datetime(now, tz_name) if tz_name else now
    return next_weekly_reset(local_now, weekday, hour).astimezone(timezone.utc)


def weekly_reset(
    ledger: ProgressionLedger,
    now: datetime,
    weekday: int = 0,
    hour: int = 0,
    tz_name: Optional[str] = None,
) -> bool:
    """Zero the weekly RP counter once `now` passes the reset boundary.

    The boundary is `weekday` at `hour`:00 in `tz_name` (or in now's own
    timezone when no zone is configured).
    """
    if ledger.weekly_reset_at is None:
        ledger.weekly_reset_at = _next_reset_utc(now, tz_name, weekday, hour)
        return False
    if now < ledger.weekly_reset_at:
        return False
    ledger.weekly_rp = 0
    ledger.weekly_reset_at = _next_reset_utc(now, tz_name, weekday, hour)
    return True


@dataclass
class DailyCheck:
    weekly_reset: bool
    rp_decayed: int
    rp: int


def daily_check(
    ledger: ProgressionLedger,
    now: datetime,
    rng: Optional[random.Random] = None,
    tz_name: Optional[str] = None,
    weekday: int = 0,
    hour: int = 0,
) -> DailyCheck:
    """Checks that run independently of any sprint (app launch, midnight)."""
    did_reset = weekly_reset(ledger, now, weekday, hour, tz_name)
    decayed = apply_daily_decay(ledger, now, rng, tz_name)
    return DailyCheck(weekly_reset=did_reset, rp_decayed=decayed, rp=ledger.rp)
