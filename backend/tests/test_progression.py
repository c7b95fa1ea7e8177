import random
from datetime import date, datetime, timezone

import pytest

from ippo.core import constants as C
from ippo.core.content import RANKS, TOP_RANK_RP_CEILING, ConfigurationError, validate_content
from ippo.engine.progression import (
    PetInstance,
    ProgressionLedger,
    apply_daily_decay,
    apply_reward,
    daily_check,
    division_for_rp,
    level_for_xp,
    rank_for_rp,
    record_activity,
    stage_for_xp,
    streak_bonus,
    update_streak,
    weekly_reset,
    xp_progress,
    xp_required,
)
from ippo.schemas.reward import Rarity, RewardBundle


def noon(y, m, d):
    return datetime(y, m, d, 12, 0, tzinfo=timezone.utc)


def test_content_tables_validate():
    validate_content()


def test_rank_thresholds():
    assert rank_for_rp(0).name == "Bronze"
    assert rank_for_rp(-50).name == "Bronze"
    for rank in RANKS:
        assert rank_for_rp(rank.base_rp) == rank
    assert rank_for_rp(999).name == "Bronze"
    assert rank_for_rp(10**9).name == "Diamond"


def test_divisions_split_rank_in_thirds():
    assert division_for_rp(0) == 1
    assert division_for_rp(333) == 1
    assert division_for_rp(334) == 2
    assert division_for_rp(999) == 3
    assert division_for_rp(1000) == 1


def test_top_rank_divisions_use_configured_ceiling():
    # The top rank has no next threshold; its span ends at the ceiling
    assert TOP_RANK_RP_CEILING == 20_000
    assert division_for_rp(10_000) == 1
    assert division_for_rp(13_334) == 2
    assert division_for_rp(16_667) == 3
    assert division_for_rp(50_000) == 3
    assert division_for_rp(13_334, top_rank_ceiling=40_000) == 1


def test_level_curve():
    assert xp_required(1) == 0
    assert xp_required(2) == 30
    assert xp_required(3) == 62
    assert level_for_xp(0) == 1
    assert level_for_xp(29) == 1
    assert level_for_xp(30) == 2
    assert level_for_xp(10**9) == C.MAX_LEVEL


def test_level_is_monotonic():
    previous = 1
    for xp in range(0, 20_000, 37):
        level = level_for_xp(xp)
        assert previous <= level <= C.MAX_LEVEL
        previous = level


def test_xp_progress():
    assert xp_progress(0) == 0
    assert xp_progress(15) == pytest.approx(0.5)
    assert xp_progress(10**9) == 1.0


def test_pet_stages():
    assert stage_for_xp(0) == 1
    assert stage_for_xp(199) == 1
    assert stage_for_xp(200) == 2
    assert stage_for_xp(12_000) == 10
    assert stage_for_xp(10**9) == 10
    pet = PetInstance(id="p", definition_id="pet_01", experience=1_000)
    assert pet.evolution_stage == 4
    assert pet.stage_name == C.PET_STAGE_NAMES[3]


def test_streak_bonus_tiers():
    assert streak_bonus(0) == 0
    assert streak_bonus(2) == 0
    assert streak_bonus(3) == 0.05
    assert streak_bonus(7) == 0.10
    assert streak_bonus(15) == 0.20
    assert streak_bonus(400) == 0.20


def test_apply_reward_adds_exact_amounts():
    ledger = ProgressionLedger(rp=100, weekly_rp=40, experience=10)
    bundle = RewardBundle(rp=17, xp=22, coins=9)
    apply_reward(ledger, bundle, [])
    assert ledger.rp == 117
    assert ledger.weekly_rp == 57
    assert ledger.experience == 32
    assert ledger.coins == 9
    assert ledger.level == level_for_xp(32) == 2
    assert ledger.total_sprints == 1
    assert ledger.total_valid_sprints == 1
    assert ledger.sprints_since_last_catch == 1


def test_level_up_grants_ability_points():
    ledger = ProgressionLedger()
    outcome = apply_reward(ledger, RewardBundle(xp=62), [])
    assert outcome.levels_gained == 2
    assert ledger.ability_points == 2


def test_invalid_sprint_counts_but_keeps_catch_counter():
    ledger = ProgressionLedger(sprints_since_last_catch=4)
    apply_reward(ledger, RewardBundle.empty(), [], sprint_valid=False)
    assert ledger.total_sprints == 1
    assert ledger.total_valid_sprints == 0
    assert ledger.sprints_since_last_catch == 4


def test_time_reward_leaves_sprint_counters_alone():
    ledger = ProgressionLedger(sprints_since_last_catch=4)
    apply_reward(ledger, RewardBundle(xp=15, coins=3), [], counts_as_sprint=False)
    assert ledger.experience == 15
    assert ledger.coins == 3
    assert ledger.total_sprints == 0
    assert ledger.total_valid_sprints == 0
    assert ledger.sprints_since_last_catch == 4


@pytest.mark.parametrize("mood,gained", [(9, 20), (6, 17), (2, 12)])
def test_pet_xp_scaled_by_mood(mood, gained):
    pet = PetInstance(id="p", definition_id="pet_01", is_equipped=True, mood=mood)
    apply_reward(ProgressionLedger(), RewardBundle(pet_xp=20), [pet])
    assert pet.experience == gained


def test_pet_evolution_awards_pet_points():
    pet = PetInstance(id="p", definition_id="pet_01", is_equipped=True, experience=490)
    ledger = ProgressionLedger()
    outcome = apply_reward(ledger, RewardBundle(pet_xp=20), [pet])
    assert pet.evolution_stage == 3
    assert outcome.pet_stages_gained == 1
    assert ledger.pet_points == 1


def test_pet_xp_skips_unequipped_pets():
    pet = PetInstance(id="p", definition_id="pet_01", is_equipped=False)
    apply_reward(ProgressionLedger(), RewardBundle(pet_xp=20), [pet])
    assert pet.experience == 0


def test_caught_pet_and_loot_are_registered():
    ledger = ProgressionLedger(sprints_since_last_catch=6)
    pets = []
    now = noon(2025, 1, 1)
    outcome = apply_reward(
        ledger,
        RewardBundle(loot_rarity=Rarity.rare, caught_pet_id="pet_05"),
        pets,
        now=now,
        new_pet_id="uuid-1",
    )
    assert [p.definition_id for p in pets] == ["pet_05"]
    assert outcome.caught_pet.id == "uuid-1"
    assert outcome.caught_pet.caught_at == now
    assert ledger.sprints_since_last_catch == 0
    assert ledger.loot_boxes == {"rare": 1}


def test_bronze_never_decays():
    ledger = ProgressionLedger(rp=900, last_activity_date=date(2025, 1, 1))
    assert apply_daily_decay(ledger, noon(2025, 3, 1), random.Random(1), "UTC") == 0
    assert ledger.rp == 900


def test_decay_charges_each_missed_day_once():
    ledger = ProgressionLedger(rp=2_000, last_activity_date=date(2025, 1, 1))
    # Jan 2 and Jan 3 were missed; Jan 4 is today
    removed = apply_daily_decay(ledger, noon(2025, 1, 4), random.Random(1), "UTC")
    assert 10 <= removed <= 20
    assert ledger.rp == 2_000 - removed
    assert ledger.decay_applied_through == date(2025, 1, 3)

    assert apply_daily_decay(ledger, noon(2025, 1, 4), random.Random(1), "UTC") == 0

    # one more missed day
    again = apply_daily_decay(ledger, noon(2025, 1, 5), random.Random(1), "UTC")
    assert 5 <= again <= 10


def test_no_decay_for_yesterday_or_today():
    ledger = ProgressionLedger(rp=5_000, last_activity_date=date(2025, 1, 3))
    assert apply_daily_decay(ledger, noon(2025, 1, 3), tz_name="UTC") == 0
    assert apply_daily_decay(ledger, noon(2025, 1, 4), tz_name="UTC") == 0
    assert ledger.rp == 5_000


def test_decay_stops_once_rank_drops_to_bronze():
    ledger = ProgressionLedger(rp=1_005, last_activity_date=date(2025, 1, 1))
    apply_daily_decay(ledger, noon(2025, 2, 1), random.Random(5), "UTC")
    assert 990 <= ledger.rp < 1_000
    assert ledger.rank.name == "Bronze"


def test_decay_without_activity_is_noop():
    ledger = ProgressionLedger(rp=5_000)
    assert apply_daily_decay(ledger, noon(2025, 1, 4), tz_name="UTC") == 0


def test_streak_updates():
    ledger = ProgressionLedger()
    assert record_activity(ledger, noon(2025, 1, 1), "UTC") == 1
    assert record_activity(ledger, noon(2025, 1, 2), "UTC") == 2
    assert record_activity(ledger, noon(2025, 1, 2), "UTC") == 2
    assert record_activity(ledger, noon(2025, 1, 3), "UTC") == 3
    assert record_activity(ledger, noon(2025, 1, 7), "UTC") == 1
    assert ledger.longest_streak == 3
    assert ledger.last_activity_date == date(2025, 1, 7)


def test_update_streak_does_not_move_activity_date():
    ledger = ProgressionLedger(current_streak=4, last_activity_date=date(2025, 1, 1))
    assert update_streak(ledger, noon(2025, 1, 2), "UTC") == 5
    assert ledger.last_activity_date == date(2025, 1, 1)


def test_weekly_reset():
    ledger = ProgressionLedger(weekly_rp=250)
    wednesday = datetime(2025, 1, 8, 10, 0, tzinfo=timezone.utc)
    assert not weekly_reset(ledger, wednesday)
    assert ledger.weekly_reset_at == datetime(2025, 1, 13, 0, 0, tzinfo=timezone.utc)
    assert ledger.weekly_rp == 250

    assert not weekly_reset(ledger, datetime(2025, 1, 12, 23, 59, tzinfo=timezone.utc))
    assert weekly_reset(ledger, datetime(2025, 1, 13, 0, 0, tzinfo=timezone.utc))
    assert ledger.weekly_rp == 0
    assert ledger.weekly_reset_at == datetime(2025, 1, 20, 0, 0, tzinfo=timezone.utc)


def test_weekly_reset_follows_configured_timezone():
    ledger = ProgressionLedger(weekly_rp=250)
    rng = random.Random(0)
    tz = "America/New_York"
    daily_check(ledger, datetime(2025, 1, 8, 12, 0, tzinfo=timezone.utc), rng, tz)
    # Monday 00:00 in New York is 05:00 UTC in January
    assert ledger.weekly_reset_at == datetime(2025, 1, 13, 5, 0, tzinfo=timezone.utc)
    assert ledger.weekly_reset_at.tzinfo == timezone.utc

    # Sunday 20:00 local: still last week
    summary = daily_check(ledger, datetime(2025, 1, 13, 1, 0, tzinfo=timezone.utc), rng, tz)
    assert not summary.weekly_reset
    assert ledger.weekly_rp == 250

    summary = daily_check(ledger, datetime(2025, 1, 13, 5, 0, tzinfo=timezone.utc), rng, tz)
    assert summary.weekly_reset
    assert ledger.weekly_rp == 0
    assert ledger.weekly_reset_at == datetime(2025, 1, 20, 5, 0, tzinfo=timezone.utc)


def test_daily_check_summary():
    ledger = ProgressionLedger(
        rp=3_500,
        weekly_rp=80,
        last_activity_date=date(2025, 1, 1),
        weekly_reset_at=datetime(2025, 1, 6, 0, 0, tzinfo=timezone.utc),
    )
    summary = daily_check(ledger, noon(2025, 1, 8), random.Random(2), "UTC")
    assert summary.weekly_reset
    assert ledger.weekly_rp == 0
    # Gold: 6 missed days at 10-20 each
    assert 60 <= summary.rp_decayed <= 120
    assert summary.rp == ledger.rp


def test_validate_content_rejects_broken_tiers(monkeypatch):
    monkeypatch.setattr(C, "ENCOUNTER_PROBABILITY_TIERS", [(60.0, 90.0, 0.02), (80.0, 120.0, 0.05)])
    with pytest.raises(ConfigurationError):
        validate_content()


def test_validate_content_rejects_bad_probability(monkeypatch):
    monkeypatch.setattr(C, "LOOT_DROP_CHANCE", 1.5)
    with pytest.raises(ValueError):
        validate_content()
