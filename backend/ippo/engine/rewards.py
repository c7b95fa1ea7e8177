"""Sprint reward resolution.

Turns a valid SprintResult plus the player's current standing into an
immutable RewardBundle. Random draws happen in a fixed order (base amounts
rp, xp, coins, pet xp; loot gate; loot rarity; catch roll; catch pick) so
a seeded RNG reproduces a bundle exactly.

Applying the bundle to the ledger is a separate step
(`progression.apply_reward`).
"""
import logging
import math
import random
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ippo.core import constants as C
from ippo.core.content import BonusKind, ability_node, catchable_pet_ids, pet_by_id
from ippo.engine.progression import (
    PetInstance,
    ProgressionLedger,
    equipped_pet,
    owned_pet_ids,
    streak_bonus,
)
from ippo.schemas.reward import LootBoxContents, Rarity, RewardBundle
from ippo.schemas.sprint import SprintResult

logger = logging.getLogger(__name__)

REWARD_CHANNELS = ("rp", "xp", "coins", "pet_xp")


@dataclass
class RunningTotals:
    """Summed bonus fractions, one entry per BonusKind channel."""

    fractions: dict[str, float] = field(default_factory=dict)

    def add(self, channel: str, value: float) -> None:
        self.fractions[channel] = self.fractions.get(channel, 0.0) + value

    def get(self, channel: str) -> float:
        return self.fractions.get(channel, 0.0)


@dataclass(frozen=True)
class Bonus:
    kind: BonusKind
    value: float
    source: str = ""

    def apply(self, totals: RunningTotals) -> None:
        if self.kind == BonusKind.all:
            for channel in ("rp", "xp", "coins"):
                totals.add(channel, self.value)
        else:
            totals.add(self.kind.value, self.value)


@dataclass
class RewardContext:
    """Everything about the player the resolver needs to read."""

    ledger: ProgressionLedger
    pets: list[PetInstance] = field(default_factory=list)

    @property
    def equipped(self) -> Optional[PetInstance]:
        return equipped_pet(self.pets)


def pet_ability_bonus(pet: Optional[PetInstance], sprint_duration: Optional[float] = None) -> Optional[Bonus]:
    """The equipped pet's special ability as a Bonus, or None if it has no
    effect here. Duration-conditional abilities need `sprint_duration`."""
    if pet is None:
        return None
    definition = pet_by_id(pet.definition_id)
    if definition is None:
        return None
    ability = definition.ability
    conditional = ability.min_sprint_s is not None or ability.max_sprint_s is not None
    if conditional and (sprint_duration is None or not ability.applies_to(sprint_duration)):
        return None
    return Bonus(ability.kind, ability.value * pet.effectiveness, source=f"pet:{definition.id}")


def collect_bonuses(context: RewardContext, sprint_duration: float) -> list[Bonus]:
    ledger = context.ledger
    bonuses = []

    rank = ledger.rank
    if rank.reward_bonus:
        bonuses.append(Bonus(BonusKind.all, rank.reward_bonus, source=f"rank:{rank.name}"))

    streak = streak_bonus(ledger.current_streak)
    if streak:
        bonuses.append(Bonus(BonusKind.all, streak, source="streak"))

    for node_id in sorted(ledger.unlocked_abilities):
        node = ability_node(node_id)
        if node is None or not node.value:
            continue
        bonuses.append(Bonus(node.kind, node.value, source=f"ability:{node.id}"))

    pet_bonus = pet_ability_bonus(context.equipped, sprint_duration)
    if pet_bonus is not None:
        bonuses.append(pet_bonus)

    return bonuses


def total_bonuses(bonuses: Iterable[Bonus]) -> RunningTotals:
    totals = RunningTotals()
    for bonus in bonuses:
        bonus.apply(totals)
    return totals


def encounter_boost(pets: list[PetInstance], unlocked_abilities: Iterable[str] = ()) -> float:
    """Additive encounter probability from the equipped pet and abilities."""
    boosts = [Bonus(n.kind, n.value) for n in map(ability_node, unlocked_abilities) if n is not None]
    pet_bonus = pet_ability_bonus(equipped_pet(pets))
    if pet_bonus is not None:
        boosts.append(pet_bonus)
    return total_bonuses(boosts).get(BonusKind.encounter.value)


def apply_fraction(base: int, fraction: float) -> int:
    return max(0, math.floor(base * (1.0 + fraction)))


# --- loot ---


def loot_weights(luck: float) -> dict[str, float]:
    luck = max(0.0, luck)
    weights = dict(C.LOOT_BASE_WEIGHTS)
    for rarity, coefficient in C.LOOT_LUCK_COEFFICIENTS.items():
        weights[rarity] += luck * coefficient
    weights["common"] = max(C.LOOT_COMMON_FLOOR, weights["common"] - luck)
    return weights


def roll_loot_rarity(roll: float, luck: float = 0.0) -> Rarity:
    weights = loot_weights(luck)
    cumulative = 0.0
    for rarity in C.RARITY_ORDER:
        cumulative += weights[rarity]
        if roll <= cumulative:
            return Rarity(rarity)
    return Rarity.common


def open_loot_box(
    rarity: Rarity,
    rng: Optional[random.Random] = None,
    coin_bonus: float = 0.0,
) -> LootBoxContents:
    rng = rng or random.Random()
    rarity = Rarity(rarity)
    (coin_lo, coin_hi), (gem_lo, gem_hi) = C.LOOT_BOX_CONTENTS[rarity.value]
    coins = rng.randint(coin_lo, coin_hi)
    gems = rng.randint(gem_lo, gem_hi)
    return LootBoxContents(rarity=rarity, coins=apply_fraction(coins, coin_bonus), gems=gems)


# --- catch ---


def base_catch_rate(owned_count: int) -> float:
    rates = C.CATCH_RATES_BY_OWNED
    return rates[min(max(0, owned_count), len(rates) - 1)]


def catch_rate(owned_count: int, bonus: float) -> float:
    return min(1.0, max(0.0, base_catch_rate(owned_count) + bonus))


# --- run completion ---


def run_reward(elapsed_seconds: float, has_pet: bool = True) -> RewardBundle:
    """Time-based reward for a finished run, per whole minute."""
    minutes = max(0, int(elapsed_seconds // 60))
    return RewardBundle(
        xp=minutes * C.RUN_XP_PER_MINUTE,
        coins=minutes * C.RUN_COINS_PER_MINUTE,
        pet_xp=minutes * C.RUN_PET_XP_PER_MINUTE if has_pet else 0,
    )


# --- resolver ---


class RewardResolver:
    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def resolve(self, result: SprintResult, context: RewardContext) -> RewardBundle:
        if not result.is_valid:
            return RewardBundle.empty()

        rng = self._rng
        base = {
            "rp": rng.randint(*C.RP_PER_SPRINT),
            "xp": rng.randint(*C.XP_PER_SPRINT),
            "coins": rng.randint(*C.COINS_PER_SPRINT),
            "pet_xp": rng.randint(*C.PET_XP_PER_SPRINT),
        }

        totals = total_bonuses(collect_bonuses(context, result.duration))
        final = {ch: apply_fraction(base[ch], totals.get(ch)) for ch in REWARD_CHANNELS}

        loot = self._roll_loot(totals.get(BonusKind.loot_luck.value))
        caught = self._roll_catch(context, totals.get(BonusKind.catch_rate.value))
        if caught is not None:
            final["coins"] += C.COINS_FOR_CATCHING_PET

        if context.equipped is None:
            final["pet_xp"] = 0

        bundle = RewardBundle(
            rp=final["rp"],
            xp=final["xp"],
            coins=final["coins"],
            pet_xp=final["pet_xp"],
            loot_rarity=loot,
            caught_pet_id=caught,
            bonus_fractions={ch: totals.get(ch) for ch in REWARD_CHANNELS},
        )
        logger.debug("Resolved reward %s", bundle)
        return bundle

    def _roll_loot(self, luck: float) -> Optional[Rarity]:
        if not self._rng.random() < C.LOOT_DROP_CHANCE:
            return None
        return roll_loot_rarity(self._rng.random(), luck)

    def _roll_catch(self, context: RewardContext, bonus: float) -> Optional[str]:
        owned = owned_pet_ids(context.pets)
        candidates = sorted(pid for pid in catchable_pet_ids() if pid not in owned)
        if not candidates:
            return None

        owned_catchable = len(set(catchable_pet_ids()) & owned)
        rate = catch_rate(owned_catchable, bonus)
        guaranteed = context.ledger.sprints_since_last_catch >= C.CATCH_PITY_SPRINTS
        if not (self._rng.random() < rate or guaranteed):
            return None
        return self._rng.choice(candidates)
