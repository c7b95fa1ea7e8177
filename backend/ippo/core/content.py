"""Static game content: ranks, pet catalog and the player ability tree.

These tables are read-only configuration. `validate_content()` is run once
at startup so a broken table fails loudly instead of producing odd rewards
mid-run.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ippo.core import constants as C


class ConfigurationError(ValueError):
    """Raised when a static content table is malformed."""


class BonusKind(str, Enum):
    rp = "rp"
    xp = "xp"
    coins = "coins"
    all = "all"  # rp + xp + coins
    pet_xp = "pet_xp"
    catch_rate = "catch_rate"
    loot_luck = "loot_luck"
    encounter = "encounter"
    loot_coins = "loot_coins"
    # Effects outside sprint resolution (care, passive running income)
    passive = "passive"
    feeding = "feeding"
    mood_decay = "mood_decay"
    evolution_discount = "evolution_discount"


# --- Ranks ---


@dataclass(frozen=True)
class RankDef:
    name: str
    base_rp: int
    reward_bonus: float
    decay_per_day: tuple[int, int]


RANKS: list[RankDef] = [
    RankDef("Bronze", 0, 0.00, (0, 0)),
    RankDef("Silver", 1_000, 0.05, (5, 10)),
    RankDef("Gold", 3_000, 0.10, (10, 20)),
    RankDef("Platinum", 6_000, 0.15, (15, 30)),
    RankDef("Diamond", 10_000, 0.20, (25, 50)),
]

# Upper end of the top rank's division span. The top rank has no next
# rank to bound it, so its divisions are sized from this value instead.
TOP_RANK_RP_CEILING = 20_000

DIVISIONS_PER_RANK = 3


def next_rank(rank: RankDef) -> Optional[RankDef]:
    idx = RANKS.index(rank)
    return RANKS[idx + 1] if idx + 1 < len(RANKS) else None


# --- Pets ---


@dataclass(frozen=True)
class PetAbility:
    """A collectible's special ability.

    `value` is the bonus at effectiveness 1.0. Duration bounds are
    exclusive and only checked when set.
    """

    name: str
    kind: BonusKind
    value: float
    min_sprint_s: Optional[float] = None
    max_sprint_s: Optional[float] = None

    def applies_to(self, sprint_duration: float) -> bool:
        if self.min_sprint_s is not None and not sprint_duration > self.min_sprint_s:
            return False
        if self.max_sprint_s is not None and not sprint_duration < self.max_sprint_s:
            return False
        return True


@dataclass(frozen=True)
class PetDefinition:
    id: str
    name: str
    description: str
    ability: PetAbility
    is_starter: bool = False


PETS: list[PetDefinition] = [
    PetDefinition(
        "pet_01", "Ember", "A fiery spirit that burns brightest in short bursts",
        PetAbility("Ignite", BonusKind.rp, 0.15, max_sprint_s=35.0),
        is_starter=True,
    ),
    PetDefinition(
        "pet_02", "Splash", "A water creature that rewards steady effort",
        PetAbility("Flow", BonusKind.passive, 0.10),
        is_starter=True,
    ),
    PetDefinition(
        "pet_03", "Sprout", "A plant being that helps all pets grow faster",
        PetAbility("Growth", BonusKind.pet_xp, 0.20),
        is_starter=True,
    ),
    PetDefinition(
        "pet_04", "Zephyr", "An air spirit that attracts more sprint opportunities",
        PetAbility("Tailwind", BonusKind.encounter, 0.10),
    ),
    PetDefinition(
        "pet_05", "Pebble", "A stone creature that stays content longer",
        PetAbility("Fortitude", BonusKind.mood_decay, 0.15),
    ),
    PetDefinition(
        "pet_06", "Spark", "An electric being that amplifies rewards",
        PetAbility("Energize", BonusKind.loot_coins, 0.25),
    ),
    PetDefinition(
        "pet_07", "Shadow", "A dark creature that helps find others",
        PetAbility("Stealth", BonusKind.catch_rate, 0.05),
    ),
    PetDefinition(
        "pet_08", "Frost", "An ice spirit that maximizes care rewards",
        PetAbility("Preserve", BonusKind.feeding, 0.50),
    ),
    PetDefinition(
        "pet_09", "Blaze", "A fire creature that rewards sustained effort",
        PetAbility("Intensity", BonusKind.rp, 0.30, min_sprint_s=40.0),
    ),
    PetDefinition(
        "pet_10", "Luna", "A celestial being that enhances everything",
        PetAbility("Blessing", BonusKind.all, 0.05),
    ),
]

_PETS_BY_ID = {p.id: p for p in PETS}


def pet_by_id(pet_id: str) -> Optional[PetDefinition]:
    return _PETS_BY_ID.get(pet_id)


def catchable_pet_ids() -> list[str]:
    return [p.id for p in PETS if not p.is_starter]


# --- Player ability tree ---


@dataclass(frozen=True)
class AbilityNode:
    id: str
    name: str
    tier: int
    cost: int
    kind: BonusKind
    value: float
    prerequisites: tuple[str, ...] = field(default_factory=tuple)


ABILITY_NODES: list[AbilityNode] = [
    AbilityNode("core", "Runner's Core", 0, 0, BonusKind.all, 0.0),
    # RP path
    AbilityNode("rp_1", "Reputation I", 1, 1, BonusKind.rp, 0.05, ("core",)),
    AbilityNode("rp_2", "Reputation II", 2, 2, BonusKind.rp, 0.10, ("rp_1",)),
    AbilityNode("lucky_runner", "Lucky Runner", 3, 3, BonusKind.catch_rate, 0.02, ("rp_2",)),
    # XP path
    AbilityNode("xp_1", "Quick Learner I", 1, 1, BonusKind.xp, 0.05, ("core",)),
    AbilityNode("xp_2", "Quick Learner II", 2, 2, BonusKind.xp, 0.10, ("xp_1",)),
    # Sprint path
    AbilityNode("sprint_1", "Sprint Power I", 1, 1, BonusKind.all, 0.05, ("core",)),
    AbilityNode("sprint_2", "Sprint Power II", 2, 2, BonusKind.all, 0.10, ("sprint_1",)),
    AbilityNode("sprint_recovery", "Sprint Recovery", 3, 3, BonusKind.all, 0.15, ("sprint_2",)),
    AbilityNode("sprint_streak", "Sprint Streak", 4, 4, BonusKind.passive, 0.50, ("sprint_recovery",)),
    AbilityNode("sprint_mastery", "Sprint Mastery", 5, 5, BonusKind.all, 0.20, ("sprint_streak",)),
    # Pet bond path
    AbilityNode("pet_lover", "Pet Lover", 1, 1, BonusKind.pet_xp, 0.15, ("core",)),
    AbilityNode("pet_whisperer", "Pet Whisperer", 2, 2, BonusKind.pet_xp, 0.25, ("pet_lover",)),
    AbilityNode("evolution_boost", "Evolution Boost", 3, 3, BonusKind.evolution_discount, 0.20, ("pet_whisperer",)),
    AbilityNode("catch_rate_up", "Catch Rate Up", 4, 4, BonusKind.catch_rate, 0.03, ("evolution_boost",)),
    AbilityNode("pet_mastery", "Pet Mastery", 5, 5, BonusKind.pet_xp, 0.30, ("catch_rate_up",)),
    # Wealth path
    AbilityNode("coin_1", "Coin Boost I", 1, 1, BonusKind.coins, 0.05, ("core",)),
    AbilityNode("coin_2", "Coin Boost II", 2, 2, BonusKind.coins, 0.10, ("coin_1",)),
    AbilityNode("treasure_sense", "Treasure Sense", 3, 3, BonusKind.coins, 0.15, ("coin_2",)),
    AbilityNode("loot_luck", "Loot Luck", 4, 4, BonusKind.loot_luck, 0.15, ("treasure_sense",)),
    AbilityNode("wealth_mastery", "Wealth Mastery", 5, 5, BonusKind.coins, 0.25, ("loot_luck",)),
]

_NODES_BY_ID = {n.id: n for n in ABILITY_NODES}


def ability_node(node_id: str) -> Optional[AbilityNode]:
    return _NODES_BY_ID.get(node_id)


# --- Validation ---


def _check_probability(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"{name} must be within [0, 1], got {value}")


def validate_content() -> None:
    """Sanity-check every static table. Raises ConfigurationError."""
    if not RANKS or RANKS[0].base_rp != 0:
        raise ConfigurationError("lowest rank must start at 0 RP")
    for lower, upper in zip(RANKS, RANKS[1:]):
        if upper.base_rp <= lower.base_rp:
            raise ConfigurationError(f"rank {upper.name} threshold must exceed {lower.name}")
    if TOP_RANK_RP_CEILING <= RANKS[-1].base_rp:
        raise ConfigurationError("top rank ceiling must exceed its base RP")
    for rank in RANKS:
        lo, hi = rank.decay_per_day
        if lo < 0 or hi < lo:
            raise ConfigurationError(f"rank {rank.name} has an invalid decay range")

    prev_high = None
    for low, high, probability in C.ENCOUNTER_PROBABILITY_TIERS:
        if high < low:
            raise ConfigurationError(f"encounter tier {low}-{high} is inverted")
        if prev_high is not None and low < prev_high:
            raise ConfigurationError(f"encounter tier {low}-{high} overlaps the previous tier")
        _check_probability("encounter tier probability", probability)
        prev_high = high
    _check_probability("max encounter probability", C.MAX_ENCOUNTER_PROBABILITY)
    if C.PITY_TIMER_MAX_S < C.MIN_TIME_BETWEEN_ENCOUNTERS_S:
        raise ConfigurationError("pity timer must not be shorter than the minimum interval")

    _check_probability("loot drop chance", C.LOOT_DROP_CHANCE)
    if set(C.LOOT_BASE_WEIGHTS) != set(C.RARITY_ORDER):
        raise ConfigurationError("loot weights must cover every rarity")
    for rarity, weight in C.LOOT_BASE_WEIGHTS.items():
        _check_probability(f"{rarity} loot weight", weight)
    for rate in C.CATCH_RATES_BY_OWNED:
        _check_probability("catch rate", rate)

    if len(C.PET_STAGE_XP_THRESHOLDS) != C.MAX_PET_STAGE:
        raise ConfigurationError("pet stage thresholds must match the stage count")
    if sorted(C.PET_STAGE_XP_THRESHOLDS) != C.PET_STAGE_XP_THRESHOLDS:
        raise ConfigurationError("pet stage thresholds must be ascending")

    if len(_PETS_BY_ID) != len(PETS):
        raise ConfigurationError("pet ids must be unique")
    for node in ABILITY_NODES:
        for prereq in node.prerequisites:
            if prereq not in _NODES_BY_ID:
                raise ConfigurationError(f"ability {node.id} requires unknown node {prereq}")
