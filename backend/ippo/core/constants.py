"""Shared game-balance constants.

Centralizes the numbers used across sprint validation, encounters, rewards
and progression so we can document and tune them in one place.
"""

# --- Sprint ---

# Target duration is drawn uniformly from this closed range (seconds)
SPRINT_MIN_DURATION_S = 30.0
SPRINT_MAX_DURATION_S = 45.0

COUNTDOWN_SECONDS = 3
COUNTDOWN_TICK_S = 1.0
SPRINT_TICK_S = 0.1

# Delay before a finished session goes back to idle
COMPLETED_RESET_DELAY_S = 2.0
CANCELLED_RESET_DELAY_S = 1.0

FINAL_SECONDS_WINDOW_S = 5.0

# --- Sprint scoring ---

MIN_HR_INCREASE_BPM = 20
TARGET_HR_ZONE_PERCENT = 0.80  # Zone 4-5 = >80% max HR
MIN_TIME_IN_ZONE_FRACTION = 0.70
ELEVATED_HR_MARGIN_BPM = 10

MIN_CADENCE_INCREASE_PERCENT = 0.15
MIN_PEAK_CADENCE_SPM = 160
PRE_CADENCE_SAMPLES = 3

MIN_HR_DERIVATIVE_BPM_S = 3.0
HRD_WINDOW_SAMPLES = 10  # ~1 sample/sec

HR_WEIGHT = 0.50
CADENCE_WEIGHT = 0.35
HRD_WEIGHT = 0.15

VALIDATION_THRESHOLD = 60.0

DEFAULT_MAX_HR = 190

# --- Encounters ---

ENCOUNTER_CHECK_INTERVAL_S = 10.0
WARMUP_DURATION_S = 60.0
MIN_TIME_BETWEEN_ENCOUNTERS_S = 60.0
PITY_TIMER_MAX_S = 180.0
MAX_ENCOUNTER_PROBABILITY = 0.15
RECOVERY_DURATION_S = 45.0
RECOVERY_TICK_S = 1.0

# (low, high, probability); closed ranges, first match wins
ENCOUNTER_PROBABILITY_TIERS = [
    (60.0, 90.0, 0.02),
    (90.0, 120.0, 0.05),
    (120.0, 150.0, 0.08),
    (150.0, 180.0, 0.12),
]

# --- Rewards ---

RP_PER_SPRINT = (10, 20)
XP_PER_SPRINT = (15, 25)
COINS_PER_SPRINT = (8, 12)
PET_XP_PER_SPRINT = (15, 25)

COINS_FOR_CATCHING_PET = 25

# Paid once at the end of a run, per whole minute run
RUN_XP_PER_MINUTE = 5
RUN_COINS_PER_MINUTE = 1
RUN_PET_XP_PER_MINUTE = 5

# (min consecutive days, bonus fraction); highest matching tier wins
STREAK_BONUS_TIERS = [
    (3, 0.05),
    (7, 0.10),
    (15, 0.20),
]

LOOT_DROP_CHANCE = 0.25

RARITY_ORDER = ["common", "uncommon", "rare", "epic", "legendary"]

LOOT_BASE_WEIGHTS = {
    "common": 0.60,
    "uncommon": 0.25,
    "rare": 0.10,
    "epic": 0.04,
    "legendary": 0.01,
}

# Luck moves weight out of common into the rarer tiers
LOOT_LUCK_COEFFICIENTS = {
    "uncommon": 0.40,
    "rare": 0.30,
    "epic": 0.20,
    "legendary": 0.10,
}
LOOT_COMMON_FLOOR = 0.20

# Loot box contents per rarity: (coins range, gems range)
LOOT_BOX_CONTENTS = {
    "common": ((50, 100), (0, 0)),
    "uncommon": ((100, 200), (5, 10)),
    "rare": ((200, 400), (10, 25)),
    "epic": ((400, 800), (25, 50)),
    "legendary": ((800, 1500), (50, 100)),
}

# Catch rate by number of collectibles already owned; last entry covers 3+
CATCH_RATES_BY_OWNED = [1.0, 0.25, 0.15, 0.08]
CATCH_PITY_SPRINTS = 15

# --- Progression ---

MAX_LEVEL = 100
LEVEL_XP_BASE = 30
LEVEL_XP_SCALING = 0.02

ABILITY_POINTS_PER_LEVEL = 1
PET_POINT_STAGES = [3, 6, 9, 10]

# --- Pets ---

MAX_PET_STAGE = 10

# Cumulative XP for each stage (index 0 = stage 1)
PET_STAGE_XP_THRESHOLDS = [0, 200, 500, 1_000, 1_800, 3_000, 4_500, 6_500, 9_000, 12_000]

PET_STAGE_NAMES = [
    "Newborn", "Sprout", "Seedling", "Bloom", "Juvenile",
    "Adolescent", "Young", "Mature", "Prime", "Elder",
]

MIN_MOOD = 1
MAX_MOOD = 10
DEFAULT_MOOD = 8

MAX_PET_ABILITY_LEVEL = 5
