from typing import Optional

from pydantic import BaseModel, ConfigDict

from ippo.schemas.reward import Encounter, RewardBundle
from ippo.schemas.sprint import SprintSessionRead


class EncounterStateRead(BaseModel):
    is_active: bool
    is_in_recovery: bool
    recovery_remaining: float
    time_since_last_encounter: float
    last_probability: Optional[float] = None
    probability_boost: float


class RunStateRead(BaseModel):
    run_active: bool
    latest_hr: int
    sprint: SprintSessionRead
    encounter: EncounterStateRead
    current_encounter: Optional[Encounter] = None
    last_reward: Optional[RewardBundle] = None


class RunSummary(BaseModel):
    """What one run added up to, shown after it ends."""

    model_config = ConfigDict(frozen=True)

    duration_seconds: float
    duration_display: str
    sprints: int = 0
    valid_sprints: int = 0
    encounters: int = 0
    rp_earned: int = 0
    xp_earned: int = 0
    coins_earned: int = 0
    # The per-minute part of the totals above
    time_reward: RewardBundle
