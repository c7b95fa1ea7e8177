from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class RankRead(BaseModel):
    name: str
    base_rp: int
    reward_bonus: float
    decay_min: int
    decay_max: int


class LevelRead(BaseModel):
    level: int
    xp_required: int


class LedgerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rp: int
    weekly_rp: int
    rank: str
    division: int
    experience: int
    level: int
    level_progress: float
    coins: int
    gems: int
    current_streak: int
    longest_streak: int
    streak_bonus: float
    last_activity_date: Optional[date] = None
    weekly_reset_at: Optional[datetime] = None
    ability_points: int
    pet_points: int
    unlocked_abilities: list[str]
    loot_boxes: dict[str, int]
    sprints_since_last_catch: int
    total_sprints: int
    total_valid_sprints: int


class DailyCheckRead(BaseModel):
    weekly_reset: bool
    rp_decayed: int
    rp: int
    rank: str
    division: int
