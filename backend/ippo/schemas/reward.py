from datetime import datetime
from enum import Enum
from typing import Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field

from ippo.schemas.sprint import SprintResult


class Rarity(str, Enum):
    common = "common"
    uncommon = "uncommon"
    rare = "rare"
    epic = "epic"
    legendary = "legendary"


class RewardBundle(BaseModel):
    """What one sprint earned. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    rp: int = Field(default=0, ge=0)
    xp: int = Field(default=0, ge=0)
    coins: int = Field(default=0, ge=0)
    pet_xp: int = Field(default=0, ge=0)
    loot_rarity: Optional[Rarity] = None
    caught_pet_id: Optional[str] = None
    # Summed bonus fraction per channel (rp, xp, coins, pet_xp), for display
    bonus_fractions: dict[str, float] = Field(default_factory=dict)

    @classmethod
    def empty(cls) -> "RewardBundle":
        return cls()

    @property
    def is_empty(self) -> bool:
        return (
            self.rp == 0
            and self.xp == 0
            and self.coins == 0
            and self.pet_xp == 0
            and self.loot_rarity is None
            and self.caught_pet_id is None
        )


class LootBoxContents(BaseModel):
    model_config = ConfigDict(frozen=True)

    rarity: Rarity
    coins: int
    gems: int


class Encounter(BaseModel):
    """History record of one encounter and what came of it."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    triggered_at: datetime
    sprint_result: Optional[SprintResult] = None
    reward: Optional[RewardBundle] = None
