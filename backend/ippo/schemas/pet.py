from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ippo.schemas.reward import Rarity


class PetRead(BaseModel):
    id: str
    definition_id: str
    name: str
    description: str
    ability: str
    experience: int
    evolution_stage: int
    stage_name: str
    effectiveness: float
    mood: int
    ability_level: int
    is_equipped: bool
    caught_at: Optional[datetime] = None


class PetGrantIn(BaseModel):
    definition_id: str
    equip: bool = False


class LootOpenIn(BaseModel):
    rarity: Rarity
