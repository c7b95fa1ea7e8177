from fastapi import APIRouter, Depends, HTTPException

from ippo.api.deps import get_engine
from ippo.core.content import pet_by_id
from ippo.engine.game import GameEngine
from ippo.engine.progression import PetInstance
from ippo.schemas.pet import LootOpenIn, PetGrantIn, PetRead
from ippo.schemas.reward import LootBoxContents

router = APIRouter(prefix="/pets", tags=["pets"])


def pet_read(pet: PetInstance) -> PetRead:
    definition = pet.definition
    return PetRead(
        id=pet.id,
        definition_id=pet.definition_id,
        name=definition.name if definition else pet.definition_id,
        description=definition.description if definition else "",
        ability=definition.ability.name if definition else "",
        experience=pet.experience,
        evolution_stage=pet.evolution_stage,
        stage_name=pet.stage_name,
        effectiveness=round(pet.effectiveness, 3),
        mood=pet.mood,
        ability_level=pet.ability_level,
        is_equipped=pet.is_equipped,
        caught_at=pet.caught_at,
    )


@router.get("/", response_model=list[PetRead])
def list_pets(engine: GameEngine = Depends(get_engine)):
    with engine.lock:
        return [pet_read(p) for p in engine.pets]


@router.post("/", response_model=PetRead)
def choose_starter(payload: PetGrantIn, engine: GameEngine = Depends(get_engine)):
    """Pick a starter pet. Collectibles can only be caught."""
    definition = pet_by_id(payload.definition_id)
    if definition is None:
        raise HTTPException(status_code=404, detail="Unknown pet")
    if not definition.is_starter:
        raise HTTPException(status_code=422, detail=f"{definition.name} is not a starter pet")
    pet = engine.add_pet(definition.id, equip=payload.equip)
    if pet is None:
        raise HTTPException(status_code=409, detail=f"{definition.name} is already owned")
    return pet_read(pet)


@router.post("/{pet_id}/equip", response_model=PetRead)
def equip_pet(pet_id: str, engine: GameEngine = Depends(get_engine)):
    with engine.lock:
        if not engine.equip_pet(pet_id):
            raise HTTPException(status_code=404, detail="Pet not found")
        pet = next(p for p in engine.pets if p.id == pet_id)
        return pet_read(pet)


@router.post("/loot/open", response_model=LootBoxContents)
def open_loot_box(payload: LootOpenIn, engine: GameEngine = Depends(get_engine)):
    contents = engine.open_loot_box(payload.rarity)
    if contents is None:
        raise HTTPException(status_code=409, detail=f"No {payload.rarity.value} loot box to open")
    return contents
