from fastapi import APIRouter, Depends, Query

from ippo.api.deps import get_engine
from ippo.core import constants as C
from ippo.core.content import RANKS
from ippo.engine.game import GameEngine
from ippo.engine.progression import ProgressionLedger, streak_bonus, xp_progress, xp_required
from ippo.schemas.progression import DailyCheckRead, LedgerRead, LevelRead, RankRead

router = APIRouter(prefix="/progression", tags=["progression"])


def ledger_read(ledger: ProgressionLedger) -> LedgerRead:
    return LedgerRead(
        rp=ledger.rp,
        weekly_rp=ledger.weekly_rp,
        rank=ledger.rank.name,
        division=ledger.division,
        experience=ledger.experience,
        level=ledger.level,
        level_progress=round(xp_progress(ledger.experience), 3),
        coins=ledger.coins,
        gems=ledger.gems,
        current_streak=ledger.current_streak,
        longest_streak=ledger.longest_streak,
        streak_bonus=streak_bonus(ledger.current_streak),
        last_activity_date=ledger.last_activity_date,
        weekly_reset_at=ledger.weekly_reset_at,
        ability_points=ledger.ability_points,
        pet_points=ledger.pet_points,
        unlocked_abilities=sorted(ledger.unlocked_abilities),
        loot_boxes=dict(ledger.loot_boxes),
        sprints_since_last_catch=ledger.sprints_since_last_catch,
        total_sprints=ledger.total_sprints,
        total_valid_sprints=ledger.total_valid_sprints,
    )


@router.get("/", response_model=LedgerRead)
def read_ledger(engine: GameEngine = Depends(get_engine)):
    with engine.lock:
        return ledger_read(engine.ledger)


@router.get("/ranks", response_model=list[RankRead])
def list_ranks():
    return [
        RankRead(
            name=r.name,
            base_rp=r.base_rp,
            reward_bonus=r.reward_bonus,
            decay_min=r.decay_per_day[0],
            decay_max=r.decay_per_day[1],
        )
        for r in RANKS
    ]


@router.get("/levels", response_model=list[LevelRead])
def list_levels(up_to: int = Query(20, ge=1, le=C.MAX_LEVEL)):
    return [LevelRead(level=lvl, xp_required=xp_required(lvl)) for lvl in range(1, up_to + 1)]


@router.post("/daily-check", response_model=DailyCheckRead)
def run_daily_check(engine: GameEngine = Depends(get_engine)):
    """Weekly reset and inactivity decay. Safe to call any number of times."""
    with engine.lock:
        summary = engine.daily_check()
        return DailyCheckRead(
            weekly_reset=summary.weekly_reset,
            rp_decayed=summary.rp_decayed,
            rp=summary.rp,
            rank=engine.ledger.rank.name,
            division=engine.ledger.division,
        )
