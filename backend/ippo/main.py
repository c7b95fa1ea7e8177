import asyncio
import contextlib
import logging
import os
import random
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ippo.api.pets import router as pets_router
from ippo.api.progression import router as progression_router
from ippo.api.run import router as run_router
from ippo.api.sprints import router as sprints_router
from ippo.core.config import settings
from ippo.core.content import validate_content
from ippo.db import Base, SessionLocal, engine
from ippo.engine.game import GameEngine
from ippo.models.ledger import LedgerRow  # noqa: F401  (import ensures table is registered)
from ippo.models.pet import PetRow  # noqa: F401
from ippo.models.sprint_record import SprintRecord  # noqa: F401
from ippo.store import LedgerStore

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_engine() -> GameEngine:
    """Load the configured player's state and catch up on missed days."""
    game = GameEngine.from_store(
        LedgerStore(SessionLocal),
        player_id=settings.player_id,
        rng=random.Random(settings.rng_seed),
        max_hr=settings.max_hr,
        tz_name=settings.timezone,
        weekly_reset_weekday=settings.weekly_reset_weekday,
        weekly_reset_hour=settings.weekly_reset_hour,
    )
    summary = game.daily_check()
    if summary.rp_decayed:
        logger.info("Startup decay removed %d RP", summary.rp_decayed)
    return game


async def _pump_forever(game: GameEngine, interval: float):
    # pump takes the engine lock and may write to the database
    while True:
        await asyncio.to_thread(game.pump)
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(_pump_forever(app.state.engine, settings.pump_interval_seconds))
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        app.state.engine.save()


# Fail fast on broken content tables
validate_content()

app = FastAPI(lifespan=lifespan)

# Allow CORS for local frontend
origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create DB tables (ledgers, pets, sprint_records) on startup
Base.metadata.create_all(bind=engine)

# Ensure uploads directory exists
os.makedirs(settings.uploads_dir, exist_ok=True)

app.state.engine = build_engine()

app.include_router(run_router)
app.include_router(progression_router)
app.include_router(pets_router)
app.include_router(sprints_router)


@app.get("/")
def root():
    return {"message": "Ippo sprint engine is running"}
