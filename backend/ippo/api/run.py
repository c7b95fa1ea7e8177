from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ippo.api.deps import get_engine
from ippo.core.time_utils import seconds_to_mmss
from ippo.engine.game import GameEngine
from ippo.schemas.reward import Encounter
from ippo.schemas.run import EncounterStateRead, RunStateRead, RunSummary
from ippo.schemas.sprint import SampleIn, SprintResult, SprintSessionRead, SprintStartIn

router = APIRouter(prefix="/run", tags=["run"])


def _sprint_read(engine: GameEngine) -> SprintSessionRead:
    sprint = engine.sprint
    window = sprint.window
    return SprintSessionRead(
        state=sprint.state,
        countdown_remaining=sprint.countdown_remaining,
        time_remaining=round(sprint.time_remaining, 1),
        time_remaining_display=seconds_to_mmss(sprint.time_remaining),
        progress=round(sprint.progress, 3),
        is_in_final_seconds=sprint.is_in_final_seconds,
        target_duration=window.target_duration if window else None,
        sample_count=len(window.hr_samples) if window else 0,
        last_result=sprint.last_result,
    )


def _state_read(engine: GameEngine) -> RunStateRead:
    enc = engine.encounters
    last = engine.history[0] if engine.history else None
    return RunStateRead(
        run_active=engine.run_active,
        latest_hr=engine.latest_hr,
        sprint=_sprint_read(engine),
        encounter=EncounterStateRead(
            is_active=enc.is_active,
            is_in_recovery=enc.is_in_recovery,
            recovery_remaining=round(enc.recovery_remaining, 1),
            time_since_last_encounter=round(enc.time_since_last_encounter, 1),
            last_probability=enc.last_probability,
            probability_boost=enc.probability_boost,
        ),
        current_encounter=engine.current_encounter,
        last_reward=last.reward if last else None,
    )


@router.get("/state", response_model=RunStateRead)
def read_state(engine: GameEngine = Depends(get_engine)):
    with engine.lock:
        return _state_read(engine)


@router.post("/start", response_model=RunStateRead)
def start_run(engine: GameEngine = Depends(get_engine)):
    with engine.lock:
        if not engine.start_run():
            raise HTTPException(status_code=409, detail="A run is already in progress")
        return _state_read(engine)


@router.post("/end", response_model=RunSummary)
def end_run(engine: GameEngine = Depends(get_engine)):
    """End the run and return its summary, including the per-minute reward."""
    with engine.lock:
        summary = engine.end_run()
        if summary is None:
            raise HTTPException(status_code=409, detail="No run in progress")
        return summary


@router.post("/samples", response_model=SprintSessionRead)
def post_sample(payload: SampleIn, engine: GameEngine = Depends(get_engine)):
    """Live telemetry. Samples only count while a sprint is active."""
    if payload.heart_rate < 0 or payload.cadence < 0:
        raise HTTPException(status_code=422, detail="heart_rate and cadence must be >= 0")
    with engine.lock:
        engine.submit_sample(payload.heart_rate, payload.cadence)
        return _sprint_read(engine)


@router.post("/sprint/start", response_model=SprintSessionRead)
def start_sprint(payload: Optional[SprintStartIn] = None, engine: GameEngine = Depends(get_engine)):
    baseline = payload.baseline_hr if payload is not None else None
    if baseline is not None and baseline < 0:
        raise HTTPException(status_code=422, detail="baseline_hr must be >= 0")
    with engine.lock:
        if not engine.start_sprint(baseline):
            raise HTTPException(status_code=409, detail=f"Cannot start a sprint while {engine.sprint.state.value}")
        return _sprint_read(engine)


@router.post("/sprint/cancel", response_model=SprintSessionRead)
def cancel_sprint(engine: GameEngine = Depends(get_engine)):
    with engine.lock:
        if not engine.cancel_sprint():
            raise HTTPException(status_code=409, detail="No sprint to cancel")
        return _sprint_read(engine)


@router.post("/sprint/finish", response_model=SprintResult)
def finish_sprint(engine: GameEngine = Depends(get_engine)):
    with engine.lock:
        result = engine.finish_sprint()
        if result is None:
            raise HTTPException(status_code=409, detail="No active sprint")
        return result


@router.post("/encounter", response_model=RunStateRead)
def force_encounter(engine: GameEngine = Depends(get_engine)):
    with engine.lock:
        if not engine.force_encounter():
            raise HTTPException(status_code=409, detail="Encounter not available right now")
        return _state_read(engine)


@router.get("/encounters", response_model=list[Encounter])
def list_encounters(engine: GameEngine = Depends(get_engine)):
    with engine.lock:
        return list(engine.history)
