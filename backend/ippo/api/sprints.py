import os
import uuid
from typing import Optional

import gpxpy.gpx
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fitparse.utils import FitParseError

from ippo.api.deps import get_engine
from ippo.core.config import settings
from ippo.engine.game import GameEngine
from ippo.engine.replay import load_points, replay_window
from ippo.schemas.sprint import ReplayRead, SprintResult

router = APIRouter(prefix="/sprints", tags=["sprints"])


@router.get("/", response_model=list[SprintResult])
def list_sprints(
    limit: int = Query(50, ge=1, le=500),
    engine: GameEngine = Depends(get_engine),
):
    """Recorded sprints, most recent first. Practice sprints included."""
    if engine.store is None:
        return []
    return engine.store.sprint_history(engine.player_id, limit=limit)


@router.post("/replay", response_model=ReplayRead)
def replay_sprint(
    file: UploadFile = File(...),
    start_s: float = Query(0.0, ge=0),
    seconds: float = Query(30.0, gt=0, le=600),
    baseline_hr: Optional[int] = Query(None, ge=0),
    engine: GameEngine = Depends(get_engine),
):
    """Score an interval of a recorded activity. No rewards are granted."""
    filename = file.filename or "replay"
    ext = os.path.splitext(filename)[1].lower()
    if ext not in [".gpx", ".fit"]:
        raise HTTPException(status_code=422, detail="Only .gpx or .fit files are supported")

    dir_path = os.path.join(settings.uploads_dir, "replays")
    os.makedirs(dir_path, exist_ok=True)
    save_path = os.path.join(dir_path, f"{uuid.uuid4().hex}{ext}")
    with open(save_path, "wb") as out:
        out.write(file.file.read())

    try:
        points = load_points(save_path)
    except (gpxpy.gpx.GPXException, FitParseError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid file: {e}")
    finally:
        os.remove(save_path)

    if not points:
        raise HTTPException(status_code=422, detail="No heart rate data in file")

    result = replay_window(points, start_s, seconds, max_hr=engine.sprint.max_hr, baseline_hr=baseline_hr)
    return ReplayRead(source=ext.lstrip("."), window_start_s=start_s, window_seconds=seconds, result=result)
