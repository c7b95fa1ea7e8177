from datetime import datetime
from enum import Enum
from typing import Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field


class SprintState(str, Enum):
    idle = "idle"
    countdown = "countdown"
    active = "active"
    validating = "validating"
    completed = "completed"
    failed = "failed"


class SprintResult(BaseModel):
    """Immutable outcome of one sprint.

    Sub-scores are percentages (0-100) like `score`; validity is carried
    here rather than in the session's terminal state.
    """

    model_config = ConfigDict(frozen=True)

    sprint_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    start_time: datetime
    end_time: datetime
    target_duration: float
    duration: float
    is_valid: bool
    score: float
    hr_score: float = 0.0
    cadence_score: float = 0.0
    hrd_score: float = 0.0
    baseline_hr: int = 0
    peak_hr: int = 0
    average_hr: int = 0
    average_cadence: int = 0
    peak_cadence: int = 0
    sample_count: int = 0


class SampleIn(BaseModel):
    heart_rate: int
    cadence: int


class SprintStartIn(BaseModel):
    # Falls back to the most recent telemetry sample when omitted
    baseline_hr: Optional[int] = None


class SprintSessionRead(BaseModel):
    state: SprintState
    countdown_remaining: int
    time_remaining: float
    time_remaining_display: str
    progress: float
    is_in_final_seconds: bool
    target_duration: Optional[float] = None
    sample_count: int = 0
    last_result: Optional[SprintResult] = None


class ReplayRead(BaseModel):
    """Score of a recorded interval. Replays never grant rewards."""

    source: str
    window_start_s: float
    window_seconds: float
    result: SprintResult
