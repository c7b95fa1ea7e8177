"""Score recorded intervals from GPX or FIT activity files.

Replays run the same scoring as a live sprint but never touch the ledger.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import gpxpy
import gpxpy.gpx
from fitparse import FitFile

from ippo.core import constants as C
from ippo.engine.scoring import score_window
from ippo.schemas.sprint import SprintResult

logger = logging.getLogger(__name__)


@dataclass
class TelemetryPoint:
    t: float  # seconds since the first point
    time: Optional[datetime]
    heart_rate: int
    cadence: int  # steps per minute


def _spm(cadence) -> int:
    # Garmin devices report running cadence per foot
    if cadence is None:
        return 0
    return int(round(float(cadence) * 2))


def _extension_values(point) -> dict:
    values = {}
    for ext in point.extensions or []:
        for child in ext.iter():
            tag = child.tag.split("}")[-1].lower()
            if tag in ("hr", "cad") and child.text:
                try:
                    values[tag] = float(child.text)
                except ValueError:
                    continue
    return values


def gpx_points(path: str) -> list[TelemetryPoint]:
    """HR/cadence samples from Garmin TrackPointExtension data in a GPX file.

    Points without a heart rate are skipped. Without timestamps, points are
    taken to be one second apart.
    """
    with open(path, "r", encoding="utf-8") as f:
        gpx = gpxpy.parse(f)

    points: list[TelemetryPoint] = []
    start_ts = None
    index = 0
    for track in gpx.tracks:
        for segment in track.segments:
            for p in segment.points:
                values = _extension_values(p)
                if "hr" not in values:
                    index += 1
                    continue
                if p.time and start_ts is None:
                    start_ts = p.time
                t = (p.time - start_ts).total_seconds() if (p.time and start_ts) else float(index)
                points.append(
                    TelemetryPoint(
                        t=t,
                        time=p.time,
                        heart_rate=int(values["hr"]),
                        cadence=_spm(values.get("cad")),
                    )
                )
                index += 1
    return points


def fit_points(path: str) -> list[TelemetryPoint]:
    """HR/cadence samples from the `record` messages of a FIT file."""
    ff = FitFile(path)
    points: list[TelemetryPoint] = []
    start_ts = None
    for index, record in enumerate(ff.get_messages("record")):
        fields = {f.name: f.value for f in record}
        hr = fields.get("heart_rate")
        if hr is None:
            continue
        ts = fields.get("timestamp")
        if ts and start_ts is None:
            start_ts = ts
        t = (ts - start_ts).total_seconds() if (ts and start_ts) else float(index)
        cadence = fields.get("cadence")
        fractional = fields.get("fractional_cadence")
        if cadence is not None and fractional is not None:
            cadence = float(cadence) + float(fractional)
        points.append(TelemetryPoint(t=t, time=ts, heart_rate=int(hr), cadence=_spm(cadence)))
    return points


def load_points(path: str) -> list[TelemetryPoint]:
    if path.lower().endswith(".fit"):
        return fit_points(path)
    return gpx_points(path)


def replay_window(
    points: list[TelemetryPoint],
    start_s: float,
    seconds: float,
    max_hr: int = C.DEFAULT_MAX_HR,
    baseline_hr: Optional[int] = None,
) -> SprintResult:
    """Score the samples in [start_s, start_s + seconds).

    Without an explicit baseline, the last heart rate before the window is
    used (or the first one inside it).
    """
    end_s = start_s + seconds
    inside = [p for p in points if start_s <= p.t < end_s]
    if baseline_hr is None:
        before = [p for p in points if p.t < start_s]
        if before:
            baseline_hr = before[-1].heart_rate
        elif inside:
            baseline_hr = inside[0].heart_rate
        else:
            baseline_hr = 0

    anchor = _anchor_time(points, start_s)
    result = score_window(
        [p.heart_rate for p in inside],
        [p.cadence for p in inside],
        baseline_hr=baseline_hr,
        max_hr=max_hr,
        start_time=anchor,
        end_time=anchor + timedelta(seconds=seconds),
        target_duration=seconds,
        duration=seconds,
    )
    logger.debug("Replayed %d samples from %.0fs: score %.1f", len(inside), start_s, result.score)
    return result


def _anchor_time(points: list[TelemetryPoint], start_s: float) -> datetime:
    for p in points:
        if p.time is not None:
            base = p.time if p.time.tzinfo else p.time.replace(tzinfo=timezone.utc)
            return base + timedelta(seconds=start_s - p.t)
    return datetime.now(timezone.utc)
