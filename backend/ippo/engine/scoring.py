"""Sprint validity scoring.

Pure functions over a window of (heart rate, cadence) samples. Every score
is clamped to [0, 1] (composite to [0, 100]) because sensor input cannot be
trusted to be well-formed.

Weights of the composite score:
  - heart rate     50%  (rise over baseline, reaching zone 4, time elevated)
  - cadence        35%  (rise over the opening cadence, peak cadence)
  - HR derivative  15%  (how fast HR climbs in the first ~10 seconds)
"""
from datetime import datetime
from typing import Optional, Sequence

from ippo.core import constants as C
from ippo.schemas.sprint import SprintResult


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def heart_rate_score(
    samples: Sequence[int],
    baseline: int,
    peak: int,
    max_hr: int,
    min_increase: int = C.MIN_HR_INCREASE_BPM,
    zone_percent: float = C.TARGET_HR_ZONE_PERCENT,
    min_time_in_zone: float = C.MIN_TIME_IN_ZONE_FRACTION,
) -> float:
    if not samples:
        return 0.0

    score = 0.0

    # 1. HR increase from baseline (40%)
    if min_increase > 0:
        score += _clamp((peak - baseline) / min_increase) * 0.4
    elif peak > baseline:
        score += 0.4

    # 2. Reached target zone (40%), partial credit for getting close
    target_hr = int(max_hr * zone_percent)
    if peak >= target_hr:
        score += 0.4
    elif target_hr > 0:
        score += 0.4 * _clamp(peak / target_hr)

    # 3. Time spent elevated (20%)
    elevated_threshold = baseline + C.ELEVATED_HR_MARGIN_BPM
    elevated = sum(1 for hr in samples if hr >= elevated_threshold)
    fraction = elevated / len(samples)
    if min_time_in_zone > 0:
        score += _clamp(fraction / min_time_in_zone) * 0.2
    else:
        score += 0.2

    return _clamp(score)


def cadence_score(
    samples: Sequence[int],
    peak: int,
    min_increase_percent: float = C.MIN_CADENCE_INCREASE_PERCENT,
    min_peak: int = C.MIN_PEAK_CADENCE_SPM,
) -> float:
    if not samples:
        return 0.0

    score = 0.0

    # 1. Increase over the opening samples (50%)
    opening = list(samples[: C.PRE_CADENCE_SAMPLES])
    pre_cadence = sum(opening) // len(opening)
    if pre_cadence > 0 and min_increase_percent > 0:
        increase = (peak - pre_cadence) / pre_cadence
        score += _clamp(increase / min_increase_percent) * 0.5

    # 2. Peak cadence (50%)
    if min_peak > 0:
        score += _clamp(peak / min_peak) * 0.5

    return _clamp(score)


def hr_derivative_score(
    samples: Sequence[int],
    target_bpm_per_s: float = C.MIN_HR_DERIVATIVE_BPM_S,
) -> float:
    if len(samples) < 3:
        return 0.0

    window = list(samples[: min(C.HRD_WINDOW_SAMPLES, len(samples))])
    max_delta = 0.0
    for prev, cur in zip(window, window[1:]):
        max_delta = max(max_delta, float(cur - prev))

    if target_bpm_per_s <= 0:
        return 1.0 if max_delta > 0 else 0.0
    return _clamp(max_delta / target_bpm_per_s)


def composite_score(hr: float, cadence: float, hrd: float) -> float:
    total = (
        _clamp(hr) * C.HR_WEIGHT
        + _clamp(cadence) * C.CADENCE_WEIGHT
        + _clamp(hrd) * C.HRD_WEIGHT
    ) * 100
    return _clamp(total, 0.0, 100.0)


def is_valid(score: float, threshold: float = C.VALIDATION_THRESHOLD) -> bool:
    return score >= threshold


def score_window(
    hr_samples: Sequence[int],
    cadence_samples: Sequence[int],
    baseline_hr: int,
    max_hr: int,
    start_time: datetime,
    end_time: datetime,
    target_duration: float,
    duration: Optional[float] = None,
) -> SprintResult:
    """Score a finished sample window and package it as a SprintResult."""
    hr_samples = [max(0, int(hr)) for hr in hr_samples]
    cadence_samples = [max(0, int(c)) for c in cadence_samples]
    baseline_hr = max(0, int(baseline_hr))

    peak_hr = max(hr_samples, default=0)
    peak_cadence = max(cadence_samples, default=0)

    hr = heart_rate_score(hr_samples, baseline_hr, peak_hr, max_hr)
    cad = cadence_score(cadence_samples, peak_cadence)
    hrd = hr_derivative_score(hr_samples)
    total = composite_score(hr, cad, hrd)

    if duration is None:
        duration = (end_time - start_time).total_seconds()

    return SprintResult(
        start_time=start_time,
        end_time=end_time,
        target_duration=target_duration,
        duration=max(0.0, duration),
        is_valid=is_valid(total),
        score=total,
        hr_score=hr * 100,
        cadence_score=cad * 100,
        hrd_score=hrd * 100,
        baseline_hr=baseline_hr,
        peak_hr=peak_hr,
        average_hr=sum(hr_samples) // len(hr_samples) if hr_samples else 0,
        average_cadence=sum(cadence_samples) // len(cadence_samples) if cadence_samples else 0,
        peak_cadence=peak_cadence,
        sample_count=len(hr_samples),
    )
