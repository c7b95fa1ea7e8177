from datetime import datetime, timezone

import gpxpy.gpx
import pytest

from ippo.engine.replay import TelemetryPoint, fit_points, gpx_points, load_points, replay_window


def write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_gpx_points_read_garmin_extensions(tmp_path, interval_gpx):
    points = gpx_points(write(tmp_path, "run.gpx", interval_gpx))
    assert len(points) == 40
    assert points[0].t == 0
    assert points[10].t == 10
    assert points[0].heart_rate == 110
    # per-foot cadence doubled to steps per minute
    assert points[0].cadence == 160
    assert points[-1].cadence == 190
    assert points[0].time == datetime(2025, 1, 1, 7, 0, tzinfo=timezone.utc)


def test_replay_scores_the_surge(tmp_path, interval_gpx):
    points = load_points(write(tmp_path, "run.gpx", interval_gpx))
    result = replay_window(points, start_s=10, seconds=30, max_hr=190)
    assert result.sample_count == 30
    assert result.baseline_hr == 110
    assert result.peak_hr == 170
    assert result.peak_cadence == 190
    assert result.is_valid
    assert result.start_time == datetime(2025, 1, 1, 7, 0, 10, tzinfo=timezone.utc)
    assert result.duration == 30


def test_replay_of_easy_section_is_invalid(tmp_path, interval_gpx):
    points = load_points(write(tmp_path, "run.gpx", interval_gpx))
    result = replay_window(points, start_s=0, seconds=10, max_hr=190)
    assert result.sample_count == 10
    assert not result.is_valid


def test_replay_explicit_baseline():
    points = [TelemetryPoint(t=float(i), time=None, heart_rate=100 + i, cadence=160) for i in range(5)]
    result = replay_window(points, start_s=0, seconds=5, baseline_hr=90)
    assert result.baseline_hr == 90
    assert result.sample_count == 5


def test_replay_empty_window():
    result = replay_window([], start_s=0, seconds=30)
    assert result.sample_count == 0
    assert result.score == 0


def test_points_without_heart_rate_are_skipped(tmp_path):
    text = (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<gpx version="1.1" creator="tests" xmlns="http://www.topografix.com/GPX/1/1">'
        '<trk><trkseg><trkpt lat="40.0" lon="-75.0"><time>2025-01-01T07:00:00Z</time></trkpt>'
        "</trkseg></trk></gpx>"
    )
    assert gpx_points(write(tmp_path, "plain.gpx", text)) == []


def test_malformed_gpx_raises(tmp_path):
    with pytest.raises(gpxpy.gpx.GPXException):
        gpx_points(write(tmp_path, "bad.gpx", "this is not xml"))


def test_fit_points_read_record_messages(fake_fit):
    t0 = datetime(2025, 1, 1, 7, 0, 0)
    fake_fit([
        {"timestamp": t0, "heart_rate": 110, "cadence": 80, "fractional_cadence": 0.5},
        {"timestamp": datetime(2025, 1, 1, 7, 0, 1), "heart_rate": None, "cadence": 82},
        {"timestamp": datetime(2025, 1, 1, 7, 0, 2), "heart_rate": 120, "cadence": 85},
    ])
    points = fit_points("run.fit")
    assert [p.heart_rate for p in points] == [110, 120]
    assert [p.t for p in points] == [0, 2]
    # per-foot cadence plus the fractional part, doubled
    assert points[0].cadence == 161
    assert points[1].cadence == 170
    assert points[0].time == t0


def test_fit_points_without_timestamps_are_spaced_by_index(fake_fit):
    fake_fit([
        {"heart_rate": 100, "cadence": 80},
        {"heart_rate": None},
        {"heart_rate": 105, "cadence": None},
    ])
    points = fit_points("run.fit")
    assert [p.t for p in points] == [0.0, 2.0]
    assert points[1].cadence == 0


def test_fit_replay_scores_the_surge(interval_fit):
    points = load_points("intervals.FIT")
    assert len(points) == 40
    result = replay_window(points, start_s=10, seconds=30, max_hr=190)
    assert result.sample_count == 30
    assert result.baseline_hr == 110
    assert result.peak_cadence == 190
    assert result.is_valid
    assert result.start_time == datetime(2025, 1, 1, 7, 0, 10, tzinfo=timezone.utc)
