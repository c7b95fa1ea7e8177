import os
import tempfile
from datetime import datetime

# Engine and settings are created at import time; point them at in-memory
# sqlite and a throwaway uploads dir before anything imports ippo.db
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("UPLOADS_DIR", tempfile.mkdtemp(prefix="ippo-uploads-"))

import pytest  # noqa: E402

GPX_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<gpx version="1.1" creator="tests" xmlns="http://www.topografix.com/GPX/1/1" '
    'xmlns:gpxtpx="http://www.garmin.com/xmlschemas/TrackPointExtension/v1">\n'
    "<trk><name>Intervals</name><trkseg>\n"
)
GPX_FOOTER = "</trkseg></trk></gpx>\n"


def build_gpx(samples):
    """GPX track at 1 Hz with Garmin hr/cad extensions. cad is per foot."""
    points = []
    for i, (hr, cad) in enumerate(samples):
        points.append(
            f'<trkpt lat="40.0" lon="{-75.0 + i * 0.0001:.4f}">'
            f"<time>2025-01-01T07:00:{i:02d}Z</time>"
            "<extensions><gpxtpx:TrackPointExtension>"
            f"<gpxtpx:hr>{hr}</gpxtpx:hr><gpxtpx:cad>{cad}</gpxtpx:cad>"
            "</gpxtpx:TrackPointExtension></extensions></trkpt>\n"
        )
    return GPX_HEADER + "".join(points) + GPX_FOOTER


def interval_samples():
    """10s easy jog at 110 bpm, then a 30s surge."""
    easy = [(110, 80)] * 10
    surge = [(min(170, 115 + 5 * i), 80 if i < 3 else 95) for i in range(30)]
    return easy + surge


@pytest.fixture
def interval_gpx():
    return build_gpx(interval_samples())


class FitField:
    def __init__(self, name, value):
        self.name = name
        self.value = value


@pytest.fixture
def fake_fit(monkeypatch):
    """Replace fitparse's FitFile with one yielding the given record dicts."""

    def install(records):
        class FakeFitFile:
            def __init__(self, path):
                self.path = path

            def get_messages(self, name):
                if name != "record":
                    return []
                return [[FitField(k, v) for k, v in r.items()] for r in records]

        monkeypatch.setattr("ippo.engine.replay.FitFile", FakeFitFile)

    return install


def interval_fit_records():
    """Same intervals as the GPX fixture, as FIT record messages (naive UTC)."""
    return [
        {
            "timestamp": datetime(2025, 1, 1, 7, 0, i),
            "heart_rate": hr,
            "cadence": cad,
            "fractional_cadence": 0.0,
        }
        for i, (hr, cad) in enumerate(interval_samples())
    ]


@pytest.fixture
def interval_fit(fake_fit):
    fake_fit(interval_fit_records())
