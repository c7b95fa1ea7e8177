import asyncio
import contextlib
import os
import random
import threading
import time
import uuid


def get_client(roll=0.5):
    # Use in-memory sqlite for tests
    os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
    # Import after env is set so engine is created with sqlite
    from ippo.main import app  # noqa: WPS433
    from ippo.db import SessionLocal  # noqa: WPS433
    from ippo.engine.clock import ManualClock  # noqa: WPS433
    from ippo.engine.game import GameEngine  # noqa: WPS433
    from ippo.store import LedgerStore  # noqa: WPS433
    from fastapi.testclient import TestClient  # noqa: WPS433

    # Fresh player per test; the clock only moves when the test says so
    app.state.engine = GameEngine(
        store=LedgerStore(SessionLocal),
        player_id=f"test-{uuid.uuid4().hex[:8]}",
        clock=ManualClock(),
        rng=random.Random(11),
        encounter_roll=lambda: roll,
    )
    return TestClient(app), app.state.engine


def test_root_ok():
    client, _ = get_client()
    r = client.get("/")
    assert r.status_code == 200
    data = r.json()
    assert "message" in data


def test_fresh_ledger():
    client, _ = get_client()
    r = client.get("/progression/")
    assert r.status_code == 200, r.text
    ledger = r.json()
    assert ledger["rank"] == "Bronze"
    assert ledger["division"] == 1
    assert ledger["level"] == 1
    assert ledger["rp"] == 0


def test_rank_and_level_tables():
    client, _ = get_client()
    ranks = client.get("/progression/ranks").json()
    assert [r["name"] for r in ranks] == ["Bronze", "Silver", "Gold", "Platinum", "Diamond"]
    assert ranks[0]["decay_max"] == 0
    levels = client.get("/progression/levels", params={"up_to": 3}).json()
    assert [lv["xp_required"] for lv in levels] == [0, 30, 62]
    assert client.get("/progression/levels", params={"up_to": 0}).status_code == 422


def test_daily_check():
    client, _ = get_client()
    r = client.post("/progression/daily-check")
    assert r.status_code == 200, r.text
    assert r.json()["rp_decayed"] == 0


def test_run_lifecycle_conflicts():
    client, _ = get_client()
    r = client.post("/run/start")
    assert r.status_code == 200, r.text
    assert r.json()["run_active"] is True
    assert client.post("/run/start").status_code == 409

    r = client.post("/run/end")
    assert r.status_code == 200
    assert r.json()["sprints"] == 0
    assert client.get("/run/state").json()["run_active"] is False
    assert client.post("/run/end").status_code == 409


def test_end_run_returns_summary():
    client, engine = get_client()
    client.post("/run/start")
    # roll 0.5 never beats the tier odds before the pity timer
    engine.pump(125)
    r = client.post("/run/end")
    assert r.status_code == 200, r.text
    summary = r.json()
    assert summary["duration_seconds"] == 125.0
    assert summary["duration_display"] == "2:05"
    assert summary["encounters"] == 0
    assert summary["time_reward"]["xp"] == 10
    assert summary["xp_earned"] == 10
    assert summary["coins_earned"] == 2
    assert client.get("/progression/").json()["experience"] == 10


def test_encounter_sprint_over_http():
    client, engine = get_client()
    client.post("/run/start")
    r = client.post("/run/encounter")
    assert r.status_code == 200, r.text
    state = r.json()
    assert state["encounter"]["is_active"] is True
    assert state["sprint"]["state"] == "countdown"

    engine.pump(3)
    for hr, cad in [(112, 150), (120, 150), (130, 150), (150, 175), (165, 180), (165, 180)]:
        r = client.post("/run/samples", json={"heart_rate": hr, "cadence": cad})
        assert r.status_code == 200
    assert r.json()["sample_count"] == 6

    r = client.post("/run/sprint/finish")
    assert r.status_code == 200, r.text
    assert r.json()["is_valid"] is True

    state = client.get("/run/state").json()
    assert state["encounter"]["is_in_recovery"] is True
    assert state["last_reward"]["rp"] > 0

    history = client.get("/run/encounters").json()
    assert len(history) == 1
    assert client.get("/progression/").json()["rp"] == state["last_reward"]["rp"]

    sprints = client.get("/sprints/").json()
    assert len(sprints) == 1

    # first collectible is always caught
    pets = client.get("/pets/").json()
    assert len(pets) == 1


def test_practice_sprint_and_cancel():
    client, _ = get_client()
    r = client.post("/run/sprint/start", json={"baseline_hr": 100})
    assert r.status_code == 200, r.text
    assert r.json()["state"] == "countdown"
    assert client.post("/run/sprint/start").status_code == 409

    r = client.post("/run/sprint/cancel")
    assert r.status_code == 200
    assert r.json()["state"] == "failed"
    assert client.post("/run/sprint/cancel").status_code == 409
    assert client.post("/run/sprint/finish").status_code == 409


def test_bad_input_is_rejected():
    client, _ = get_client()
    assert client.post("/run/samples", json={"heart_rate": -1, "cadence": 150}).status_code == 422
    assert client.post("/run/sprint/start", json={"baseline_hr": -5}).status_code == 422
    assert client.post("/run/samples", json={"heart_rate": "fast"}).status_code == 422


def test_encounter_needs_a_run():
    client, _ = get_client()
    assert client.post("/run/encounter").status_code == 409


def test_pets_and_loot():
    client, _ = get_client()
    assert client.get("/pets/").json() == []

    r = client.post("/pets/", json={"definition_id": "pet_01", "equip": True})
    assert r.status_code == 200, r.text
    pet = r.json()
    assert pet["name"] == "Ember"
    assert pet["is_equipped"] is True
    assert pet["evolution_stage"] == 1
    assert pet["effectiveness"] == 0.5

    assert client.post("/pets/", json={"definition_id": "pet_01"}).status_code == 409
    assert client.post("/pets/", json={"definition_id": "pet_99"}).status_code == 404
    assert client.post("/pets/", json={"definition_id": "pet_05"}).status_code == 422

    assert client.post(f"/pets/{pet['id']}/equip").status_code == 200
    assert client.post("/pets/nope/equip").status_code == 404

    assert client.post("/pets/loot/open", json={"rarity": "rare"}).status_code == 409
    assert client.post("/pets/loot/open", json={"rarity": "shiny"}).status_code == 422


def test_open_loot_box():
    client, engine = get_client()
    engine.ledger.loot_boxes["epic"] = 1
    r = client.post("/pets/loot/open", json={"rarity": "epic"})
    assert r.status_code == 200, r.text
    contents = r.json()
    assert 400 <= contents["coins"] <= 800
    assert client.get("/progression/").json()["coins"] == contents["coins"]


def test_replay_upload(interval_gpx):
    client, _ = get_client()
    r = client.post(
        "/sprints/replay",
        params={"start_s": 10, "seconds": 30},
        files={"file": ("intervals.gpx", interval_gpx.encode("utf-8"), "application/gpx+xml")},
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["source"] == "gpx"
    assert data["result"]["sample_count"] == 30
    assert data["result"]["is_valid"] is True
    # replays never touch the ledger
    assert client.get("/progression/").json()["rp"] == 0


def test_replay_rejects_bad_files():
    client, _ = get_client()
    r = client.post("/sprints/replay", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert r.status_code == 422
    r = client.post("/sprints/replay", files={"file": ("broken.gpx", b"not xml", "application/gpx+xml")})
    assert r.status_code == 422


def test_replay_upload_fit(interval_fit):
    client, _ = get_client()
    r = client.post(
        "/sprints/replay",
        params={"start_s": 10, "seconds": 30},
        files={"file": ("intervals.fit", b"\x0e\x10", "application/octet-stream")},
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["source"] == "fit"
    assert data["result"]["sample_count"] == 30
    assert data["result"]["is_valid"] is True


def test_replay_rejects_unreadable_fit(monkeypatch):
    from fitparse.utils import FitParseError  # noqa: WPS433

    client, _ = get_client()

    def broken(path):
        raise FitParseError("Invalid .FIT File Header")

    monkeypatch.setattr("ippo.engine.replay.FitFile", broken)
    r = client.post("/sprints/replay", files={"file": ("broken.fit", b"nope", "application/octet-stream")})
    assert r.status_code == 422
    assert "Invalid file" in r.json()["detail"]


def test_background_pump_keeps_event_loop_responsive():
    get_client()
    from ippo.engine.clock import ManualClock  # noqa: WPS433
    from ippo.engine.game import GameEngine  # noqa: WPS433
    from ippo.main import _pump_forever  # noqa: WPS433

    game = GameEngine(clock=ManualClock())
    held = threading.Event()

    def hold_lock():
        # stands in for a slow request handler
        with game.lock:
            held.set()
            time.sleep(0.5)

    holder = threading.Thread(target=hold_lock)
    holder.start()
    held.wait()

    async def worst_stall():
        pump = asyncio.create_task(_pump_forever(game, 0.01))
        worst = 0.0
        last = time.monotonic()
        for _ in range(30):
            await asyncio.sleep(0.02)
            now = time.monotonic()
            worst = max(worst, now - last)
            last = now
        pump.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pump
        return worst

    worst = asyncio.run(worst_stall())
    holder.join()
    assert worst < 0.25
