from __future__ import annotations
import json

import pytest
from fastapi.testclient import TestClient

from pullpush.runtime import server


@pytest.fixture
def client():
    m = server.MANAGER
    with TestClient(server.app) as c:
        yield c
    if m.engine is not None:
        m.stop()
    m.set_web_mode(False)


def frame_msg(make_frame, angle, ts):
    pts = [{"x": p.x, "y": p.y, "visibility": p.visibility} for p in make_frame(angle)]
    return json.dumps({"type": "landmarks", "ts": ts, "landmarks": pts})


def drain_until_error(ws):
    msgs = []
    while True:
        msg = ws.receive_json()
        msgs.append(msg)
        if msg["type"] == "error":
            return msgs


def test_current_when_idle(client):
    r = client.get("/sessions/current")
    assert r.status_code == 200
    body = r.json()
    assert body["state"] == "idle"
    assert body["session_id"] is None


def test_start_and_stop(client):
    r = client.post("/counter/start", params={"exercise": "pull-up"})
    assert r.status_code == 200
    sid = r.json()["session_id"]
    assert r.json()["exercise"] == "pull-up"

    cur = client.get("/sessions/current").json()
    assert cur["session_id"] == sid
    assert cur["exercise"] == "pull-up"
    assert cur["phase"] == "unknown"

    r = client.post("/counter/stop", json={"video_reference": "v1"})
    assert r.status_code == 200
    assert r.json()["total_reps"] == 0
    assert client.get("/workouts").json()[0]["video_reference"] == "v1"


def test_bad_exercise_rejected(client):
    assert client.post("/counter/start", params={"exercise": "squat"}).status_code == 422


def test_stop_without_session(client):
    assert client.post("/counter/stop").status_code == 409


def test_websocket_counts_reps(client, make_frame):
    client.post("/counter/start", params={"exercise": "push-up"})
    with client.websocket_connect("/ws/landmarks") as ws:
        ws.send_text(frame_msg(make_frame, 170, 0))
        ws.send_text(json.dumps({"type": "landmarks", "ts": 100, "landmarks": None}))
        ws.send_text(frame_msg(make_frame, 80, 200))
        ws.send_text(frame_msg(make_frame, 170, 300))
        ws.send_text("{}")   # invalid, answered with an error once the frames are processed
        drain_until_error(ws)
        cur = client.get("/sessions/current").json()
        assert cur["count"] == 1
        assert cur["phase"] == "extended"
        assert cur["web_mode"] is True
        # feedback is read on the client timestamps (ts 300), not the server clock
        assert cur["feedback"]["text"] == "Lower down to 90°"
        assert cur["feedback"]["expiresAtMs"] == 2300

    summary = client.post("/counter/stop").json()
    assert summary["total_reps"] == 1
    assert summary["is_record"] is True
    assert client.get("/records").json()["push-up"]["best_count"] == 1


def test_websocket_without_session(client, make_frame):
    with client.websocket_connect("/ws/landmarks") as ws:
        ws.send_text(frame_msg(make_frame, 170, 0))
        msgs = drain_until_error(ws)
        assert msgs[-1]["msg"] == "no active session"
