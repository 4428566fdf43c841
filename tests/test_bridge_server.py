"""
Tests for the FastAPI bridge: JSON API sessions and the simulator websocket.
"""

import json
import math

import pytest
from fastapi.testclient import TestClient

from bridge.messages import MANUAL_MESSAGE
from bridge.server import create_app
from data.recorder import CycleRecorder
from data.replay import CycleReplay
from road.frame_transform import to_cartesian


@pytest.fixture
def client(circular_road_map):
    app = create_app(circular_road_map, {})
    return TestClient(app)


@pytest.fixture
def start_payload(circular_road_map, telemetry_payload):
    x, y = to_cartesian(circular_road_map, 0.0, 6.0)
    yaw_deg = math.degrees(circular_road_map.segment_headings[0])
    return telemetry_payload(x, y, yaw_deg=yaw_deg, s=0.0, d=6.0)


def test_health(client, circular_road_map):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["waypoints"] == 120
    assert body["track_length"] == pytest.approx(circular_road_map.track_length)
    assert body["sessions"] == 0


def test_telemetry_runs_cycle(client, start_payload):
    response = client.post("/api/telemetry", json=start_payload)
    assert response.status_code == 200
    body = response.json()
    assert body["session_id"] == "default"
    assert body["cycle_id"] == 0
    assert len(body["next_x"]) == 50
    assert len(body["next_y"]) == 50
    assert body["lane"] == 1
    assert body["too_close"] is False
    assert body["reference_speed"] > 0.0


def test_sessions_keep_separate_state(client, start_payload):
    for _ in range(3):
        client.post("/api/telemetry", params={"session_id": "a"}, json=start_payload)
    client.post("/api/telemetry", params={"session_id": "b"}, json=start_payload)

    state_a = client.get("/api/sessions/a/state").json()
    state_b = client.get("/api/sessions/b/state").json()
    assert state_a["cycle_count"] == 3
    assert state_b["cycle_count"] == 1
    assert state_a["reference_speed"] > state_b["reference_speed"]
    assert client.get("/api/health").json()["sessions"] == 2


def test_invalid_telemetry_is_422(client, start_payload):
    del start_payload["previous_path_y"]
    response = client.post("/api/telemetry", json=start_payload)
    assert response.status_code == 422
    assert client.get("/api/health").json()["sessions"] == 0


def test_fit_failure_is_409(rectangular_road_map, telemetry_payload):
    client = TestClient(create_app(rectangular_road_map, {}))
    response = client.post("/api/telemetry", json=telemetry_payload(100.0, -6.0, yaw_deg=180.0))
    assert response.status_code == 409

    state = client.get("/api/sessions/default/state").json()
    assert state["cycle_count"] == 0
    assert state["reference_speed"] == 0.0


def test_unknown_session_state_is_404(client):
    assert client.get("/api/sessions/nope/state").status_code == 404
    assert client.delete("/api/sessions/nope").status_code == 404


def test_reset_session(client, start_payload):
    client.post("/api/telemetry", json=start_payload)
    response = client.delete("/api/sessions/default")
    assert response.status_code == 200
    assert response.json()["status"] == "reset"
    assert client.get("/api/sessions/default/state").status_code == 404

    body = client.post("/api/telemetry", json=start_payload).json()
    assert body["cycle_id"] == 0


def test_websocket_control_reply(client, start_payload):
    with client.websocket_connect("/socket.io/") as ws:
        ws.send_text("42" + json.dumps(["telemetry", start_payload]))
        reply = ws.receive_text()

    event, body = json.loads(reply[2:])
    assert event == "control"
    assert len(body["next_x"]) == 50
    # websocket sessions are not visible through the HTTP session table
    assert client.get("/api/health").json()["sessions"] == 0


def test_websocket_manual_reply(client):
    with client.websocket_connect("/socket.io/") as ws:
        ws.send_text('42["telemetry",null]')
        assert ws.receive_text() == MANUAL_MESSAGE


def test_websocket_skips_bad_frame_and_keeps_serving(client, start_payload):
    with client.websocket_connect("/socket.io/") as ws:
        ws.send_text('42["telemetry",{"x": 1.0}]')
        ws.send_text("42" + json.dumps(["telemetry", start_payload]))
        reply = ws.receive_text()
    assert reply.startswith('42["control",')


def test_recorded_cycles_are_tagged_by_session(tmp_path, circular_road_map, start_payload):
    recorder = CycleRecorder(str(tmp_path), recording_name="bridge", horizon=50)
    client = TestClient(create_app(circular_road_map, {}, recorder=recorder))
    try:
        client.post("/api/telemetry", params={"session_id": "a"}, json=start_payload)
        client.post("/api/telemetry", params={"session_id": "a"}, json=start_payload)
        client.post("/api/telemetry", params={"session_id": "b"}, json=start_payload)
        with client.websocket_connect("/socket.io/") as ws:
            ws.send_text("42" + json.dumps(["telemetry", start_payload]))
            ws.receive_text()
    finally:
        recorder.close()

    with CycleReplay(str(tmp_path / "bridge.h5")) as replay:
        assert replay.session_ids() == ["a", "b", "ws-1"]
        assert [c["cycle/ids"] for c in replay.get_cycles(session_id="a")] == [0, 1]
        assert [c["cycle/ids"] for c in replay.get_cycles(session_id="ws-1")] == [0]
