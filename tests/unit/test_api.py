from __future__ import annotations

from fastapi.testclient import TestClient

from pomodoro_service.api.main import TASK_SYNC_HEADER
from pomodoro_service.errors import StorageError

PREFIX = "/api/v1"


def _create_session(client: TestClient, **overrides) -> dict:
    payload = {"user_id": "u1", "focus_minutes": 25, "break_minutes": 5}
    payload.update(overrides)
    response = client.post(f"{PREFIX}/sessions", json=payload)
    assert response.status_code == 201
    return response.json()


def _create_task(client: TestClient) -> dict:
    response = client.post(f"{PREFIX}/tasks", json={"user_id": "u1", "title": "Write report"})
    assert response.status_code == 201
    return response.json()


def test_health_endpoints(client: TestClient) -> None:
    for route in ("/health", "/healthz", "/live"):
        response = client.get(route)
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "pomodoro-service"}


def test_session_lifecycle_over_http(client: TestClient) -> None:
    task = _create_task(client)
    created_resp = client.post(
        f"{PREFIX}/sessions",
        json={"user_id": "u1", "task_id": task["task_id"], "focus_minutes": 25, "break_minutes": 5},
    )
    assert created_resp.status_code == 201
    assert created_resp.headers[TASK_SYNC_HEADER] == "applied"
    session = created_resp.json()
    sid = session["session_id"]
    assert session["state"] == "RUNNING"
    assert session["interruptions"] == 0

    paused = client.patch(f"{PREFIX}/sessions/{sid}/pause").json()
    assert paused["state"] == "PAUSED"
    assert paused["interruptions"] == 1

    resumed = client.patch(f"{PREFIX}/sessions/{sid}/resume").json()
    assert resumed["state"] == "RUNNING"
    assert resumed["paused_at"] is None

    finish_resp = client.patch(f"{PREFIX}/sessions/{sid}/finish")
    assert finish_resp.status_code == 200
    assert finish_resp.headers[TASK_SYNC_HEADER] == "applied"
    assert finish_resp.json()["state"] == "FINISHED"

    for step, expected in (
        ("break/start", "BREAK_RUNNING"),
        ("break/pause", "BREAK_PAUSED"),
        ("break/resume", "BREAK_RUNNING"),
        ("break/finish", "BREAK_FINISHED"),
    ):
        response = client.patch(f"{PREFIX}/sessions/{sid}/{step}")
        assert response.status_code == 200
        assert response.json()["state"] == expected

    fetched = client.get(f"{PREFIX}/sessions/{sid}").json()
    assert fetched["state"] == "BREAK_FINISHED"
    assert fetched["break_finished_at"] is not None

    task_after = client.get(f"{PREFIX}/tasks/{task['task_id']}").json()
    assert task_after["status"] == "in_progress"
    assert task_after["total_focus_minutes"] == 25
    assert task_after["pomodoros_completed"] == 1


def test_invalid_transition_is_client_error(client: TestClient) -> None:
    sid = _create_session(client)["session_id"]
    client.patch(f"{PREFIX}/sessions/{sid}/finish")

    response = client.patch(f"{PREFIX}/sessions/{sid}/pause")

    assert response.status_code == 400
    assert "FINISHED" in response.json()["detail"]
    assert client.get(f"{PREFIX}/sessions/{sid}").json()["state"] == "FINISHED"


def test_unknown_session_is_not_found(client: TestClient) -> None:
    for path in ("pause", "resume", "finish", "break/start", "break/finish"):
        response = client.patch(f"{PREFIX}/sessions/does-not-exist/{path}")
        assert response.status_code == 404
    assert client.get(f"{PREFIX}/sessions/does-not-exist").status_code == 404


def test_dangling_task_reported_in_header(client: TestClient) -> None:
    response = client.post(
        f"{PREFIX}/sessions",
        json={"user_id": "u1", "task_id": "t1", "focus_minutes": 25, "break_minutes": 5},
    )
    assert response.status_code == 201
    assert response.headers[TASK_SYNC_HEADER] == "task_not_found"

    finish = client.patch(f"{PREFIX}/sessions/{response.json()['session_id']}/finish")
    assert finish.status_code == 200
    assert finish.headers[TASK_SYNC_HEADER] == "task_not_found"


def test_create_session_payload_validation(client: TestClient) -> None:
    invalid_payloads = [
        {"user_id": "", "focus_minutes": 25, "break_minutes": 5},
        {"user_id": "u1", "focus_minutes": 0, "break_minutes": 5},
        {"user_id": "u1", "focus_minutes": 121, "break_minutes": 5},
        {"user_id": "u1", "focus_minutes": 25, "break_minutes": -1},
        {"user_id": "u1", "focus_minutes": 25, "break_minutes": 61},
        {"focus_minutes": 25, "break_minutes": 5},
    ]
    for payload in invalid_payloads:
        assert client.post(f"{PREFIX}/sessions", json=payload).status_code == 422


def test_task_status_routes(client: TestClient) -> None:
    task_id = _create_task(client)["task_id"]

    assert client.patch(f"{PREFIX}/tasks/{task_id}/start").json()["status"] == "in_progress"
    assert client.patch(f"{PREFIX}/tasks/{task_id}/pause").json()["status"] == "paused"

    completed = client.patch(f"{PREFIX}/tasks/{task_id}/complete").json()
    assert completed["status"] == "completed"
    assert completed["completed"] is True

    reopened = client.patch(f"{PREFIX}/tasks/{task_id}/reopen").json()
    assert reopened["status"] == "pending"
    assert reopened["completed"] is False

    listed = client.get(f"{PREFIX}/tasks/user/u1").json()
    assert [task["task_id"] for task in listed] == [task_id]

    assert client.patch(f"{PREFIX}/tasks/missing/complete").status_code == 404


def test_cycle_routes(client: TestClient) -> None:
    created = client.post(
        f"{PREFIX}/cycles",
        json={
            "user_id": "u1",
            "task_id": "t1",
            "duration": 25,
            "started_at": "2026-01-05T09:00:00+00:00",
            "finished_at": "2026-01-05T09:25:00+00:00",
            "break_used": True,
        },
    )
    assert created.status_code == 201
    assert created.json()["cycle_id"]

    listed = client.get(f"{PREFIX}/tasks/t1/cycles").json()
    assert len(listed) == 1
    assert listed[0]["break_used"] is True

    inverted = client.post(
        f"{PREFIX}/cycles",
        json={
            "user_id": "u1",
            "task_id": "t1",
            "duration": 25,
            "started_at": "2026-01-05T09:25:00+00:00",
            "finished_at": "2026-01-05T09:00:00+00:00",
        },
    )
    assert inverted.status_code == 422


def test_storage_failure_maps_to_service_unavailable(client: TestClient) -> None:
    def broken_get(session_id: str):
        raise StorageError("connection refused")

    client.app.state.storage.sessions.get_session = broken_get

    response = client.patch(f"{PREFIX}/sessions/any/pause")

    assert response.status_code == 503
    assert response.json() == {"detail": "Storage unavailable"}
