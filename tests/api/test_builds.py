from __future__ import annotations

import logging
import sys
import time

import pytest
from fastapi.testclient import TestClient

from stellar_server.settings import ServerSettings

SLEEPER = "import time; time.sleep(30)"


def _start(client: TestClient, source: str, **extra) -> str:
    response = client.post(
        "/builds",
        json={"executable": sys.executable, "args": ["-c", source], **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()["build_id"]


def _wait_for_terminal(client: TestClient, build_id: str, timeout: float = 15.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        response = client.get(f"/builds/{build_id}")
        assert response.status_code == 200, response.text
        payload = response.json()
        if payload["status"] != "running":
            return payload
        assert time.monotonic() < deadline, f"build {build_id} never finished"
        time.sleep(0.02)


def test_health_endpoints(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"message": "ok"}
    assert client.get("/readyz").json() == {"message": "ready"}


def test_build_lifecycle_over_http(client: TestClient) -> None:
    build_id = _start(client, "import sys; print('compiling'); sys.exit(2)")

    status = _wait_for_terminal(client, build_id)
    assert status["status"] == "error"
    assert status["exit_code"] == 2
    assert status["finished_at"] is not None

    logs = client.get(f"/builds/{build_id}/logs", params={"cursor": 0}).json()
    assert logs["finished"] is True
    assert logs["lines"][1:] == ["compiling"]
    assert logs["next_cursor"] == 2

    tail = client.get(f"/builds/{build_id}/logs", params={"cursor": logs["next_cursor"]}).json()
    assert tail["lines"] == []

    assert client.get("/builds").json() == [build_id]


def test_negative_cursor_is_treated_as_zero(client: TestClient) -> None:
    build_id = _start(client, "print('line')")
    _wait_for_terminal(client, build_id)

    logs = client.get(f"/builds/{build_id}/logs", params={"cursor": -5}).json()
    assert logs["lines"][0].startswith("Running: ")


def test_spawn_failure_returns_bad_request(client: TestClient) -> None:
    response = client.post("/builds", json={"executable": "/definitely/not/a/real/binary"})
    assert response.status_code == 400
    assert "Failed to start build" in response.json()["detail"]
    assert client.get("/builds").json() == []


def test_blank_executable_is_rejected(client: TestClient) -> None:
    response = client.post("/builds", json={"executable": "   "})
    assert response.status_code == 422


def test_unknown_build_returns_not_found(client: TestClient) -> None:
    assert client.get("/builds/missing").status_code == 404
    assert client.get("/builds/missing/logs").status_code == 404
    assert client.post("/builds/missing/cancel").status_code == 404
    assert client.delete("/builds/missing").status_code == 404


def test_cancel_then_cancel_again_conflicts(client: TestClient) -> None:
    build_id = _start(client, SLEEPER)

    first = client.post(f"/builds/{build_id}/cancel")
    assert first.status_code == 200
    assert client.get(f"/builds/{build_id}").json()["status"] == "cancelled"

    second = client.post(f"/builds/{build_id}/cancel")
    assert second.status_code == 409
    assert second.json()["detail"] == "Build not running."


def test_forget_requires_finished_build(client: TestClient) -> None:
    build_id = _start(client, SLEEPER)
    assert client.delete(f"/builds/{build_id}").status_code == 409

    client.post(f"/builds/{build_id}/cancel")
    assert client.delete(f"/builds/{build_id}").status_code == 200
    assert client.get(f"/builds/{build_id}").status_code == 404


@pytest.mark.parametrize("settings", [ServerSettings(max_concurrent_jobs=1)])
def test_concurrency_limit_returns_conflict(client: TestClient) -> None:
    build_id = _start(client, SLEEPER)

    response = client.post("/builds", json={"executable": sys.executable, "args": ["-c", "pass"]})
    assert response.status_code == 409
    assert response.json()["detail"] == "Another build is already running."

    client.post(f"/builds/{build_id}/cancel")
    _start(client, "pass")


def test_shutdown_cancels_running_builds(app) -> None:
    supervisor = app.state.context.supervisor
    with TestClient(app) as test_client:
        build_id = _start(test_client, SLEEPER)
    assert supervisor.poll_status(build_id).state.value == "cancelled"


def test_requests_are_tagged_and_audited(client: TestClient, caplog) -> None:
    caplog.set_level(logging.INFO, logger="stellar_server.api.audit")

    generated = client.get("/builds")
    echoed = client.get("/builds/missing", headers={"X-Request-ID": "req-42"})

    assert len(generated.headers["X-Request-ID"]) == 32
    assert echoed.headers["X-Request-ID"] == "req-42"
    audited = [record for record in caplog.records if record.getMessage() == "api.request"]
    by_id = {record.request_id: record for record in audited}
    assert by_id["req-42"].status == 404
    assert by_id["req-42"].path == "/builds/missing"
    assert by_id["req-42"].levelno == logging.INFO
