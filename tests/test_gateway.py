"""Tests for the dashboard API."""

import json
import time

import pytest
from fastapi.testclient import TestClient

from autoconnect.core import AutomationController, LogBus, LogEntry
from autoconnect.gateway import create_app, log_event_stream, sse_json

from fakes import ADAPTER, ScriptedStep, driver_factory, linkedin_driver, make_config, person

PEOPLE = [person(i, name, mutual) for i, (name, mutual) in enumerate([
    ("Ada Lovelace", 5),
    ("Grace Hopper", 1),
    ("Alan Turing", 12),
    ("Edsger Dijkstra", 4),
    ("Barbara Liskov", 3),
])]


async def wait_forever(context):
    await context.token.sleep(30)


def make_client(run_config=None, **steps):
    bus = LogBus(capacity=100)
    controller = AutomationController(bus, driver_factory(linkedin_driver(PEOPLE)), ADAPTER, **steps)
    run_config = run_config or make_config()
    app = create_app(controller, bus, lambda: run_config)
    return TestClient(app), controller, bus


def wait_for_status(client, predicate, attempts=300):
    body = None
    for _ in range(attempts):
        body = client.get("/api/automation/status").json()
        if predicate(body):
            return body
        time.sleep(0.01)
    raise AssertionError(f"status never matched: {body}")


def test_status_starts_idle():
    client, _, _ = make_client()
    with client:
        body = client.get("/api/automation/status").json()

    assert body["current_step"] == "idle"
    assert body["is_running"] is False
    assert body["progress"]["connections_sent"] == 0


def test_start_rejects_invalid_config():
    client, controller, _ = make_client(make_config(linkedin_password=""))
    with client:
        response = client.post("/api/automation/start")

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error"] == "Configuration validation failed"
    assert "LINKEDIN_PASSWORD environment variable is required" in detail["details"]
    assert controller.get_status().current_step.value == "idle"


def test_start_runs_in_background_until_completed():
    client, _, _ = make_client()
    with client:
        response = client.post("/api/automation/start")
        assert response.status_code == 202
        assert response.json()["message"] == "Automation started successfully"

        body = wait_for_status(client, lambda b: b["current_step"] == "completed")
        metrics = client.get("/api/automation/metrics").json()

    assert body["progress"]["connections_sent"] == 5
    assert metrics["performance"] == {
        "success_rate": 100.0,
        "remaining_connections": 5,
        "progress_percentage": 50.0,
    }
    assert metrics["timing"]["duration_seconds"] is not None


def test_start_stop_reset_while_running():
    client, controller, _ = make_client(login_step=ScriptedStep("login", [wait_forever]))
    with client:
        assert client.post("/api/automation/start").status_code == 202
        wait_for_status(client, lambda b: b["current_step"] == "logging_in")

        assert client.post("/api/automation/start").status_code == 409
        assert client.post("/api/automation/reset").status_code == 409

        stopped = client.post("/api/automation/stop")
        assert stopped.status_code == 200
        status = stopped.json()["status"]
        assert status["current_step"] == "error"
        assert status["cancelled"] is True
        assert status["is_running"] is False

        again = client.post("/api/automation/stop").json()
        assert again["message"] == "Automation was not running"

        reset = client.post("/api/automation/reset")
        assert reset.status_code == 200
        assert reset.json()["status"]["current_step"] == "idle"


def test_logs_limit_and_level_filter():
    client, _, bus = make_client()
    for level, message in [("info", "one"), ("error", "two"), ("info", "three"), ("warn", "four")]:
        bus.publish(LogEntry(level=level, message=message))

    with client:
        recent = client.get("/api/automation/logs", params={"limit": 2}).json()
        infos = client.get("/api/automation/logs", params={"level": "info"}).json()
        too_small = client.get("/api/automation/logs", params={"limit": 0})
        too_big = client.get("/api/automation/logs", params={"limit": 1001})
        bad_level = client.get("/api/automation/logs", params={"level": "fatal"})

    assert [e["message"] for e in recent["logs"]] == ["three", "four"]
    assert recent["total"] == 4
    assert recent["limit"] == 2
    assert [e["message"] for e in infos["logs"]] == ["one", "three"]
    assert infos["total"] == 2
    assert too_small.status_code == 422
    assert too_big.status_code == 422
    assert bad_level.status_code == 422


def test_config_is_redacted():
    client, _, _ = make_client()
    with client:
        body = client.get("/api/automation/config").json()

    assert body["config"]["linkedin_password"] == "********"
    assert body["config"]["linkedin_username"] == "tester@example.com"


def test_config_validation_endpoint():
    good, _, _ = make_client()
    bad, _, _ = make_client(make_config(max_connections=0))

    with good:
        ok = good.post("/api/automation/config/validate")
    with bad:
        rejected = bad.post("/api/automation/config/validate")

    assert ok.status_code == 200
    assert ok.json()["valid"] is True
    assert rejected.status_code == 400
    assert rejected.json() == {"valid": False, "errors": ["MAX_CONNECTIONS must be a valid positive number"]}


def test_health_reports_named_checks():
    healthy, _, _ = make_client()
    unhealthy, _, _ = make_client(make_config(linkedin_username=""))

    with healthy:
        ok = healthy.get("/api/health")
    with unhealthy:
        failing = unhealthy.get("/api/health")

    assert ok.status_code == 200
    assert ok.json()["status"] == "healthy"
    assert {check["name"] for check in ok.json()["checks"]} == {"Configuration", "Logging"}
    assert failing.status_code == 503
    configuration = next(c for c in failing.json()["checks"] if c["name"] == "Configuration")
    assert configuration["status"] == "fail"
    assert "LINKEDIN_USERNAME" in configuration["message"]


def test_sse_json_frame():
    frame = sse_json("log", {"message": "hi"}, event_id=3)
    assert frame == {"event": "log", "data": '{"message":"hi"}', "id": "3"}
    assert "id" not in sse_json("connected", {})


@pytest.mark.asyncio
async def test_log_stream_sends_connected_frame_then_new_entries():
    bus = LogBus()
    bus.publish(LogEntry(level="info", message="old entry"))
    stream = log_event_stream(bus)

    connected = await stream.__anext__()
    assert connected["event"] == "connected"
    assert json.loads(connected["data"])["message"] == "Connected to log stream"
    assert bus.subscriber_count == 1

    bus.publish(LogEntry(level="warn", message="new entry", context={"step": "scan"}))
    frame = await stream.__anext__()

    assert frame["event"] == "log"
    assert frame["id"] == "1"
    payload = json.loads(frame["data"])
    assert payload["message"] == "new entry"
    assert payload["level"] == "warn"
    assert payload["context"] == {"step": "scan"}

    await stream.aclose()
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_log_stream_drops_oldest_entries_for_a_slow_client():
    bus = LogBus(capacity=50)
    stream = log_event_stream(bus, maxsize=2)
    await stream.__anext__()

    for message in ["first", "second", "third"]:
        bus.publish(LogEntry(level="info", message=message))

    frames = [await stream.__anext__(), await stream.__anext__()]

    assert [json.loads(f["data"])["message"] for f in frames] == ["second", "third"]
    await stream.aclose()
    assert bus.subscriber_count == 0
