import time
import types

import pytest
from fastapi.testclient import TestClient

from ses_dispatcher import api
from ses_dispatcher.api import API_TOKEN_HEADER_NAME, create_app
from ses_dispatcher.config import DispatcherConfig
from ses_dispatcher.dispatcher import SesDispatcher
from ses_dispatcher.server import _lifespan_for

API_TOKEN = "secret-token"


class DummyService:
    def __init__(self):
        self.calls = []
        self.metrics = types.SimpleNamespace(generate_latest=lambda: b"metrics-data")

    async def handle_command(self, cmd, payload):
        self.calls.append((cmd, payload))
        if cmd == "addMessages":
            return {"ok": True, "queued": len(payload.get("messages", [])), "rejected": []}
        if cmd == "status":
            return {"ok": True, "running": True, "pending": 3}
        return {"ok": True}


@pytest.fixture(autouse=True)
def reset_service():
    original = api.service
    original_token = getattr(api.app.state, "api_token", None)
    api.service = None
    api.app.state.api_token = None
    try:
        yield
    finally:
        api.service = original
        api.app.state.api_token = original_token


@pytest.fixture
def dispatcher(fake_client, quiet_logger):
    config = DispatcherConfig(
        idle_poll_interval=0.01,
        drain_poll_interval=0.005,
        default_sender_address="noreply@example.com",
    )
    return SesDispatcher(fake_client, config=config, logger=quiet_logger)


def test_health_needs_no_token():
    client = TestClient(create_app(DummyService(), api_token=API_TOKEN))
    assert client.get("/health").json() == {"status": "ok"}


def test_token_is_enforced():
    client = TestClient(create_app(DummyService(), api_token=API_TOKEN))

    assert client.get("/status").status_code == 401
    assert client.get("/status", headers={API_TOKEN_HEADER_NAME: "wrong"}).status_code == 401
    response = client.get("/status", headers={API_TOKEN_HEADER_NAME: API_TOKEN})
    assert response.status_code == 200
    assert response.json() == {"ok": True, "running": True, "pending": 3}


def test_commands_forward_to_service():
    svc = DummyService()
    client = TestClient(create_app(svc))

    assert client.post("/commands/run-now").json() == {"ok": True}
    response = client.post("/commands/add-messages", json={"messages": [
        {"to": ["a@example.com", "b@example.com"], "subject": "Hi", "body": "<p>x</p>", "from": "me@example.com"},
    ]})

    assert response.status_code == 200
    assert svc.calls[0] == ("run now", {})
    assert svc.calls[1] == ("addMessages", {"messages": [
        {"to": ["a@example.com", "b@example.com"], "subject": "Hi", "body": "<p>x</p>", "from": "me@example.com"},
    ]})


def test_metrics_endpoint():
    client = TestClient(create_app(DummyService()))
    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.content == b"metrics-data"


def test_service_not_initialized():
    client = TestClient(create_app(DummyService()))
    api.service = None

    response = client.get("/status")
    assert response.status_code == 500
    assert response.json() == {"detail": "Service not initialized"}


def test_add_messages_validation():
    client = TestClient(create_app(DummyService()))

    assert client.post("/commands/add-messages", json={"messages": []}).status_code == 422
    assert client.post("/commands/add-messages", json={"messages": [{"subject": "no recipient"}]}).status_code == 422


def test_add_messages_reports_rejected_recipients(dispatcher):
    client = TestClient(create_app(dispatcher))

    response = client.post("/commands/add-messages", json={"messages": [
        {"to": "ok@example.com", "subject": "s", "body": "b"},
        {"to": "  ", "subject": "s", "body": "b"},
    ]})

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "queued": 1,
        "rejected": [{"index": 1, "to": "  ", "reason": "Target Email Is Required"}],
    }
    assert client.get("/status").json() == {"ok": True, "running": False, "pending": 1, "observers": 0}


def test_served_dispatcher_delivers_queued_messages(dispatcher, fake_client):
    app = create_app(dispatcher, lifespan=_lifespan_for(dispatcher))

    with TestClient(app) as client:
        assert client.get("/status").json()["running"] is True
        response = client.post("/commands/add-messages", json={"messages": [
            {"to": ["a@example.com", "b@example.com"], "subject": "News", "body": "<p>x</p>"},
        ]})
        assert response.json()["queued"] == 2
        client.post("/commands/run-now")

        deadline = time.monotonic() + 2.0
        while client.get("/status").json()["pending"] and time.monotonic() < deadline:
            time.sleep(0.01)

        metrics = client.get("/metrics").text

    assert [request["Destination"]["ToAddresses"] for request in fake_client.sent] == [
        ["a@example.com"],
        ["b@example.com"],
    ]
    assert 'sesd_sent_total{sender="noreply@example.com"} 2.0' in metrics
    assert not dispatcher.running
    assert fake_client.closed == 1
