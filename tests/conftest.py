import asyncio
import time
import types
from typing import Any

import pytest


class FakeSesClient:
    """In-memory stand-in for SesClient recording every request it receives."""

    def __init__(self):
        self.sent: list[dict[str, Any]] = []
        self.sent_at: list[float] = []
        self.fail_subjects: set[str] = set()
        self.delay: float = 0.0
        self.opened = 0
        self.closed = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def open(self):
        self.opened += 1

    async def close(self):
        self.closed += 1

    async def send(self, request: dict[str, Any]) -> dict[str, Any]:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            self.sent.append(request)
            self.sent_at.append(time.monotonic())
            if request["Message"]["Subject"]["Data"] in self.fail_subjects:
                raise RuntimeError("MessageRejected: Email address is not verified")
            return {"MessageId": f"msg-{len(self.sent)}"}
        finally:
            self.in_flight -= 1

    @property
    def subjects(self) -> list[str]:
        return [request["Message"]["Subject"]["Data"] for request in self.sent]


class RecordingLogger:
    def __init__(self):
        self.records: list[tuple[str, str]] = []

    def _record(self, level):
        def log(msg, *args, **kwargs):
            self.records.append((level, msg % args if args else msg))
        return log

    def __getattr__(self, level):
        if level in {"debug", "info", "warning", "error", "exception", "critical"}:
            return self._record(level)
        raise AttributeError(level)

    def messages(self, level: str) -> list[str]:
        return [msg for lvl, msg in self.records if lvl == level]


@pytest.fixture
def fake_client():
    return FakeSesClient()


@pytest.fixture
def recording_logger():
    return RecordingLogger()


@pytest.fixture
def quiet_logger():
    return types.SimpleNamespace(
        debug=lambda *args, **kwargs: None,
        info=lambda *args, **kwargs: None,
        warning=lambda *args, **kwargs: None,
        error=lambda *args, **kwargs: None,
        exception=lambda *args, **kwargs: None,
        critical=lambda *args, **kwargs: None,
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in (
        "SESAccess",
        "SESSecret",
        "SESRegion",
        "SESD_CONFIG",
        "SESD_RATE_LIMIT",
        "SESD_IDLE_POLL_INTERVAL",
        "SESD_THROTTLE_TICK",
        "SESD_DRAIN_POLL_INTERVAL",
        "SESD_DEFAULT_FROM",
        "SESD_DEFAULT_FROM_NAME",
        "SESD_SEND_TIMEOUT",
        "SESD_LOG_DELIVERY_ACTIVITY",
        "SESD_HOST",
        "SESD_PORT",
        "SESD_API_TOKEN",
    ):
        monkeypatch.delenv(var, raising=False)
