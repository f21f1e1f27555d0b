"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the TESTING environment variable (so no .env file is loaded) and
points the service at an in-memory database with the runner disabled.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("APP_RATE_LIMIT_SWEEP_SECONDS", "0")
os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.pop("TELEGRAM_BOT_TOKEN", None)
os.environ.pop("TELEGRAM_WEBHOOK_SECRET", None)

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402

from notifier.adapters.delivery.base import AbstractDeliveryChannel  # noqa: E402
from notifier.adapters.payload.base import AbstractPayloadSource, Payload  # noqa: E402
from notifier.core.db import build_engine, build_sessionmaker, init_db  # noqa: E402
from notifier.core.errors import UpstreamUnavailable  # noqa: E402

# Register every table on Base.metadata before init_db runs.
import notifier.scheduler.models  # noqa: E402,F401
import notifier.services.subscriber_service  # noqa: E402,F401


T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock for scheduler tests."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class StaticPayloadSource(AbstractPayloadSource):
    """Returns the same payload every time, or raises when ``fail`` is set."""

    def __init__(self, text: str = "Why did the chicken cross the road?\n\nTo get to the other side.") -> None:
        self.text = text
        self.fail = False
        self.calls = 0

    async def fetch_payload(self) -> Payload:
        self.calls += 1
        if self.fail:
            raise UpstreamUnavailable(code="payload_upstream_unavailable", message="down")
        return Payload(text=self.text, source="static")


class RecordingChannel(AbstractDeliveryChannel):
    """Keeps every message; ``accept``/``fail`` control the outcome."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, bool]] = []
        self.accept = True
        self.fail = False

    async def send_text(self, key: str, text: str, *, markdown: bool = False) -> bool:
        if self.fail:
            raise UpstreamUnavailable(code="delivery_unavailable", message="down")
        self.sent.append((str(key), text, markdown))
        return self.accept

    def texts_for(self, key: str) -> list[str]:
        return [text for sent_key, text, _ in self.sent if sent_key == str(key)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield build_sessionmaker(engine)
    engine.dispose()


@pytest.fixture
def payload_source() -> StaticPayloadSource:
    return StaticPayloadSource()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()
