# ==============================================================================
# Shared Test Fixtures
# ==============================================================================
"""
Pytest fixtures shared across all test modules.

Provides:
- A controllable UTC clock
- Settings pointing at a per-test temporary log directory
- SessionStore, EventLog and TelemetryService wired to the fake clock
- A TestClient running the full app (lifespan included)
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from vision_telemetry.config import Settings
from vision_telemetry.main import create_app
from vision_telemetry.services.event_log import EventLog
from vision_telemetry.services.session_store import SessionStore
from vision_telemetry.services.telemetry_service import TelemetryService


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 12, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def logs_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture()
def settings(logs_dir):
    """Settings isolated from any .env file or environment overrides."""
    return Settings(
        _env_file=None,
        logs_dir=str(logs_dir),
        session_retention_seconds=60,
        environment="test",
    )


@pytest.fixture()
def store(clock):
    store = SessionStore(clock=clock)
    yield store
    store.shutdown()


@pytest.fixture()
def event_log(logs_dir, clock):
    log = EventLog(logs_dir, clock=clock)
    yield log
    log.close()


@pytest.fixture()
def service(settings, store, event_log, clock):
    svc = TelemetryService(settings, store=store, event_log=event_log, clock=clock)
    yield svc
    store.shutdown()


@pytest.fixture()
def client(settings):
    """TestClient over a fresh app; the context manager runs the lifespan."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client
