"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from container_insights.config.models import AppConfig, LoggingConfig, TelemetryConfig
from container_insights.models.core import HostMetadata
from container_insights.scheduling.scheduler import TickSource
from container_insights.telemetry.emitter import BaseTelemetrySink


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class FakeTickSource(TickSource):
    """Tick source that never fires on its own; tests call dispatch_tick()."""

    def __init__(self):
        self.callback = None
        self.first_fire = None
        self.interval_seconds = None
        self.started = False
        self.stopped = False

    def start(self, callback, first_fire, interval_seconds):
        self.callback = callback
        self.first_fire = first_fire
        self.interval_seconds = interval_seconds
        self.started = True

    def stop(self):
        self.stopped = True


class RecordingSink(BaseTelemetrySink):
    """Sink that keeps every record it is handed."""

    def __init__(self):
        self.records = []
        self.flushed = 0

    def track(self, record):
        self.records.append(record)

    def flush(self):
        self.flushed += 1


@pytest.fixture
def fake_clock():
    """Clock parked a quarter second past a whole second."""
    return FakeClock(datetime(2024, 1, 1, 12, 0, 0, 250000, tzinfo=timezone.utc))


@pytest.fixture
def fake_tick_source():
    return FakeTickSource()


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def host_metadata():
    return HostMetadata(location_key="eastus", public_ip="9.9.9.9")


@pytest.fixture
def mock_docker_client():
    """Docker SDK client reporting three containers."""
    client = Mock()
    client.containers.list.return_value = [Mock(), Mock(), Mock()]
    return client


@pytest.fixture
def app_config():
    """Offline configuration that needs no credentials or network."""
    return AppConfig(
        debug=True,
        telemetry=TelemetryConfig(sink="log"),
        logging=LoggingConfig(file=None, console=False)
    )
