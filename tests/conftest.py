"""Fixtures compartidas para los tests del servicio de ingesta."""

from __future__ import annotations

import dataclasses
from typing import Any, List, Tuple

import pytest

from common.config import Settings
from telemetry_api.detection import DetectionState
from telemetry_api.ingest.pipeline import TelemetryPipeline
from telemetry_api.monitoring import DeviceRegistry, RuntimeStats
from telemetry_api.persistence import InMemoryDataStore, PersistenceCoordinator, RetryConfig
from telemetry_api.realtime import EventFanout


BASE_SETTINGS = Settings(
    database_url="sqlite:///:memory:",
    store_backend="memory",
    use_mqtt=False,
    mqtt_broker="127.0.0.1",
    mqtt_port=1883,
    mqtt_username=None,
    mqtt_password=None,
    redis_url=None,
    events_channel="motor:events:test",
    stats_interval_seconds=10.0,
    shutdown_grace_seconds=5.0,
    frontend_url="http://localhost:5173",
    temp_warning=35.0,
    temp_critical=40.0,
    vib_warning=1.2,
    vib_critical=1.8,
    sound_warning=0.8,
    sound_critical=1.0,
)


def make_settings(**overrides: Any) -> Settings:
    return dataclasses.replace(BASE_SETTINGS, **overrides)


class FakeSleep:
    """Sustituye asyncio.sleep en el retry; registra los delays pedidos."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class EventRecorder:
    """Suscriptor del EventFanout que guarda cada evento recibido."""

    def __init__(self):
        self.events: List[Tuple[str, Any]] = []

    async def __call__(self, event: str, payload: Any) -> None:
        self.events.append((event, payload))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def payloads(self, name: str) -> List[Any]:
        return [payload for event, payload in self.events if event == name]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def store() -> InMemoryDataStore:
    return InMemoryDataStore()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def fanout(recorder) -> EventFanout:
    fanout = EventFanout()
    fanout.subscribe(recorder)
    return fanout


@pytest.fixture
def coordinator(fake_sleep) -> PersistenceCoordinator:
    return PersistenceCoordinator(RetryConfig(), sleep=fake_sleep)


@pytest.fixture
def pipeline(store, coordinator, fanout) -> TelemetryPipeline:
    return TelemetryPipeline(
        store=store,
        coordinator=coordinator,
        detection=DetectionState(),
        stats=RuntimeStats(),
        devices=DeviceRegistry(),
        fanout=fanout,
    )


@pytest.fixture
def reading_payload():
    """Factory de lecturas crudas tal como las envía el Raspberry Pi."""

    def _make(**overrides: Any) -> dict:
        data = {
            "machine_id": "motor-01",
            "timestamp": "2024-05-01T10:00:00Z",
            "temperature_c": 30.0,
            "sound_amplitude": 0.25,
            "accel_x_g": 0.1,
            "accel_y_g": 0.1,
            "accel_z_g": 0.98,
        }
        data.update(overrides)
        return data

    return _make
