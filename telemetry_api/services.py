"""Construcción y ciclo de vida de los componentes del servicio.

Todo el estado del proceso (baseline, umbrales, dispositivos, stats)
vive en un TelemetryServices creado explícitamente; los tests crean el
suyo con un InMemoryDataStore.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from common.config import Settings
from common.db import build_engine

from .detection import DetectionState
from .ingest.pipeline import TelemetryPipeline
from .monitoring import DeviceRegistry, RuntimeStats, StatsAggregator
from .mqtt import BrokerMessageHandler, MqttTelemetryClient
from .persistence import InMemoryDataStore, PersistenceCoordinator, RetryConfig
from .persistence.retry import SleepFunc
from .persistence.sql_store import SqlDataStore
from .persistence.store import DataStore
from .realtime import EventFanout
from .realtime.redis_relay import RedisEventRelay
from .realtime.websocket import WebSocketHub

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> DataStore:
    if settings.store_backend == "memory":
        logger.warning("[STORE] Using in-memory data store (data is not persisted)")
        return InMemoryDataStore()
    return SqlDataStore(build_engine(settings))


@dataclass
class TelemetryServices:
    settings: Settings
    store: DataStore
    coordinator: PersistenceCoordinator
    detection: DetectionState
    stats: RuntimeStats
    devices: DeviceRegistry
    fanout: EventFanout
    aggregator: StatsAggregator
    pipeline: TelemetryPipeline
    hub: WebSocketHub
    broker_handler: BrokerMessageHandler
    mqtt: Optional[MqttTelemetryClient] = None
    relay: Optional[RedisEventRelay] = None
    _subscriptions: list[int] = field(default_factory=list)

    def status(self) -> dict:
        return {
            "connected_clients": self.hub.client_count,
            "mqtt_status": "connected" if self.mqtt and self.mqtt.is_connected else "disconnected",
        }

    async def start(self) -> None:
        """Arranca el servicio.

        Raises:
            StoreError: el data store no es alcanzable (el proceso no debe arrancar).
        """
        await self.store.ensure_schema()
        await self.store.ping()
        logger.info("[STARTUP] Data store ready backend=%s", self.settings.store_backend)

        self._subscriptions.append(self.fanout.subscribe(self.hub.send))

        if self.settings.redis_url:
            self.relay = await asyncio.to_thread(
                RedisEventRelay.from_url, self.settings.redis_url, self.settings.events_channel
            )
            if self.relay is not None:
                self._subscriptions.append(self.fanout.subscribe(self.relay))

        await self.aggregator.start()

        if self.settings.use_mqtt:
            self.mqtt = MqttTelemetryClient(
                handler=self.broker_handler,
                loop=asyncio.get_running_loop(),
                broker_host=self.settings.mqtt_broker,
                broker_port=self.settings.mqtt_port,
                username=self.settings.mqtt_username,
                password=self.settings.mqtt_password,
            )
            self.mqtt.start()
        else:
            logger.info("[STARTUP] MQTT disabled, HTTP ingestion only")

    async def stop(self) -> None:
        await self.aggregator.stop()
        if self.mqtt is not None:
            await asyncio.to_thread(self.mqtt.stop)
        for token in self._subscriptions:
            self.fanout.unsubscribe(token)
        self._subscriptions.clear()
        if self.relay is not None:
            self.relay.close()
        await self.store.close()
        logger.info("[SHUTDOWN] Services stopped. %s", self.stats)


def build_services(
    settings: Settings,
    store: Optional[DataStore] = None,
    sleep: SleepFunc = asyncio.sleep,
) -> TelemetryServices:
    store = store if store is not None else build_store(settings)
    coordinator = PersistenceCoordinator(RetryConfig.from_env(), sleep=sleep)
    detection = DetectionState(defaults=settings.default_thresholds())
    stats = RuntimeStats()
    devices = DeviceRegistry()
    fanout = EventFanout()
    hub = WebSocketHub()
    aggregator = StatsAggregator(
        stats,
        devices,
        fanout,
        interval_seconds=settings.stats_interval_seconds,
    )
    pipeline = TelemetryPipeline(store, coordinator, detection, stats, devices, fanout)

    services = TelemetryServices(
        settings=settings,
        store=store,
        coordinator=coordinator,
        detection=detection,
        stats=stats,
        devices=devices,
        fanout=fanout,
        aggregator=aggregator,
        pipeline=pipeline,
        hub=hub,
        broker_handler=BrokerMessageHandler(pipeline),
    )
    aggregator.set_status_provider(services.status)
    devices.set_listener(aggregator.broadcast)
    return services
