"""Fan-out de eventos en tiempo real.

Publicación/suscripción explícita: el pipeline recibe una instancia de
EventFanout y cada suscriptor (WebSocketHub, relay Redis, tests) se
registra con ``subscribe``. Sin ack ni garantía de entrega por suscriptor.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class EventName(str, Enum):
    """Catálogo de eventos difundidos al dashboard."""

    RAW_SENSOR_DATA = "rawSensorData"
    NEW_ANOMALY = "new-anomaly"
    NEW_PREDICTION = "new-prediction"
    MOTOR_STATUS = "motor-status-update"
    METRICS_UPDATE = "metricsUpdate"
    DEVICE_CONNECTED = "device-connected"
    DEVICE_STATUS = "device-status-update"
    STATS = "stats"
    DATA_ERROR = "dataError"


Subscriber = Callable[[str, Any], Awaitable[None]]


class EventFanout:
    """Difunde cada evento a todos los suscriptores registrados."""

    def __init__(self):
        self._subscribers: dict[int, Subscriber] = {}
        self._ids = itertools.count(1)
        self._emitted: dict[str, int] = {}

    def subscribe(self, subscriber: Subscriber) -> int:
        token = next(self._ids)
        self._subscribers[token] = subscriber
        return token

    def unsubscribe(self, token: int) -> None:
        self._subscribers.pop(token, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def emitted(self) -> dict[str, int]:
        return dict(self._emitted)

    async def emit(self, event: EventName | str, payload: Any) -> None:
        name = event.value if isinstance(event, EventName) else str(event)
        self._emitted[name] = self._emitted.get(name, 0) + 1

        subscribers = list(self._subscribers.values())
        if not subscribers:
            return

        results = await asyncio.gather(
            *(subscriber(name, payload) for subscriber in subscribers),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning("[FANOUT] Subscriber failed event=%s err=%s", name, result)
