"""Despacho de mensajes MQTT al pipeline (corre en el event loop)."""

from __future__ import annotations

import logging
from typing import Union

from ..ingest.messages import (
    DeviceStatusMessage,
    MessageParseError,
    MetricsUpdateMessage,
    PredictionAlertMessage,
    SensorDataMessage,
    parse_broker_message,
)
from ..ingest.pipeline import TelemetryPipeline
from ..ingest.validation import ValidationError
from ..monitoring.metrics import MQTT_MESSAGES

logger = logging.getLogger(__name__)


class BrokerMessageHandler:
    """Convierte (topic, payload) en la variante tipada y la despacha.

    Los errores de un mensaje se registran y se descartan; el receptor
    nunca se detiene por un payload malo.
    """

    def __init__(self, pipeline: TelemetryPipeline):
        self._pipeline = pipeline
        self._dropped = 0

    @property
    def dropped(self) -> int:
        return self._dropped

    async def handle(self, topic: str, payload: Union[bytes, str, dict]) -> None:
        try:
            message = parse_broker_message(topic, payload)
        except MessageParseError as e:
            self._dropped += 1
            MQTT_MESSAGES.labels(kind="invalid").inc()
            logger.warning("[MQTT] Dropped message topic=%s: %s", topic, e)
            return

        try:
            if isinstance(message, SensorDataMessage):
                await self._pipeline.register_device(message.machine_id)
                await self._pipeline.handle_raw_sensor_data(message.reading())
            elif isinstance(message, PredictionAlertMessage):
                await self._pipeline.handle_prediction_alert(message)
            elif isinstance(message, DeviceStatusMessage):
                await self._pipeline.handle_device_status(message)
            elif isinstance(message, MetricsUpdateMessage):
                await self._pipeline.handle_metrics_update(message.machine_id, message.metrics)
        except ValidationError as e:
            logger.warning("[MQTT] %s rejected machine=%s: %s", message.kind, message.machine_id, e)
        except Exception as e:
            logger.exception("[MQTT] Processing error topic=%s: %s", topic, e)

        self._pipeline.stats.mqtt_messages += 1
        MQTT_MESSAGES.labels(kind=message.kind).inc()
