"""Mensajes del broker MQTT como variantes tipadas.

Cada topic se parsea una sola vez a su variante; el machine_id sale
siempre del segundo segmento del topic:

    sensor/{machine}/data       -> SensorDataMessage
    prediction/{machine}/alert  -> PredictionAlertMessage
    device/{machine}/status     -> DeviceStatusMessage
    metrics/{machine}/update    -> MetricsUpdateMessage
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

import orjson

SENSOR_DATA_TOPIC = "sensor/+/data"
PREDICTION_ALERT_TOPIC = "prediction/+/alert"
DEVICE_STATUS_TOPIC = "device/+/status"
METRICS_UPDATE_TOPIC = "metrics/+/update"

SUBSCRIPTIONS = (
    SENSOR_DATA_TOPIC,
    PREDICTION_ALERT_TOPIC,
    DEVICE_STATUS_TOPIC,
    METRICS_UPDATE_TOPIC,
)


class MessageParseError(ValueError):
    """Topic desconocido o payload que no es un objeto JSON."""


@dataclass(frozen=True)
class SensorDataMessage:
    machine_id: str
    payload: dict
    kind: str = field(default="sensor_data", init=False)

    def reading(self) -> dict:
        """Payload con el machine_id del topic (el del topic manda)."""
        return {**self.payload, "machine_id": self.machine_id}


@dataclass(frozen=True)
class PredictionAlertMessage:
    machine_id: str
    prediction_type: Optional[str]
    severity: Optional[str]
    message: Optional[str] = None
    timestamp: Optional[str] = None
    details: dict = field(default_factory=dict)
    kind: str = field(default="prediction_alert", init=False)

    @classmethod
    def from_payload(cls, machine_id: str, payload: dict) -> "PredictionAlertMessage":
        details = payload.get("details")
        return cls(
            machine_id=machine_id,
            prediction_type=payload.get("type", payload.get("prediction_type")),
            severity=payload.get("severity"),
            message=payload.get("message"),
            timestamp=payload.get("timestamp"),
            details=details if isinstance(details, dict) else {},
        )


@dataclass(frozen=True)
class DeviceStatusMessage:
    machine_id: str
    status: Optional[str]
    timestamp: Optional[str] = None
    details: dict = field(default_factory=dict)
    kind: str = field(default="device_status", init=False)


@dataclass(frozen=True)
class MetricsUpdateMessage:
    machine_id: str
    metrics: dict
    kind: str = field(default="metrics_update", init=False)


BrokerMessage = Union[
    SensorDataMessage,
    PredictionAlertMessage,
    DeviceStatusMessage,
    MetricsUpdateMessage,
]


def machine_id_from_topic(topic: str) -> str:
    parts = topic.split("/")
    if len(parts) != 3 or not parts[1]:
        raise MessageParseError(f"Unexpected topic format: {topic}")
    return parts[1]


def decode_payload(payload: Union[bytes, str, dict]) -> dict:
    if isinstance(payload, dict):
        return payload
    try:
        data = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        raise MessageParseError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MessageParseError("Payload must be a JSON object")
    return data


def parse_broker_message(topic: str, payload: Union[bytes, str, dict]) -> BrokerMessage:
    """Convierte (topic, payload) en su variante tipada.

    Raises:
        MessageParseError: topic fuera de las 4 familias o JSON inválido.
    """
    machine_id = machine_id_from_topic(topic)
    prefix, suffix = topic.split("/")[0], topic.split("/")[2]
    data: dict[str, Any] = decode_payload(payload)

    if (prefix, suffix) == ("sensor", "data"):
        return SensorDataMessage(machine_id=machine_id, payload=data)
    if (prefix, suffix) == ("prediction", "alert"):
        return PredictionAlertMessage.from_payload(machine_id, data)
    if (prefix, suffix) == ("device", "status"):
        return DeviceStatusMessage(
            machine_id=machine_id,
            status=data.get("status"),
            timestamp=data.get("timestamp"),
            details=data,
        )
    if (prefix, suffix) == ("metrics", "update"):
        return MetricsUpdateMessage(machine_id=machine_id, metrics=data)

    raise MessageParseError(f"Unsupported topic: {topic}")
