"""Ingesta: validación, mensajes del broker y pipeline."""

from .messages import (
    BrokerMessage,
    DeviceStatusMessage,
    MessageParseError,
    MetricsUpdateMessage,
    PredictionAlertMessage,
    SensorDataMessage,
    parse_broker_message,
)
from .pipeline import IngestResult, TelemetryPipeline
from .validation import ValidationError, sanitize_numeric, sanitize_reading, validate_reading

__all__ = [
    "BrokerMessage",
    "DeviceStatusMessage",
    "IngestResult",
    "MessageParseError",
    "MetricsUpdateMessage",
    "PredictionAlertMessage",
    "SensorDataMessage",
    "TelemetryPipeline",
    "ValidationError",
    "parse_broker_message",
    "sanitize_numeric",
    "sanitize_reading",
    "validate_reading",
]
