"""Métricas Prometheus del servicio de ingesta de motores."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

INGEST_EVENTS = Counter(
    "motor_ingest_events_total",
    "Sensor readings handled by the ingestion pipeline",
    ["outcome"],  # received, saved, failed, invalid
)

ANOMALIES_DETECTED = Counter(
    "motor_anomalies_total",
    "Anomalies detected or received",
    ["type"],
)

STORE_RETRIES = Counter(
    "motor_store_retries_total",
    "Data store operations retried after a transient error",
    ["label"],
)

MQTT_MESSAGES = Counter(
    "motor_mqtt_messages_total",
    "MQTT messages handled",
    ["kind"],
)

CONNECTED_DEVICES = Gauge(
    "motor_connected_devices",
    "Edge devices currently considered online",
)
