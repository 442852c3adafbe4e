"""Contrato del data store y mapeo de registros a filas."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from ..detection.models import AnomalyEvent, PredictionRecord, SensorReading

# Categoría almacenada en anomalies.type a partir del tipo detectado/predicho.
ANOMALY_CATEGORIES = {
    "Overheating": "temperature",
    "TemperatureAlert": "temperature",
    "Temperature": "temperature",
    "Vibration": "vibration",
    "VibrationAlert": "vibration",
    "Imbalance": "vibration",
    "Bearing": "bearing",
    "Bearing Wear": "bearing",
    "Sound": "sound",
}


class DataStore(Protocol):
    """Interfaz abstracta del almacenamiento.

    Las implementaciones lanzan StoreError (Retryable/Fatal) con código
    clasificable cuando una operación falla.
    """

    async def ensure_schema(self) -> None:
        ...

    async def ping(self) -> None:
        ...

    async def insert_raw_reading(self, reading: SensorReading) -> dict:
        ...

    async def insert_prediction(self, record: PredictionRecord) -> dict:
        ...

    async def insert_anomaly(self, anomaly: AnomalyEvent) -> dict:
        ...

    async def update_machine_status(self, machine_id: str, status: dict) -> None:
        ...

    async def update_machine_metrics(self, machine_id: str, metrics: dict) -> None:
        ...

    async def close(self) -> None:
        ...


def anomaly_category(anomaly_type: str) -> str:
    return ANOMALY_CATEGORIES.get(anomaly_type, "other")


def new_row_id() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def raw_reading_row(reading: SensorReading) -> dict[str, Any]:
    row = reading.to_dict()
    row["id"] = new_row_id()
    row["created_at"] = utc_now_iso()
    return row


def prediction_row(record: PredictionRecord) -> dict[str, Any]:
    row = record.to_dict()
    row["id"] = new_row_id()
    row["created_at"] = utc_now_iso()
    return row


def anomaly_row(anomaly: AnomalyEvent) -> dict[str, Any]:
    return {
        "id": new_row_id(),
        "machine_id": anomaly.machine_id,
        "type": anomaly_category(anomaly.type),
        "anomaly_type": anomaly.type,
        "severity": anomaly.severity.value,
        "description": anomaly.message,
        "detected_at": anomaly.detected_at,
        "prediction_confidence": anomaly.details.confidence,
        "ml_details": anomaly.details.to_dict(),
        "created_at": utc_now_iso(),
    }


def status_fields(status: dict, last_updated: Optional[str] = None) -> dict[str, Any]:
    return {
        "status": status.get("status"),
        "overall_severity": status.get("overall_severity"),
        "last_prediction": status.get("last_prediction"),
        "last_updated": status.get("last_updated") or last_updated or utc_now_iso(),
    }
