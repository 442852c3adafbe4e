"""Data store en memoria para desarrollo local y tests.

- Sin asyncio real (no suspende más allá de la corrutina)
- Permite inyectar fallos por operación para probar retry/dataError
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List, Optional

from ..detection.models import AnomalyEvent, PredictionRecord, SensorReading
from .store import anomaly_row, prediction_row, raw_reading_row, status_fields, utc_now_iso


class InMemoryDataStore:
    """Implementación sencilla de DataStore guardando filas en listas."""

    def __init__(self) -> None:
        self.raw_readings: List[dict] = []
        self.predictions: List[dict] = []
        self.anomalies: List[dict] = []
        self.motors: Dict[str, dict] = {}
        self.calls: Dict[str, int] = {}
        self._failures: Dict[str, Deque[Exception]] = {}

    def fail_next(self, operation: str, *errors: Exception) -> None:
        """Encola excepciones que lanzarán las próximas llamadas a ``operation``."""
        self._failures.setdefault(operation, deque()).extend(errors)

    def _enter(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1
        pending: Optional[Deque[Exception]] = self._failures.get(operation)
        if pending:
            raise pending.popleft()

    async def ensure_schema(self) -> None:
        self._enter("ensure_schema")

    async def ping(self) -> None:
        self._enter("ping")

    async def insert_raw_reading(self, reading: SensorReading) -> dict:
        self._enter("insert_raw_reading")
        row = raw_reading_row(reading)
        self.raw_readings.append(row)
        return row

    async def insert_prediction(self, record: PredictionRecord) -> dict:
        self._enter("insert_prediction")
        row = prediction_row(record)
        self.predictions.append(row)
        return row

    async def insert_anomaly(self, anomaly: AnomalyEvent) -> dict:
        self._enter("insert_anomaly")
        row = anomaly_row(anomaly)
        self.anomalies.append(row)
        return row

    async def update_machine_status(self, machine_id: str, status: dict) -> None:
        self._enter("update_machine_status")
        motor = self.motors.setdefault(machine_id, {"id": machine_id})
        motor.update(status_fields(status))

    async def update_machine_metrics(self, machine_id: str, metrics: dict) -> None:
        self._enter("update_machine_metrics")
        motor = self.motors.setdefault(machine_id, {"id": machine_id, "status": "running"})
        motor["metrics"] = dict(metrics)
        motor["last_updated"] = metrics.get("last_updated") or utc_now_iso()

    async def close(self) -> None:
        return None
