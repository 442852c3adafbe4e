"""Data store SQL sobre SQLAlchemy Core.

El engine es síncrono; cada operación corre en un hilo worker
(asyncio.to_thread) para no bloquear el event loop. Los errores del
driver se traducen a RetryableStoreError / FatalStoreError.

El estado de motors se escribe con INSERT ... ON CONFLICT (PostgreSQL,
SQLite >= 3.24): una sola sentencia, sin carrera entre UPDATE e INSERT.
"""

from __future__ import annotations

import asyncio
import logging
import pathlib
from typing import Any, Callable, TypeVar

import orjson
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from ..detection.models import AnomalyEvent, PredictionRecord, SensorReading
from .errors import to_store_error
from .store import anomaly_row, prediction_row, raw_reading_row, status_fields, utc_now_iso

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIGRATIONS_DIR = pathlib.Path(__file__).parent / "migrations"


def _json(value: Any) -> str | None:
    if value is None:
        return None
    return orjson.dumps(value, default=str).decode("utf-8")


def ensure_schema(engine: Engine) -> None:
    """Crea las tablas si no existen. Idempotente."""
    sql_file = MIGRATIONS_DIR / "001_motor_monitor.sql"
    statements = [s.strip() for s in sql_file.read_text().split(";") if s.strip()]

    with engine.begin() as conn:
        for statement in statements:
            conn.execute(text(statement))
    logger.info("[STORE] Schema ready (%d statements)", len(statements))


class SqlDataStore:
    """Implementación de DataStore para Postgres/SQLite vía SQLAlchemy."""

    def __init__(self, engine: Engine):
        self._engine = engine

    async def _run(self, operation: str, fn: Callable[[Connection], T]) -> T:
        def _tx() -> T:
            with self._engine.begin() as conn:
                return fn(conn)

        try:
            return await asyncio.to_thread(_tx)
        except Exception as e:
            raise to_store_error(e, operation) from e

    async def ensure_schema(self) -> None:
        try:
            await asyncio.to_thread(ensure_schema, self._engine)
        except Exception as e:
            raise to_store_error(e, "ensure_schema") from e

    async def ping(self) -> None:
        await self._run("ping", lambda conn: conn.execute(text("SELECT 1")))

    async def insert_raw_reading(self, reading: SensorReading) -> dict:
        row = raw_reading_row(reading)

        def _insert(conn: Connection) -> dict:
            conn.execute(
                text("""
                    INSERT INTO raw_sensor_data (
                        id, machine_id, timestamp_rpi, temperature_c, sound_amplitude,
                        accel_x_g, accel_y_g, accel_z_g, created_at
                    ) VALUES (
                        :id, :machine_id, :timestamp_rpi, :temperature_c, :sound_amplitude,
                        :accel_x_g, :accel_y_g, :accel_z_g, :created_at
                    )
                """),
                row,
            )
            return row

        return await self._run("insert_raw_reading", _insert)

    async def insert_prediction(self, record: PredictionRecord) -> dict:
        row = prediction_row(record)
        params = dict(row, raw_data_sample=_json(row["raw_data_sample"]))

        def _insert(conn: Connection) -> dict:
            conn.execute(
                text("""
                    INSERT INTO predictions (
                        id, machine_id, prediction_type, confidence, severity, timestamp,
                        xgb_prediction, xgb_confidence, dl_prediction, dl_confidence,
                        raw_data_sample, created_at
                    ) VALUES (
                        :id, :machine_id, :prediction_type, :confidence, :severity, :timestamp,
                        :xgb_prediction, :xgb_confidence, :dl_prediction, :dl_confidence,
                        :raw_data_sample, :created_at
                    )
                """),
                params,
            )
            return row

        return await self._run("insert_prediction", _insert)

    async def insert_anomaly(self, anomaly: AnomalyEvent) -> dict:
        row = anomaly_row(anomaly)
        params = dict(row, ml_details=_json(row["ml_details"]))

        def _insert(conn: Connection) -> dict:
            conn.execute(
                text("""
                    INSERT INTO anomalies (
                        id, machine_id, type, anomaly_type, severity, description,
                        detected_at, prediction_confidence, ml_details, created_at
                    ) VALUES (
                        :id, :machine_id, :type, :anomaly_type, :severity, :description,
                        :detected_at, :prediction_confidence, :ml_details, :created_at
                    )
                """),
                params,
            )
            return row

        return await self._run("insert_anomaly", _insert)

    async def update_machine_status(self, machine_id: str, status: dict) -> None:
        params = dict(status_fields(status), id=machine_id)

        def _upsert(conn: Connection) -> None:
            conn.execute(
                text("""
                    INSERT INTO motors (id, status, overall_severity, last_prediction, last_updated)
                    VALUES (:id, :status, :overall_severity, :last_prediction, :last_updated)
                    ON CONFLICT (id) DO UPDATE SET
                        status = excluded.status,
                        overall_severity = excluded.overall_severity,
                        last_prediction = excluded.last_prediction,
                        last_updated = excluded.last_updated
                """),
                params,
            )

        await self._run("update_machine_status", _upsert)

    async def update_machine_metrics(self, machine_id: str, metrics: dict) -> None:
        params = {
            "id": machine_id,
            "metrics": _json(metrics),
            "last_updated": metrics.get("last_updated") or utc_now_iso(),
        }

        def _upsert(conn: Connection) -> None:
            conn.execute(
                text("""
                    INSERT INTO motors (id, status, metrics, last_updated)
                    VALUES (:id, 'running', :metrics, :last_updated)
                    ON CONFLICT (id) DO UPDATE SET
                        metrics = excluded.metrics,
                        last_updated = excluded.last_updated
                """),
                params,
            )

        await self._run("update_machine_metrics", _upsert)

    async def close(self) -> None:
        await asyncio.to_thread(self._engine.dispose)
