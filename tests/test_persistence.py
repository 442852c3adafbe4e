"""Tests de la taxonomía de errores, el retry y los data stores."""

import asyncio
import errno

import orjson
import pytest
from sqlalchemy import exc as sa_exc
from sqlalchemy import text

from common.db import build_engine
from telemetry_api.detection import AnomalyEvent, PredictionRecord, SensorReading, Severity
from telemetry_api.detection.models import AnomalyDetails
from telemetry_api.persistence import (
    FatalStoreError,
    InMemoryDataStore,
    PersistenceCoordinator,
    RetryableStoreError,
    RetryConfig,
    StoreError,
    describe_store_error,
    error_code,
    is_retryable,
)
from telemetry_api.persistence.errors import to_store_error
from telemetry_api.persistence.sql_store import SqlDataStore
from telemetry_api.persistence.store import anomaly_category

from .conftest import make_settings


class _DriverError(Exception):
    """Error de driver con SQLSTATE, como psycopg2."""

    def __init__(self, pgcode):
        super().__init__(f"driver error {pgcode}")
        self.pgcode = pgcode


def _reading(machine_id="motor-01", temperature=31.5):
    return SensorReading(
        machine_id=machine_id,
        timestamp="2024-05-01T10:00:00+00:00",
        temperature_c=temperature,
        sound_amplitude=0.2,
        accel_x_g=0.1,
        accel_y_g=0.2,
        accel_z_g=0.95,
    )


# =============================================================================
# CLASIFICACIÓN DE ERRORES
# =============================================================================

class TestErrorClassification:

    def test_builtin_connection_errors(self):
        assert error_code(ConnectionResetError()) == "ECONNRESET"
        assert error_code(ConnectionRefusedError()) == "ECONNREFUSED"
        assert error_code(TimeoutError()) == "ETIMEDOUT"
        assert error_code(OSError(errno.ECONNRESET, "reset")) == "ECONNRESET"

    def test_sqlalchemy_error_uses_driver_code(self):
        error = sa_exc.OperationalError("SELECT 1", {}, _DriverError("57P01"))

        assert error_code(error) == "57P01"
        assert is_retryable(error)

    def test_constraint_violation_is_not_retryable(self):
        error = sa_exc.IntegrityError("INSERT", {}, _DriverError("23505"))

        assert error_code(error) == "23505"
        assert not is_retryable(error)

    def test_unknown_errors_are_not_retryable(self):
        assert error_code(ValueError("boom")) is None
        assert not is_retryable(ValueError("boom"))

    def test_to_store_error(self):
        retryable = to_store_error(ConnectionRefusedError(), "insert_raw_reading")
        fatal = to_store_error(sa_exc.IntegrityError("INSERT", {}, Exception("dup")), "insert_anomaly")

        assert isinstance(retryable, RetryableStoreError)
        assert retryable.operation == "insert_raw_reading"
        assert isinstance(fatal, FatalStoreError)
        assert fatal.code == "23000"

    @pytest.mark.parametrize("code,message", [
        ("23502", "Required field missing"),
        ("22P02", "Invalid data format"),
        ("23503", "Invalid reference: machine not found"),
        ("23505", "Data already exists"),
        ("ECONNRESET", "Database temporarily unavailable"),
        (None, "Database error"),
    ])
    def test_redacted_messages(self, code, message):
        assert describe_store_error(FatalStoreError("secret driver text", code=code)) == message

    def test_redacted_message_hides_driver_text(self):
        error = FatalStoreError("password=hunter2", code="XX000")
        assert "hunter2" not in describe_store_error(error)


# =============================================================================
# RETRY
# =============================================================================

class TestPersistenceCoordinator:

    def test_delays(self):
        config = RetryConfig()
        assert [config.calculate_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("RETRY_BASE_DELAY_MS", "250")

        config = RetryConfig.from_env()
        assert config.max_attempts == 5
        assert config.base_delay == 0.25

    @pytest.mark.asyncio
    async def test_retryable_error_exhausts_attempts(self, fake_sleep):
        coordinator = PersistenceCoordinator(RetryConfig(), sleep=fake_sleep)
        calls = []

        async def operation():
            calls.append(1)
            raise RetryableStoreError("reset", code="ECONNRESET")

        with pytest.raises(RetryableStoreError):
            await coordinator.execute_with_retry(operation, "insert_raw_reading")

        assert len(calls) == 3
        assert fake_sleep.delays == [1.0, 2.0]
        assert coordinator.stats == {"total_attempts": 3, "total_retries": 2, "total_failures": 1}

    @pytest.mark.asyncio
    async def test_fatal_error_aborts_immediately(self, fake_sleep):
        coordinator = PersistenceCoordinator(RetryConfig(), sleep=fake_sleep)
        calls = []

        async def operation():
            calls.append(1)
            raise FatalStoreError("duplicate", code="23505")

        with pytest.raises(FatalStoreError):
            await coordinator.execute_with_retry(operation, "insert_prediction")

        assert len(calls) == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, fake_sleep):
        coordinator = PersistenceCoordinator(RetryConfig(), sleep=fake_sleep)
        outcomes = [ConnectionResetError(), "ok"]

        async def operation():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert await coordinator.execute_with_retry(operation, "insert_anomaly") == "ok"
        assert fake_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_attempt_returns_store_result(self, fake_sleep):
        coordinator = PersistenceCoordinator(RetryConfig(), sleep=fake_sleep)

        async def failing():
            raise FatalStoreError("nope", code="23503")

        async def working():
            return {"id": "abc"}

        failed = await coordinator.attempt(failing, "insert_anomaly")
        ok = await coordinator.attempt(working, "insert_anomaly")

        assert not failed.ok
        assert isinstance(failed.error, FatalStoreError)
        with pytest.raises(FatalStoreError):
            failed.unwrap()
        assert ok.ok
        assert ok.unwrap() == {"id": "abc"}


# =============================================================================
# DATA STORES
# =============================================================================

class TestAnomalyCategory:

    @pytest.mark.parametrize("anomaly_type,category", [
        ("Overheating", "temperature"),
        ("TemperatureAlert", "temperature"),
        ("Vibration", "vibration"),
        ("VibrationAlert", "vibration"),
        ("Imbalance", "vibration"),
        ("Bearing", "bearing"),
        ("Sound", "sound"),
        ("Cavitation", "other"),
    ])
    def test_mapping(self, anomaly_type, category):
        assert anomaly_category(anomaly_type) == category


class TestInMemoryDataStore:

    @pytest.mark.asyncio
    async def test_injected_failures_are_consumed_in_order(self):
        store = InMemoryDataStore()
        store.fail_next("insert_raw_reading", RetryableStoreError("reset", code="ECONNRESET"))

        with pytest.raises(RetryableStoreError):
            await store.insert_raw_reading(_reading())
        row = await store.insert_raw_reading(_reading())

        assert store.calls["insert_raw_reading"] == 2
        assert store.raw_readings == [row]
        assert row["timestamp_rpi"] == "2024-05-01T10:00:00+00:00"


class TestSqlDataStore:

    @pytest.fixture
    def sql_store(self, tmp_path):
        engine = build_engine(make_settings(database_url=f"sqlite:///{tmp_path / 'motors.db'}"))
        return SqlDataStore(engine), engine

    @pytest.mark.asyncio
    async def test_raw_reading_round_trip(self, sql_store):
        store, engine = sql_store
        await store.ensure_schema()
        await store.ping()

        row = await store.insert_raw_reading(_reading())

        with engine.connect() as conn:
            stored = conn.execute(
                text("SELECT machine_id, temperature_c, accel_z_g FROM raw_sensor_data WHERE id = :id"),
                {"id": row["id"]},
            ).one()
        assert stored.machine_id == "motor-01"
        assert float(stored.temperature_c) == 31.5
        assert float(stored.accel_z_g) == 0.95

    @pytest.mark.asyncio
    async def test_schema_is_idempotent(self, sql_store):
        store, _ = sql_store
        await store.ensure_schema()
        await store.ensure_schema()

    @pytest.mark.asyncio
    async def test_prediction_and_anomaly_json_columns(self, sql_store):
        store, engine = sql_store
        await store.ensure_schema()
        reading = _reading(temperature=42.5)

        await store.insert_prediction(PredictionRecord(
            machine_id="motor-01",
            prediction_type="Overheating",
            severity="critical",
            timestamp=reading.timestamp,
            confidence=0.95,
            raw_data_sample=reading.to_dict(),
        ))
        anomaly_row = await store.insert_anomaly(AnomalyEvent(
            machine_id="motor-01",
            type="Overheating",
            severity=Severity.CRITICAL,
            message="Critical overheating detected.",
            detected_at=reading.timestamp,
            details=AnomalyDetails(threshold_used=40.0, confidence=0.95, raw_sample=reading.to_dict()),
        ))

        with engine.connect() as conn:
            prediction = conn.execute(text("SELECT raw_data_sample FROM predictions")).one()
            anomaly = conn.execute(
                text("SELECT type, anomaly_type, ml_details FROM anomalies WHERE id = :id"),
                {"id": anomaly_row["id"]},
            ).one()

        assert orjson.loads(prediction.raw_data_sample)["temperature_c"] == 42.5
        assert anomaly.type == "temperature"
        assert anomaly.anomaly_type == "Overheating"
        assert orjson.loads(anomaly.ml_details)["threshold_used"] == 40.0

    @pytest.mark.asyncio
    async def test_machine_status_upsert(self, sql_store):
        store, engine = sql_store
        await store.ensure_schema()

        await store.update_machine_status("motor-01", {"status": "maintenance", "overall_severity": "critical"})
        await store.update_machine_status("motor-01", {"status": "running", "overall_severity": "warning"})
        await store.update_machine_metrics("motor-01", {"temperature_current": 31.5})

        with engine.connect() as conn:
            rows = conn.execute(text("SELECT status, overall_severity, metrics FROM motors")).all()
        assert len(rows) == 1
        assert rows[0].status == "running"
        assert rows[0].overall_severity == "warning"
        assert orjson.loads(rows[0].metrics) == {"temperature_current": 31.5}

    @pytest.mark.asyncio
    async def test_concurrent_first_writes_for_new_machine(self, sql_store):
        store, engine = sql_store
        await store.ensure_schema()

        await asyncio.gather(
            store.update_machine_metrics("motor-09", {"temperature_current": 30.0}),
            store.update_machine_status("motor-09", {"status": "running", "overall_severity": "normal"}),
            store.update_machine_metrics("motor-09", {"temperature_current": 30.5}),
            store.update_machine_status("motor-09", {"status": "running", "overall_severity": "warning"}),
        )

        with engine.connect() as conn:
            rows = conn.execute(text("SELECT id, status, metrics FROM motors")).all()
        assert len(rows) == 1
        assert rows[0].status == "running"
        assert orjson.loads(rows[0].metrics)["temperature_current"] in (30.0, 30.5)

    @pytest.mark.asyncio
    async def test_status_upsert_keeps_metrics(self, sql_store):
        store, engine = sql_store
        await store.ensure_schema()

        await store.update_machine_metrics("motor-01", {"temperature_current": 31.5})
        await store.update_machine_status("motor-01", {"status": "maintenance", "overall_severity": "critical"})

        with engine.connect() as conn:
            row = conn.execute(text("SELECT status, overall_severity, metrics FROM motors")).one()
        assert row.status == "maintenance"
        assert row.overall_severity == "critical"
        assert orjson.loads(row.metrics) == {"temperature_current": 31.5}

    @pytest.mark.asyncio
    async def test_driver_errors_are_translated(self, sql_store):
        store, _ = sql_store
        # Sin schema: la tabla no existe

        with pytest.raises(StoreError) as exc_info:
            await store.insert_raw_reading(_reading())

        assert isinstance(exc_info.value, FatalStoreError)
        assert exc_info.value.operation == "insert_raw_reading"
        assert describe_store_error(exc_info.value) == "Database error"
