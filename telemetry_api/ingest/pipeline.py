"""Pipeline de ingesta de telemetría de motores.

Orden por lectura:
    (a) validar/sanear -> persistir lectura cruda (con retry)
    (b) métricas en vivo + baseline/clasificación (sin suspender)
    (c) predicción -> (d) anomalía -> (e) estado del motor
    (f) eventos de las escrituras que tuvieron éxito

(c)-(e) se reintentan por separado y sin rollback: un fallo no impide
los pasos siguientes. Cada fallo definitivo cuenta en failed_inserts y
emite un dataError con mensaje redactado.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ..detection import AnomalyEvent, DetectionState, PredictionRecord, SensorReading, Severity
from ..detection.classifier import vibration_magnitude
from ..detection.models import AnomalyDetails
from ..monitoring.devices import DeviceRegistry
from ..monitoring.metrics import ANOMALIES_DETECTED, INGEST_EVENTS
from ..monitoring.stats import RuntimeStats
from ..persistence.errors import describe_store_error
from ..persistence.retry import PersistenceCoordinator, StoreResult
from ..persistence.store import DataStore
from ..realtime.fanout import EventFanout, EventName
from .messages import DeviceStatusMessage, PredictionAlertMessage
from .validation import (
    CONFIDENCE_PRECISION,
    ValidationError,
    sanitize_numeric,
    sanitize_reading,
    utc_now_iso,
    validate_prediction,
    validate_reading,
)

logger = logging.getLogger(__name__)

NORMAL_PREDICTION = "normal"
METRICS_PRECISION = 4


@dataclass
class IngestResult:
    """Resultado de procesar una lectura cruda."""

    reading: SensorReading
    saved: bool
    anomaly: Optional[AnomalyEvent] = None


def motor_status(severity: Optional[str], timestamp: Optional[str]) -> dict:
    """Estado del motor según la severidad de la última predicción.

    critical -> maintenance; elevated/warning -> running con esa severidad;
    cualquier otra -> running / normal.
    """
    if severity == Severity.CRITICAL.value:
        status, overall = "maintenance", Severity.CRITICAL.value
    elif severity in (Severity.ELEVATED.value, Severity.WARNING.value):
        status, overall = "running", severity
    else:
        status, overall = "running", Severity.NORMAL.value
    return {
        "status": status,
        "overall_severity": overall,
        "last_prediction": timestamp,
        "last_updated": utc_now_iso(),
    }


def sanitize_metrics(metrics: dict[str, Any]) -> dict[str, Any]:
    """Números a 4 decimales, fechas a ISO, strings tal cual; el resto se descarta."""
    sanitized: dict[str, Any] = {}
    for key, value in metrics.items():
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            number = sanitize_numeric(value, METRICS_PRECISION)
            if number is not None:
                sanitized[key] = number
        elif isinstance(value, datetime):
            sanitized[key] = value.isoformat()
        elif isinstance(value, str):
            sanitized[key] = value
    sanitized["last_updated"] = utc_now_iso()
    return sanitized


def live_metrics(reading: SensorReading) -> dict:
    return {
        "vibration_current": sanitize_numeric(vibration_magnitude(reading), METRICS_PRECISION),
        "temperature_current": reading.temperature_c or 0.0,
        "sound_current": reading.sound_amplitude or 0.0,
        "last_updated": utc_now_iso(),
    }


def rule_prediction(anomaly: AnomalyEvent, reading: SensorReading) -> PredictionRecord:
    """PredictionRecord 1:1 de una anomalía del clasificador de umbrales."""
    confidence = anomaly.details.confidence
    return PredictionRecord(
        machine_id=anomaly.machine_id,
        prediction_type=anomaly.type,
        severity=anomaly.severity.value,
        timestamp=anomaly.detected_at,
        confidence=confidence,
        xgb_prediction=anomaly.type,
        xgb_confidence=confidence,
        dl_prediction=anomaly.type,
        dl_confidence=None,
        raw_data_sample=reading.to_dict(),
    )


class TelemetryPipeline:
    """Orquesta validación, persistencia, detección y eventos.

    Todas las dependencias se inyectan; no hay estado de módulo.
    """

    def __init__(
        self,
        store: DataStore,
        coordinator: PersistenceCoordinator,
        detection: DetectionState,
        stats: RuntimeStats,
        devices: DeviceRegistry,
        fanout: EventFanout,
    ):
        self._store = store
        self._coordinator = coordinator
        self._detection = detection
        self._stats = stats
        self._devices = devices
        self._fanout = fanout

    @property
    def stats(self) -> RuntimeStats:
        return self._stats

    @property
    def detection(self) -> DetectionState:
        return self._detection

    @property
    def devices(self) -> DeviceRegistry:
        return self._devices

    # =========================================================================
    # Lecturas crudas
    # =========================================================================

    async def handle_raw_sensor_data(self, data: dict[str, Any]) -> IngestResult:
        """Procesa una lectura cruda de punta a punta.

        Raises:
            ValidationError: payload inválido (ya contado y notificado con dataError).
        """
        self._stats.total_events += 1
        INGEST_EVENTS.labels(outcome="received").inc()

        errors = validate_reading(data)
        if errors:
            exc = ValidationError(errors)
            self._stats.failed_inserts += 1
            INGEST_EVENTS.labels(outcome="invalid").inc()
            logger.warning("[PIPELINE] Invalid reading machine=%s: %s", data.get("machine_id"), exc)
            await self._fanout.emit(EventName.DATA_ERROR, {
                "type": "sensor_data",
                "machine_id": data.get("machine_id"),
                "operation": "validate_reading",
                "error": str(exc),
            })
            raise exc

        reading = sanitize_reading(data)

        try:
            row = await self._coordinator.execute_with_retry(
                lambda: self._store.insert_raw_reading(reading),
                "insert_raw_reading",
            )
        except Exception as e:
            await self._report_failure("sensor_data", reading.machine_id, "insert_raw_reading", e)
            return IngestResult(reading=reading, saved=False)

        self._stats.successful_inserts += 1
        INGEST_EVENTS.labels(outcome="saved").inc()
        logger.debug(
            "[PIPELINE] Reading saved machine=%s temp=%s",
            reading.machine_id, reading.temperature_c,
        )
        await self._fanout.emit(EventName.RAW_SENSOR_DATA, row)

        await self._update_live_metrics(reading)

        anomaly = self._detection.analyze(reading)
        if anomaly is None:
            return IngestResult(reading=reading, saved=True)

        self._count_anomaly(anomaly.type)
        await self._persist_prediction_flow(
            error_type="prediction",
            record=rule_prediction(anomaly, reading),
            anomaly=anomaly,
        )
        return IngestResult(reading=reading, saved=True, anomaly=anomaly)

    async def _update_live_metrics(self, reading: SensorReading) -> None:
        metrics = live_metrics(reading)
        result = await self._coordinator.attempt(
            lambda: self._store.update_machine_metrics(reading.machine_id, metrics),
            "update_machine_metrics",
        )
        if result.ok:
            await self._fanout.emit(EventName.METRICS_UPDATE, {
                "machine_id": reading.machine_id,
                "metrics": metrics,
            })
        else:
            # Auxiliar: no cuenta como inserción fallida
            logger.warning(
                "[PIPELINE] Live metrics update failed machine=%s: %s",
                reading.machine_id, describe_store_error(result.error),
            )

    # =========================================================================
    # Predicciones externas (modelos ML en el edge)
    # =========================================================================

    async def handle_prediction_alert(self, alert: PredictionAlertMessage) -> Optional[AnomalyEvent]:
        """Persiste una predicción externa y, si no es Normal, su anomalía.

        Raises:
            ValidationError: predicción mal formada.
        """
        details = alert.details or {}
        confidence = sanitize_numeric(details.get("xgb_confidence"), CONFIDENCE_PRECISION)
        if confidence is None:
            confidence = sanitize_numeric(details.get("confidence"), CONFIDENCE_PRECISION)

        prediction_type = alert.prediction_type if isinstance(alert.prediction_type, str) else ""
        is_normal = prediction_type.strip().lower() == NORMAL_PREDICTION
        severity = alert.severity or (Severity.NORMAL.value if is_normal else Severity.WARNING.value)
        timestamp = alert.timestamp or utc_now_iso()

        errors = validate_prediction({
            "machine_id": alert.machine_id,
            "prediction_type": alert.prediction_type,
            "confidence": confidence,
            "severity": severity,
        })
        if errors:
            exc = ValidationError(errors)
            logger.warning("[PIPELINE] Invalid prediction machine=%s: %s", alert.machine_id, exc)
            await self._fanout.emit(EventName.DATA_ERROR, {
                "type": "prediction",
                "machine_id": alert.machine_id,
                "operation": "validate_prediction",
                "error": str(exc),
            })
            raise exc

        record = PredictionRecord(
            machine_id=alert.machine_id,
            prediction_type=alert.prediction_type,
            severity=severity,
            timestamp=timestamp,
            confidence=confidence,
            xgb_prediction=details.get("xgb_prediction"),
            xgb_confidence=confidence,
            dl_prediction=details.get("dl_prediction"),
            dl_confidence=sanitize_numeric(details.get("dl_confidence"), CONFIDENCE_PRECISION),
            raw_data_sample=details.get("raw_data_sample"),
        )

        anomaly: Optional[AnomalyEvent] = None
        if not is_normal:
            anomaly = AnomalyEvent(
                machine_id=alert.machine_id,
                type=alert.prediction_type,
                severity=Severity(severity),
                message=alert.message or f"{alert.prediction_type} predicted for {alert.machine_id}.",
                detected_at=timestamp,
                details=AnomalyDetails(
                    threshold_used=None,
                    confidence=confidence,
                    raw_sample=details.get("raw_data_sample"),
                    model_details=details or None,
                ),
            )
            self._count_anomaly(anomaly.type)

        logger.info(
            "[PIPELINE] Prediction received machine=%s type=%s severity=%s",
            alert.machine_id, alert.prediction_type, severity,
        )
        await self._persist_prediction_flow(error_type="prediction", record=record, anomaly=anomaly)
        return anomaly

    async def _persist_prediction_flow(
        self,
        error_type: str,
        record: PredictionRecord,
        anomaly: Optional[AnomalyEvent],
    ) -> None:
        machine_id = record.machine_id

        prediction: StoreResult = await self._coordinator.attempt(
            lambda: self._store.insert_prediction(record),
            "insert_prediction",
        )

        stored_anomaly: Optional[StoreResult] = None
        if anomaly is not None:
            stored_anomaly = await self._coordinator.attempt(
                lambda: self._store.insert_anomaly(anomaly),
                "insert_anomaly",
            )

        status = motor_status(record.severity, record.timestamp)
        status_result: StoreResult = await self._coordinator.attempt(
            lambda: self._store.update_machine_status(machine_id, status),
            "update_machine_status",
        )

        if prediction.ok:
            await self._fanout.emit(EventName.NEW_PREDICTION, prediction.value)
        else:
            await self._report_failure(error_type, machine_id, "insert_prediction", prediction.error)

        if stored_anomaly is not None:
            if stored_anomaly.ok:
                await self._fanout.emit(EventName.NEW_ANOMALY, {
                    "machine_id": machine_id,
                    "anomaly": stored_anomaly.value,
                })
            else:
                await self._report_failure("anomaly", machine_id, "insert_anomaly", stored_anomaly.error)

        if status_result.ok:
            await self._fanout.emit(EventName.MOTOR_STATUS, {"machine_id": machine_id, **status})
        else:
            await self._report_failure("motor_status", machine_id, "update_machine_status", status_result.error)

    # =========================================================================
    # Métricas y dispositivos
    # =========================================================================

    async def handle_metrics_update(self, machine_id: str, metrics: dict[str, Any]) -> Optional[dict]:
        """Sanea y persiste métricas agregadas enviadas por el edge."""
        sanitized = sanitize_metrics(metrics)
        try:
            await self._coordinator.execute_with_retry(
                lambda: self._store.update_machine_metrics(machine_id, sanitized),
                "update_machine_metrics",
            )
        except Exception as e:
            await self._report_failure("metrics", machine_id, "update_machine_metrics", e)
            return None

        await self._fanout.emit(EventName.METRICS_UPDATE, {"machine_id": machine_id, "metrics": sanitized})
        return sanitized

    async def handle_device_status(self, message: DeviceStatusMessage) -> bool:
        applied = await self._devices.apply_status(message.machine_id, message.status)
        await self._fanout.emit(EventName.DEVICE_STATUS, {
            "machine_id": message.machine_id,
            "status": message.status,
            "timestamp": message.timestamp,
            "details": message.details,
        })
        return applied

    async def register_device(self, device_id: str, announcement: Optional[dict] = None) -> None:
        """Marca el dispositivo online; con ``announcement`` emite device-connected."""
        await self._devices.mark_online(device_id)
        if announcement is not None:
            await self._fanout.emit(EventName.DEVICE_CONNECTED, {
                "device_id": device_id,
                "type": announcement.get("type"),
                "status": announcement.get("status"),
                "timestamp": announcement.get("timestamp") or utc_now_iso(),
            })

    # =========================================================================
    # Helpers
    # =========================================================================

    def _count_anomaly(self, anomaly_type: str) -> None:
        self._stats.anomalies_detected += 1
        ANOMALIES_DETECTED.labels(type=anomaly_type).inc()

    async def _report_failure(
        self,
        error_type: str,
        machine_id: Optional[str],
        operation: str,
        error: Optional[BaseException],
    ) -> None:
        self._stats.failed_inserts += 1
        INGEST_EVENTS.labels(outcome="failed").inc()
        message = describe_store_error(error) if error is not None else "Database error"
        logger.error("[PIPELINE] %s failed machine=%s: %s (%s)", operation, machine_id, message, error)
        await self._fanout.emit(EventName.DATA_ERROR, {
            "type": error_type,
            "machine_id": machine_id,
            "operation": operation,
            "error": message,
        })
