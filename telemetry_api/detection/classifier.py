"""Clasificador de anomalías por umbrales.

Árbol de decisión con prioridad (la primera regla que se cumple gana):

    1. temperatura > temperature.critical  -> Overheating / critical
    2. temperatura > temperature.warning   -> TemperatureAlert / warning
    3. vibración   > vibration.critical    -> Vibration / critical
    4. vibración   > vibration.warning     -> VibrationAlert / warning
    5. nada                                -> None

Los umbrales de sonido se guardan pero no se evalúan aquí.
Función pura: no modifica baseline, umbrales ni estadísticas.
"""

from __future__ import annotations

import math
from typing import Optional

from .models import (
    AnomalyDetails,
    AnomalyEvent,
    AnomalyType,
    Baseline,
    SensorReading,
    Severity,
    ThresholdSet,
)

OVERHEATING_CONFIDENCE = 0.95
TEMPERATURE_ALERT_CONFIDENCE = 0.78
VIBRATION_CRITICAL_CONFIDENCE = 0.88
VIBRATION_ALERT_CONFIDENCE = 0.72

# Referencia para la desviación cuando aún no hay media de temperatura
FALLBACK_REFERENCE_TEMPERATURE = 20.0


def vibration_magnitude(reading: SensorReading) -> float:
    """Norma euclídea de los tres ejes; ejes ausentes cuentan como 0.

    hypot escala internamente: ejes enormes no desbordan al elevar al cuadrado.
    """
    return math.hypot(
        reading.accel_x_g or 0.0,
        reading.accel_y_g or 0.0,
        reading.accel_z_g or 0.0,
    )


def baseline_deviation_percent(temperature: float, baseline: Optional[Baseline]) -> Optional[float]:
    """Desviación porcentual sobre la media; None si no es representable."""
    reference = baseline.temperature_avg if baseline and baseline.temperature_avg > 0 else FALLBACK_REFERENCE_TEMPERATURE
    deviation = (temperature - reference) / reference * 100
    if not math.isfinite(deviation):
        return None
    return round(deviation, 1)


def classify(
    reading: SensorReading,
    thresholds: ThresholdSet,
    baseline: Optional[Baseline] = None,
) -> Optional[AnomalyEvent]:
    temperature = reading.temperature_c
    vibration = vibration_magnitude(reading)
    raw_sample = reading.to_dict()

    if temperature is not None and temperature > thresholds.temperature.critical:
        deviation = baseline_deviation_percent(temperature, baseline)
        threshold = thresholds.temperature.critical
        deviation_text = f", baseline deviation: {deviation:+.1f}%" if deviation is not None else ""
        return _event(
            reading,
            AnomalyType.OVERHEATING,
            Severity.CRITICAL,
            (
                f"Critical overheating detected. Temperature: {temperature:.1f}°C "
                f"(threshold: {threshold}°C{deviation_text})."
            ),
            AnomalyDetails(
                threshold_used=threshold,
                confidence=OVERHEATING_CONFIDENCE,
                raw_sample=raw_sample,
                baseline_snapshot=_temperature_snapshot(baseline),
                deviation_percent=deviation,
            ),
        )

    if temperature is not None and temperature > thresholds.temperature.warning:
        return _event(
            reading,
            AnomalyType.TEMPERATURE_ALERT,
            Severity.WARNING,
            f"High temperature detected: {temperature:.1f}°C.",
            AnomalyDetails(
                threshold_used=thresholds.temperature.warning,
                confidence=TEMPERATURE_ALERT_CONFIDENCE,
                raw_sample=raw_sample,
            ),
        )

    if vibration > thresholds.vibration.critical:
        threshold = thresholds.vibration.critical
        return _event(
            reading,
            AnomalyType.VIBRATION_CRITICAL,
            Severity.CRITICAL,
            f"Critical vibration detected. Magnitude: {vibration:.2f}g (threshold: {threshold}g).",
            AnomalyDetails(
                threshold_used=threshold,
                confidence=VIBRATION_CRITICAL_CONFIDENCE,
                raw_sample=raw_sample,
                baseline_snapshot=_vibration_snapshot(baseline),
            ),
        )

    if vibration > thresholds.vibration.warning:
        return _event(
            reading,
            AnomalyType.VIBRATION_ALERT,
            Severity.WARNING,
            f"Abnormal vibration detected. Magnitude: {vibration:.2f}g.",
            AnomalyDetails(
                threshold_used=thresholds.vibration.warning,
                confidence=VIBRATION_ALERT_CONFIDENCE,
                raw_sample=raw_sample,
            ),
        )

    return None


def _event(
    reading: SensorReading,
    anomaly_type: AnomalyType,
    severity: Severity,
    message: str,
    details: AnomalyDetails,
) -> AnomalyEvent:
    return AnomalyEvent(
        machine_id=reading.machine_id,
        type=anomaly_type.value,
        severity=severity,
        message=message,
        detected_at=reading.timestamp,
        details=details,
    )


def _temperature_snapshot(baseline: Optional[Baseline]) -> Optional[dict]:
    if baseline is None or baseline.sample_count == 0:
        return None
    return {"temperature_avg": round(baseline.temperature_avg, 1), "sample_count": baseline.sample_count}


def _vibration_snapshot(baseline: Optional[Baseline]) -> Optional[dict]:
    if baseline is None or baseline.vibration_samples == 0:
        return None
    return {"vibration_avg": round(baseline.vibration_avg, 2), "sample_count": baseline.sample_count}
