"""Validación y saneamiento de lecturas de motor.

Reglas:
- machine_id obligatorio (string no vacío)
- temperature_c, si viene y no es null, debe ser un número finito
- timestamp, si viene, debe ser una fecha ISO-8601 válida
- Saneamiento: redondeo a precisión fija (4 decimales temperatura/sonido,
  6 decimales aceleración). Nunca lanza excepción: lo no numérico queda en None.

Los errores se acumulan (no se corta en el primero) y el llamador los
une en un único ValidationError.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Optional

from ..detection.models import SensorReading, Severity

TEMPERATURE_PRECISION = 4
SOUND_PRECISION = 4
ACCEL_PRECISION = 6
CONFIDENCE_PRECISION = 4

VALID_SEVERITIES = tuple(s.value for s in Severity)


class ValidationError(Exception):
    """Payload de entrada mal formado. Nunca se reintenta."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


def _is_number(value: Any) -> bool:
    # bool es subclase de int, pero no es una lectura numérica
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_finite_number(value: Any) -> bool:
    if not _is_number(value):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # int que no cabe en un float
        return False


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parsea un timestamp ISO-8601 (acepta sufijo Z). None si no es válido."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def sanitize_numeric(value: Any, precision: int = 4) -> Optional[float]:
    """Redondea half-away-from-zero sobre ``value * 10**precision``.

    None / no numérico / NaN / infinito / int fuera del rango float -> None.
    Valores tan grandes que el escalado desborda no tienen decimales que
    redondear y se devuelven tal cual.
    """
    if not _is_finite_number(value):
        return None
    value = float(value)
    factor = 10 ** precision
    scaled = abs(value) * factor + 0.5
    if not math.isfinite(scaled):
        return value
    scaled = math.floor(scaled)
    return math.copysign(scaled, value) / factor if scaled else 0.0


def validate_reading(data: dict[str, Any]) -> list[str]:
    """Valida una lectura cruda. Devuelve la lista de errores (vacía si es válida)."""
    errors: list[str] = []

    machine_id = data.get("machine_id")
    if not isinstance(machine_id, str) or not machine_id.strip():
        errors.append("machine_id required")

    temperature = data.get("temperature_c")
    if temperature is not None and not _is_finite_number(temperature):
        errors.append("temperature_c must be a valid number")

    timestamp = data.get("timestamp", data.get("timestamp_rpi"))
    if timestamp is not None and parse_timestamp(timestamp) is None:
        errors.append("timestamp must be a valid date")

    return errors


def sanitize_reading(data: dict[str, Any]) -> SensorReading:
    """Construye la SensorReading saneada. Función pura, no valida."""
    timestamp = data.get("timestamp", data.get("timestamp_rpi"))
    if isinstance(timestamp, datetime):
        timestamp = timestamp.isoformat()
    return SensorReading(
        machine_id=str(data.get("machine_id") or "").strip(),
        timestamp=timestamp or utc_now_iso(),
        temperature_c=sanitize_numeric(data.get("temperature_c"), TEMPERATURE_PRECISION),
        sound_amplitude=sanitize_numeric(data.get("sound_amplitude"), SOUND_PRECISION),
        accel_x_g=sanitize_numeric(data.get("accel_x_g"), ACCEL_PRECISION),
        accel_y_g=sanitize_numeric(data.get("accel_y_g"), ACCEL_PRECISION),
        accel_z_g=sanitize_numeric(data.get("accel_z_g"), ACCEL_PRECISION),
    )


def validate_and_sanitize(data: dict[str, Any]) -> SensorReading:
    """validate + sanitize; lanza ValidationError con todos los errores juntos."""
    errors = validate_reading(data)
    if errors:
        raise ValidationError(errors)
    return sanitize_reading(data)


def validate_prediction(data: dict[str, Any]) -> list[str]:
    """Valida un registro de predicción (interno o externo)."""
    errors: list[str] = []

    if not data.get("machine_id"):
        errors.append("machine_id required")

    prediction_type = data.get("prediction_type")
    if not isinstance(prediction_type, str) or not prediction_type.strip():
        errors.append("prediction_type required")

    confidence = data.get("confidence")
    if confidence is not None and (not _is_number(confidence) or not 0 <= confidence <= 1):
        errors.append("confidence must be between 0 and 1")

    severity = data.get("severity")
    if severity and severity not in VALID_SEVERITIES:
        errors.append("severity must be one of: " + ", ".join(VALID_SEVERITIES))

    return errors
