"""Modelos de dominio para detección de anomalías.

Dataclasses que representan el estado adaptativo por máquina
(baseline, umbrales) y los resultados de la clasificación.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Severity(str, Enum):
    """Severidad ordinal: warning < elevated < critical.

    ``normal`` solo llega desde predicciones externas; el clasificador
    nunca emite ``normal`` ni ``elevated``.
    """

    NORMAL = "normal"
    WARNING = "warning"
    ELEVATED = "elevated"
    CRITICAL = "critical"


class AnomalyType(str, Enum):
    """Tipos emitidos por el clasificador de umbrales."""

    OVERHEATING = "Overheating"
    TEMPERATURE_ALERT = "TemperatureAlert"
    VIBRATION_CRITICAL = "Vibration"
    VIBRATION_ALERT = "VibrationAlert"


@dataclass
class Baseline:
    """Media acumulada de temperatura y vibración de una máquina."""

    sample_count: int = 0
    temperature_sum: float = 0.0
    temperature_avg: float = 0.0
    vibration_samples: int = 0
    vibration_sum: float = 0.0
    vibration_avg: float = 0.0

    def snapshot(self) -> "Baseline":
        return Baseline(
            sample_count=self.sample_count,
            temperature_sum=self.temperature_sum,
            temperature_avg=self.temperature_avg,
            vibration_samples=self.vibration_samples,
            vibration_sum=self.vibration_sum,
            vibration_avg=self.vibration_avg,
        )

    def to_dict(self) -> dict:
        return {
            "sample_count": self.sample_count,
            "temperature_avg": round(self.temperature_avg, 2),
            "vibration_avg": round(self.vibration_avg, 2),
        }


@dataclass
class SensorThresholds:
    """Par warning/critical de una familia de sensor."""

    warning: float
    critical: float

    def to_dict(self) -> dict:
        return {"warning": self.warning, "critical": self.critical}


@dataclass
class ThresholdSet:
    """Umbrales de una máquina para temperatura, vibración y sonido."""

    temperature: SensorThresholds
    vibration: SensorThresholds
    sound: SensorThresholds

    @classmethod
    def from_dict(cls, data: dict[str, dict[str, float]]) -> "ThresholdSet":
        return cls(
            temperature=SensorThresholds(**data["temperature"]),
            vibration=SensorThresholds(**data["vibration"]),
            sound=SensorThresholds(**data["sound"]),
        )

    def copy(self) -> "ThresholdSet":
        return ThresholdSet.from_dict(self.to_dict())

    def to_dict(self) -> dict:
        return {
            "temperature": self.temperature.to_dict(),
            "vibration": self.vibration.to_dict(),
            "sound": self.sound.to_dict(),
        }


THRESHOLD_FAMILIES = ("temperature", "vibration", "sound")

DEFAULT_THRESHOLDS: dict[str, dict[str, float]] = {
    "temperature": {"warning": 35.0, "critical": 40.0},
    "vibration": {"warning": 1.2, "critical": 1.8},
    "sound": {"warning": 0.8, "critical": 1.0},
}


@dataclass(frozen=True)
class SensorReading:
    """Lectura saneada de un motor. Inmutable tras la ingesta."""

    machine_id: str
    timestamp: str
    temperature_c: Optional[float] = None
    sound_amplitude: Optional[float] = None
    accel_x_g: Optional[float] = None
    accel_y_g: Optional[float] = None
    accel_z_g: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "machine_id": self.machine_id,
            "timestamp_rpi": self.timestamp,
            "temperature_c": self.temperature_c,
            "sound_amplitude": self.sound_amplitude,
            "accel_x_g": self.accel_x_g,
            "accel_y_g": self.accel_y_g,
            "accel_z_g": self.accel_z_g,
        }


@dataclass(frozen=True)
class AnomalyDetails:
    threshold_used: Optional[float]
    confidence: Optional[float]
    raw_sample: Optional[dict]
    baseline_snapshot: Optional[dict] = None
    deviation_percent: Optional[float] = None
    model_details: Optional[dict] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "threshold_used": self.threshold_used,
            "confidence": self.confidence,
            "raw_data_sample": self.raw_sample,
        }
        if self.baseline_snapshot is not None:
            data["baseline"] = self.baseline_snapshot
        if self.deviation_percent is not None:
            data["deviation_percent"] = self.deviation_percent
        if self.model_details is not None:
            data["model_details"] = self.model_details
        return data


@dataclass(frozen=True)
class AnomalyEvent:
    """Anomalía detectada. Se persiste una vez y luego se difunde."""

    machine_id: str
    type: str
    severity: Severity
    message: str
    detected_at: str
    details: AnomalyDetails

    def to_dict(self) -> dict:
        return {
            "machine_id": self.machine_id,
            "type": self.type,
            "severity": self.severity.value,
            "message": self.message,
            "detected_at": self.detected_at,
            "details": self.details.to_dict(),
        }


@dataclass(frozen=True)
class PredictionRecord:
    machine_id: str
    prediction_type: str
    severity: str
    timestamp: str
    confidence: Optional[float] = None
    xgb_prediction: Optional[str] = None
    xgb_confidence: Optional[float] = None
    dl_prediction: Optional[str] = None
    dl_confidence: Optional[float] = None
    raw_data_sample: Optional[dict] = field(default=None)

    def to_dict(self) -> dict:
        return {
            "machine_id": self.machine_id,
            "prediction_type": self.prediction_type,
            "confidence": self.confidence,
            "severity": self.severity,
            "timestamp": self.timestamp,
            "xgb_prediction": self.xgb_prediction,
            "xgb_confidence": self.xgb_confidence,
            "dl_prediction": self.dl_prediction,
            "dl_confidence": self.dl_confidence,
            "raw_data_sample": self.raw_data_sample,
        }
