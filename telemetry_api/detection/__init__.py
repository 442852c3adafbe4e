"""Detección de anomalías por umbrales adaptativos."""

from .baseline import ADAPTATION_INTERVAL, BaselineTracker
from .classifier import classify, vibration_magnitude
from .models import (
    AnomalyEvent,
    AnomalyType,
    Baseline,
    PredictionRecord,
    SensorReading,
    SensorThresholds,
    Severity,
    ThresholdSet,
)
from .state import DetectionState
from .thresholds import ThresholdStore

__all__ = [
    "ADAPTATION_INTERVAL",
    "AnomalyEvent",
    "AnomalyType",
    "Baseline",
    "BaselineTracker",
    "DetectionState",
    "PredictionRecord",
    "SensorReading",
    "SensorThresholds",
    "Severity",
    "ThresholdSet",
    "ThresholdStore",
    "classify",
    "vibration_magnitude",
]
