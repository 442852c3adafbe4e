"""Estado de detección explícito (baseline + umbrales) inyectable en el pipeline."""

from __future__ import annotations

import logging
from typing import Optional

from .baseline import ADAPTATION_INTERVAL, BaselineTracker
from .classifier import classify, vibration_magnitude
from .models import AnomalyEvent, SensorReading
from .thresholds import ThresholdStore

logger = logging.getLogger(__name__)


class DetectionState:
    """Agrupa BaselineTracker y ThresholdStore de una instancia del servicio.

    Cada test o proceso crea el suyo; no hay singletons de módulo.
    """

    def __init__(
        self,
        defaults: Optional[dict[str, dict[str, float]]] = None,
        adaptation_interval: int = ADAPTATION_INTERVAL,
    ):
        self.thresholds = ThresholdStore(defaults)
        self.baselines = BaselineTracker(self.thresholds, adaptation_interval)

    def analyze(self, reading: SensorReading) -> Optional[AnomalyEvent]:
        """Actualiza la baseline y clasifica la lectura.

        No suspende: todo es aritmética en memoria.
        """
        thresholds = self.thresholds.get_or_init(reading.machine_id)
        vibration = vibration_magnitude(reading)
        baseline = self.baselines.update(reading.machine_id, reading.temperature_c, vibration)

        anomaly = classify(reading, thresholds, baseline)
        if anomaly is not None:
            logger.info(
                "[DETECTION] machine=%s type=%s severity=%s thresholds=%s",
                reading.machine_id, anomaly.type, anomaly.severity.value, thresholds.to_dict(),
            )
        return anomaly
