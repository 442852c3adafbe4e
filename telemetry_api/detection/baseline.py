"""Baseline online por máquina (media acumulada de temperatura y vibración)."""

from __future__ import annotations

import logging
import math
from typing import Optional

from .models import Baseline
from .thresholds import ThresholdStore

logger = logging.getLogger(__name__)

ADAPTATION_INTERVAL = 1000


class BaselineTracker:
    """Mantiene la Baseline de cada máquina y dispara la adaptación de umbrales.

    La baseline se crea al primer uso y nunca se reinicia durante la vida
    del proceso. ``sample_count`` cuenta muestras de temperatura y es el
    contador que dispara la adaptación cada ADAPTATION_INTERVAL muestras.
    """

    def __init__(
        self,
        thresholds: ThresholdStore,
        adaptation_interval: int = ADAPTATION_INTERVAL,
    ):
        self._thresholds = thresholds
        self._adaptation_interval = adaptation_interval
        self._baselines: dict[str, Baseline] = {}

    def get(self, machine_id: str) -> Optional[Baseline]:
        return self._baselines.get(machine_id)

    def update(
        self,
        machine_id: str,
        temperature: Optional[float],
        vibration_magnitude: Optional[float],
    ) -> Baseline:
        baseline = self._baselines.setdefault(machine_id, Baseline())
        counted = False

        if temperature is not None and temperature > 0 and _fits(baseline.temperature_sum, temperature):
            baseline.sample_count += 1
            baseline.temperature_sum += temperature
            baseline.temperature_avg = baseline.temperature_sum / baseline.sample_count
            counted = True

        if vibration_magnitude is not None and vibration_magnitude > 0 and _fits(baseline.vibration_sum, vibration_magnitude):
            baseline.vibration_samples += 1
            baseline.vibration_sum += vibration_magnitude
            baseline.vibration_avg = baseline.vibration_sum / baseline.vibration_samples

        if counted and baseline.sample_count % self._adaptation_interval == 0:
            logger.debug(
                "[BASELINE] machine=%s reached %d samples, adapting thresholds",
                machine_id, baseline.sample_count,
            )
            self._thresholds.adapt(machine_id, baseline)

        return baseline


def _fits(total: float, value: float) -> bool:
    # Muestras que desbordarían la suma no entran en la media
    return math.isfinite(total + value)
