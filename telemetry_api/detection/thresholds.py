"""Gestión de umbrales por máquina.

- Umbrales por defecto al primer acceso (configurables globalmente)
- Adaptación automática desde la baseline (cada ADAPTATION_INTERVAL muestras)
- Override manual del operador (last-write-wins por familia de sensor)

El store NO valida warning < critical; eso lo hace la API si quiere.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from .models import (
    DEFAULT_THRESHOLDS,
    THRESHOLD_FAMILIES,
    Baseline,
    SensorThresholds,
    ThresholdSet,
)

logger = logging.getLogger(__name__)

TEMPERATURE_WARNING_OFFSET = 5.0
TEMPERATURE_CRITICAL_OFFSET = 10.0
VIBRATION_WARNING_FACTOR = 2.0
VIBRATION_CRITICAL_FACTOR = 3.0

ThresholdOverride = Mapping[str, Mapping[str, float]]


class ThresholdStore:
    """Umbrales en memoria por machine_id."""

    def __init__(self, defaults: Optional[dict[str, dict[str, float]]] = None):
        self._defaults = ThresholdSet.from_dict(defaults or DEFAULT_THRESHOLDS)
        self._thresholds: dict[str, ThresholdSet] = {}

    @property
    def defaults(self) -> ThresholdSet:
        return self._defaults.copy()

    def get(self, machine_id: str) -> Optional[ThresholdSet]:
        return self._thresholds.get(machine_id)

    def get_or_init(self, machine_id: str) -> ThresholdSet:
        thresholds = self._thresholds.get(machine_id)
        if thresholds is None:
            thresholds = self._defaults.copy()
            self._thresholds[machine_id] = thresholds
            logger.info("[THRESHOLDS] Initialized machine=%s %s", machine_id, thresholds.to_dict())
        return thresholds

    def adapt(self, machine_id: str, baseline: Baseline) -> ThresholdSet:
        """Recalcula temperatura y vibración a partir de la baseline.

        Cada familia solo se toca si su media es > 0. El sonido nunca se adapta.
        """
        thresholds = self.get_or_init(machine_id)

        if baseline.temperature_avg > 0:
            thresholds.temperature = SensorThresholds(
                warning=baseline.temperature_avg + TEMPERATURE_WARNING_OFFSET,
                critical=baseline.temperature_avg + TEMPERATURE_CRITICAL_OFFSET,
            )

        if baseline.vibration_avg > 0:
            thresholds.vibration = SensorThresholds(
                warning=baseline.vibration_avg * VIBRATION_WARNING_FACTOR,
                critical=baseline.vibration_avg * VIBRATION_CRITICAL_FACTOR,
            )

        logger.info(
            "[THRESHOLDS] Adapted machine=%s samples=%d %s",
            machine_id, baseline.sample_count, thresholds.to_dict(),
        )
        return thresholds

    def override(self, machine_id: str, partial: ThresholdOverride) -> ThresholdSet:
        """Reemplaza el objeto {warning, critical} de cada familia presente."""
        thresholds = self.get_or_init(machine_id)
        _merge_families(thresholds, partial)
        logger.info("[THRESHOLDS] Manual override machine=%s %s", machine_id, thresholds.to_dict())
        return thresholds

    def override_global(self, partial: ThresholdOverride) -> ThresholdSet:
        """Override global: cambia los defaults y se aplica a todas las máquinas conocidas."""
        _merge_families(self._defaults, partial)
        for thresholds in self._thresholds.values():
            _merge_families(thresholds, partial)
        logger.info(
            "[THRESHOLDS] Global override machines=%d defaults=%s",
            len(self._thresholds), self._defaults.to_dict(),
        )
        return self.defaults

    def machines(self) -> list[str]:
        return list(self._thresholds)


def _merge_families(thresholds: ThresholdSet, partial: ThresholdOverride) -> None:
    for family, values in partial.items():
        if family not in THRESHOLD_FAMILIES:
            raise KeyError(f"Unknown threshold family: {family}")
        setattr(
            thresholds,
            family,
            SensorThresholds(warning=float(values["warning"]), critical=float(values["critical"])),
        )
