"""Estadísticas operativas, registro de dispositivos y métricas."""

from .aggregator import StatsAggregator
from .devices import DeviceRegistry
from .stats import RuntimeStats

__all__ = ["DeviceRegistry", "RuntimeStats", "StatsAggregator"]
