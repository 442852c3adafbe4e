"""Contadores operativos del proceso."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RuntimeStats:
    """Estadísticas de procesamiento. Viven lo que vive el proceso.

    ``connected_devices`` no está aquí: sale siempre del DeviceRegistry.
    """

    total_events: int = 0
    successful_inserts: int = 0
    failed_inserts: int = 0
    mqtt_messages: int = 0
    anomalies_detected: int = 0

    def __str__(self) -> str:
        return (
            f"Stats: events={self.total_events} ok={self.successful_inserts} "
            f"failed={self.failed_inserts} anomalies={self.anomalies_detected}"
        )

    def success_rate_percent(self) -> float:
        """successful_inserts / total_events en [0, 100]; 0 sin eventos."""
        if self.total_events == 0:
            return 0.0
        return min(100.0, max(0.0, self.successful_inserts / self.total_events * 100))

    def success_rate(self) -> str:
        if self.total_events == 0:
            return "0%"
        return f"{self.success_rate_percent():.2f}%"

    def to_dict(self, connected_devices: int) -> dict:
        return {
            "total_events": self.total_events,
            "successful_inserts": self.successful_inserts,
            "failed_inserts": self.failed_inserts,
            "mqtt_messages": self.mqtt_messages,
            "anomalies_detected": self.anomalies_detected,
            "connected_devices": connected_devices,
            "success_rate": self.success_rate(),
        }
