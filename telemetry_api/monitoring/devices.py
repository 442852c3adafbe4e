"""Registro de dispositivos edge conectados."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from .metrics import CONNECTED_DEVICES

logger = logging.getLogger(__name__)

ONLINE_STATUSES = ("connected", "online")
OFFLINE_STATUSES = ("disconnected", "offline")

ChangeListener = Callable[[], Awaitable[None]]


class DeviceRegistry:
    """Conjunto de device ids online.

    El tamaño del set es la única fuente de verdad para el número de
    dispositivos conectados. Cada mutación notifica al listener (el
    StatsAggregator difunde las stats en el acto).
    """

    def __init__(self):
        self._devices: set[str] = set()
        self._listener: Optional[ChangeListener] = None

    def set_listener(self, listener: ChangeListener) -> None:
        self._listener = listener

    async def mark_online(self, device_id: str) -> None:
        self._devices.add(device_id)
        logger.info("[DEVICES] %s online. Total: %d", device_id, len(self._devices))
        await self._changed()

    async def mark_offline(self, device_id: str) -> None:
        self._devices.discard(device_id)
        logger.info("[DEVICES] %s offline. Total: %d", device_id, len(self._devices))
        await self._changed()

    async def apply_status(self, device_id: str, status: Optional[str]) -> bool:
        """Aplica un estado textual. False si el estado no se reconoce."""
        normalized = (status or "").strip().lower()
        if normalized in ONLINE_STATUSES:
            await self.mark_online(device_id)
            return True
        if normalized in OFFLINE_STATUSES:
            await self.mark_offline(device_id)
            return True
        logger.warning("[DEVICES] Unknown status=%r device=%s", status, device_id)
        return False

    def count(self) -> int:
        return len(self._devices)

    def is_online(self, device_id: str) -> bool:
        return device_id in self._devices

    def devices(self) -> list[str]:
        return sorted(self._devices)

    async def _changed(self) -> None:
        CONNECTED_DEVICES.set(len(self._devices))
        if self._listener is not None:
            await self._listener()
