"""Difusión periódica y bajo demanda de estadísticas operativas."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..realtime.fanout import EventFanout, EventName
from .devices import DeviceRegistry
from .stats import RuntimeStats

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 10.0

StatusProvider = Callable[[], dict]


class StatsAggregator:
    """Construye el snapshot de RuntimeStats y lo difunde.

    Disparadores: timer fijo, nuevo suscriptor, mutación del DeviceRegistry.
    El payload es idéntico en los tres casos.
    """

    def __init__(
        self,
        stats: RuntimeStats,
        devices: DeviceRegistry,
        fanout: EventFanout,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        status_provider: Optional[StatusProvider] = None,
    ):
        self._stats = stats
        self._devices = devices
        self._fanout = fanout
        self._interval = interval_seconds
        self._status_provider = status_provider
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._broadcasts = 0

    @property
    def broadcasts(self) -> int:
        return self._broadcasts

    @property
    def running(self) -> bool:
        return self._running

    def set_status_provider(self, provider: StatusProvider) -> None:
        self._status_provider = provider

    def snapshot(self) -> dict:
        return self._stats.to_dict(connected_devices=self._devices.count())

    def enhanced_snapshot(self) -> dict:
        data = self.snapshot()
        data["timestamp"] = datetime.now(timezone.utc).isoformat()
        if self._status_provider is not None:
            data.update(self._status_provider())
        return {"raspberry_pi": data}

    async def broadcast(self) -> None:
        payload = self.enhanced_snapshot()
        self._broadcasts += 1
        logger.debug("[STATS] Broadcasting %s", payload)
        await self._fanout.emit(EventName.STATS, payload)

    async def start(self) -> None:
        """Inicia el timer en background."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("[STATS] Aggregator started interval=%.1fs", self._interval)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("[STATS] Aggregator stopped. %s", self._stats)

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._interval)
                await self.broadcast()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception("[STATS] Broadcast error: %s", e)
