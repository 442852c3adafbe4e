"""Relay opcional de eventos a Redis pub/sub.

Permite que otros procesos (p.ej. un segundo backend o un worker de
reportes) reciban los mismos eventos que el dashboard.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import orjson
import redis

logger = logging.getLogger(__name__)


class RedisEventRelay:
    """Suscriptor del EventFanout que publica en un canal Redis."""

    def __init__(self, client: redis.Redis, channel: str = "motor:events"):
        self._client = client
        self._channel = channel
        self._published = 0
        self._failed = 0

    @classmethod
    def from_url(cls, redis_url: str, channel: str) -> Optional["RedisEventRelay"]:
        """Conecta a Redis. None si no hay conexión (el relay es opcional)."""
        try:
            client = redis.Redis.from_url(
                redis_url,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
            )
            client.ping()
            logger.info("[REDIS] Event relay connected: %s", redis_url.split("@")[-1])
            return cls(client, channel)
        except redis.RedisError as e:
            logger.warning("[REDIS] Event relay disabled, connection failed: %s", e)
            return None

    @property
    def stats(self) -> dict:
        return {"channel": self._channel, "published": self._published, "failed": self._failed}

    async def __call__(self, event: str, payload: Any) -> None:
        message = orjson.dumps({"event": event, "data": payload}, default=str)
        try:
            await asyncio.to_thread(self._client.publish, self._channel, message)
            self._published += 1
        except redis.RedisError as e:
            self._failed += 1
            logger.warning("[REDIS] Publish failed event=%s err=%s", event, e)

    def close(self) -> None:
        self._client.close()
