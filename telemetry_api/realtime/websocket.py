"""Hub de WebSockets del dashboard."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketHub:
    """Mantiene los WebSockets conectados y les reenvía cada evento.

    Formato de mensaje: {"event": <nombre>, "data": <payload>}
    """

    def __init__(self):
        self._clients: set[WebSocket] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        logger.info("[WebSocket] Client connected. Total: %d", len(self._clients))

    def disconnect(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)
        logger.info("[WebSocket] Client disconnected. Total: %d", len(self._clients))

    async def send(self, event: str, payload: Any) -> None:
        """Suscriptor del EventFanout."""
        stale: list[WebSocket] = []
        for websocket in list(self._clients):
            try:
                await websocket.send_json({"event": event, "data": payload})
            except Exception as e:
                logger.warning("[WebSocket] Send failed, dropping client: %s", e)
                stale.append(websocket)
        for websocket in stale:
            self._clients.discard(websocket)
