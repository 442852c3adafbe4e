"""Aplicación FastAPI del servicio de ingesta de motores.

Arranque: data store (si no responde, el proceso no arranca), fan-out
WebSocket/Redis, timer de stats y cliente MQTT. Parada acotada por
SHUTDOWN_GRACE_SECONDS; si se excede, el proceso se termina a la fuerza.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import orjson
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from common.config import Settings, get_settings

from .endpoints import health_router, raspberry_router, thresholds_router
from .services import TelemetryServices, build_services

logger = logging.getLogger(__name__)

DEVICE_CONNECT_MESSAGE = "raspberry-pi-connect"


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[TelemetryServices] = None,
) -> FastAPI:
    settings = settings or (services.settings if services else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        current = app.state.services
        if current is None:
            current = build_services(settings)
            app.state.services = current

        await current.start()
        logger.info("[STARTUP] Motor ingest service ready")
        try:
            yield
        finally:
            try:
                await asyncio.wait_for(current.stop(), timeout=settings.shutdown_grace_seconds)
            except asyncio.TimeoutError:
                logger.error(
                    "[SHUTDOWN] Not stopped after %.1fs, forcing exit",
                    settings.shutdown_grace_seconds,
                )
                os._exit(1)

    app = FastAPI(title="Motor Ingest Service", version="2.0.0", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"success": False, "errors": errors})

    app.include_router(health_router)
    app.include_router(raspberry_router)
    app.include_router(thresholds_router)

    @app.websocket("/ws")
    async def dashboard_socket(websocket: WebSocket):
        current: TelemetryServices = websocket.app.state.services
        await current.hub.connect(websocket)
        await current.aggregator.broadcast()
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = orjson.loads(raw)
                except orjson.JSONDecodeError:
                    logger.warning("[WebSocket] Ignoring non-JSON message")
                    continue
                if not isinstance(message, dict) or message.get("event") != DEVICE_CONNECT_MESSAGE:
                    continue

                data = message.get("data") or {}
                device_id = data.get("device_id") if isinstance(data, dict) else None
                if device_id:
                    await current.pipeline.register_device(str(device_id), announcement=data)
        except WebSocketDisconnect:
            pass
        finally:
            current.hub.disconnect(websocket)

    return app


app = create_app()
