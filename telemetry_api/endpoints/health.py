"""Health, stats y métricas Prometheus."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..persistence.errors import StoreError
from ..services import TelemetryServices
from .deps import get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

SERVICE_VERSION = "2.0.0"
_STARTED_AT = time.monotonic()


@router.get("/health")
async def health(services: TelemetryServices = Depends(get_services)):
    """Liveness + estado de BD y MQTT. No expone detalles de error."""
    database = "connected"
    try:
        await services.store.ping()
    except StoreError as e:
        logger.error("[HEALTH] Data store check failed: %s", e)
        database = "disconnected"

    snapshot = services.aggregator.snapshot()
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": SERVICE_VERSION,
        "mode": "raspberry_pi",
        "raspberry_pi": {
            "stats": snapshot,
            "connected_devices": snapshot["connected_devices"],
        },
        "services": {
            "database": database,
            "mqtt": services.status()["mqtt_status"],
        },
    }


@router.get("/api/stats")
def stats(services: TelemetryServices = Depends(get_services)):
    return {
        "raspberry_pi": services.aggregator.snapshot(),
        "mqtt_status": bool(services.mqtt and services.mqtt.is_connected),
        "uptime": round(time.monotonic() - _STARTED_AT, 1),
        "persistence": services.coordinator.stats,
        "events": services.fanout.emitted,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
