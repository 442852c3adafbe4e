"""Endpoints HTTP del servicio de ingesta de motores."""

from .health import router as health_router
from .raspberry import router as raspberry_router
from .thresholds import router as thresholds_router

__all__ = [
    "health_router",
    "raspberry_router",
    "thresholds_router",
]
