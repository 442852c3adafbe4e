from __future__ import annotations

from fastapi import Request

from ..services import TelemetryServices


def get_services(request: Request) -> TelemetryServices:
    return request.app.state.services
