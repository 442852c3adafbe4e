"""Endpoints HTTP para los Raspberry Pi (alternativa a MQTT)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse

from ..ingest.messages import PredictionAlertMessage
from ..ingest.validation import ValidationError
from ..schemas import DeviceConnectIn, IngestResponse, PredictionAlertIn
from ..services import TelemetryServices
from .deps import get_services

router = APIRouter(prefix="/api/raspberry-pi", tags=["raspberry-pi"])


@router.post("/sensor-data", response_model=IngestResponse)
async def ingest_sensor_data(
    payload: dict[str, Any] = Body(...),
    services: TelemetryServices = Depends(get_services),
):
    try:
        result = await services.pipeline.handle_raw_sensor_data(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={"success": False, "errors": e.errors})

    if not result.saved:
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Reading could not be stored"},
        )

    return IngestResponse(
        success=True,
        message="Reading received and processed",
        anomaly=result.anomaly.to_dict() if result.anomaly else None,
    )


@router.post("/prediction", response_model=IngestResponse)
async def ingest_prediction(
    payload: PredictionAlertIn,
    services: TelemetryServices = Depends(get_services),
):
    alert = PredictionAlertMessage(
        machine_id=payload.machine_id or "",
        prediction_type=payload.type,
        severity=payload.severity,
        message=payload.message,
        timestamp=payload.timestamp,
        details=payload.details,
    )
    try:
        anomaly = await services.pipeline.handle_prediction_alert(alert)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={"success": False, "errors": e.errors})

    return IngestResponse(
        success=True,
        message="Prediction received and processed",
        anomaly=anomaly.to_dict() if anomaly else None,
    )


@router.post("/connect")
async def connect_device(
    payload: DeviceConnectIn,
    services: TelemetryServices = Depends(get_services),
):
    await services.pipeline.register_device(payload.device_id, announcement=payload.model_dump())
    return {
        "success": True,
        "message": f"Device {payload.device_id} registered",
        "stats": services.aggregator.snapshot(),
    }
