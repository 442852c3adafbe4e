"""API de operador para umbrales por máquina y globales."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..schemas import GlobalThresholdOverrideIn, ThresholdOverrideIn
from ..services import TelemetryServices
from .deps import get_services

router = APIRouter(tags=["thresholds"])


@router.get("/api/motors/{machine_id}/thresholds")
def get_machine_thresholds(machine_id: str, services: TelemetryServices = Depends(get_services)):
    thresholds = services.detection.thresholds.get(machine_id)
    if thresholds is None:
        raise HTTPException(status_code=404, detail="No thresholds found for this machine")

    baseline = services.detection.baselines.get(machine_id)
    return {
        "machine_id": machine_id,
        "thresholds": thresholds.to_dict(),
        "baseline": baseline.to_dict() if baseline else None,
    }


@router.post("/api/motors/{machine_id}/thresholds")
def override_machine_thresholds(
    machine_id: str,
    payload: ThresholdOverrideIn,
    services: TelemetryServices = Depends(get_services),
):
    thresholds = services.detection.thresholds.override(machine_id, payload.families())
    return {
        "success": True,
        "machine_id": machine_id,
        "thresholds": thresholds.to_dict(),
    }


@router.get("/api/settings/thresholds/global")
def get_global_thresholds(services: TelemetryServices = Depends(get_services)):
    store = services.detection.thresholds
    return {
        "thresholds": store.defaults.to_dict(),
        "machines": store.machines(),
    }


@router.post("/api/settings/thresholds/global")
def override_global_thresholds(
    payload: GlobalThresholdOverrideIn,
    services: TelemetryServices = Depends(get_services),
):
    store = services.detection.thresholds
    defaults = store.override_global(payload.families())
    return {
        "success": True,
        "thresholds": defaults.to_dict(),
        "applied_to": len(store.machines()),
    }
