from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PredictionAlertIn(BaseModel):
    # La validación de negocio (confidence, severity) la hace el pipeline
    model_config = ConfigDict(populate_by_name=True)

    machine_id: Optional[str] = Field(default=None, alias="machineId")
    type: Optional[str] = None
    severity: Optional[str] = None
    message: Optional[str] = None
    timestamp: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


class DeviceConnectIn(BaseModel):
    device_id: str = Field(..., min_length=1)
    type: Optional[str] = None
    status: Optional[str] = "connected"
    timestamp: Optional[str] = None


class SensorThresholdsIn(BaseModel):
    warning: float = Field(..., ge=0)
    critical: float = Field(..., ge=0)

    @model_validator(mode="after")
    def _warning_below_critical(self) -> "SensorThresholdsIn":
        if self.warning >= self.critical:
            raise ValueError("warning must be lower than critical")
        return self


class GlobalSensorThresholdsIn(SensorThresholdsIn):
    warning: float = Field(..., gt=0)
    critical: float = Field(..., gt=0)


class ThresholdOverrideIn(BaseModel):
    """Override parcial: solo se reemplazan las familias presentes."""

    model_config = ConfigDict(extra="forbid")

    temperature: Optional[SensorThresholdsIn] = None
    vibration: Optional[SensorThresholdsIn] = None
    sound: Optional[SensorThresholdsIn] = None

    @model_validator(mode="after")
    def _at_least_one_family(self) -> "ThresholdOverrideIn":
        if not self.families():
            raise ValueError("at least one of temperature, vibration, sound is required")
        return self

    def families(self) -> dict[str, dict[str, float]]:
        return {
            family: values.model_dump()
            for family, values in (
                ("temperature", self.temperature),
                ("vibration", self.vibration),
                ("sound", self.sound),
            )
            if values is not None
        }


class GlobalThresholdOverrideIn(ThresholdOverrideIn):
    temperature: Optional[GlobalSensorThresholdsIn] = None
    vibration: Optional[GlobalSensorThresholdsIn] = None
    sound: Optional[GlobalSensorThresholdsIn] = None


class IngestResponse(BaseModel):
    success: bool
    message: str
    anomaly: Optional[dict[str, Any]] = None
