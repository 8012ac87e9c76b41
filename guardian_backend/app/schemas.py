# -*- coding: utf-8 -*-
"""
@file schemas.py
@brief Pydantic schemas for the JSON responses.

Every endpoint answers with a {"status": ..., ...} envelope. Fields are
optional so the same schema covers the success and the error shape; routes
are declared with response_model_exclude_unset=True so only the fields a
handler actually sets are sent.
"""
from pydantic import BaseModel, field_validator
from typing import Any, Optional
from datetime import datetime

from .models import utcnow
from .relay import RelayMode, RelayState, SensorState

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def now_str() -> str:
    """Server time (UTC) as "YYYY-MM-DD HH:MM:SS"."""
    return utcnow().strftime(TIMESTAMP_FORMAT)


class ReadingOut(BaseModel):
    """
    One sensor reading as sent to the app.

    Built straight from a models.SensorReading row.
    """
    sensor_id: int
    temperature: float
    humidity: float
    motion_detected: SensorState
    vibration_detected: SensorState
    relay_state: RelayState
    timestamp: Optional[str] = None

    class Config:
        from_attributes = True

    @field_validator("temperature", "humidity", mode="before")
    @classmethod
    def _null_to_zero(cls, value):
        return 0.0 if value is None else value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _format_timestamp(cls, value):
        if isinstance(value, datetime):
            return value.strftime(TIMESTAMP_FORMAT)
        return value


class IngestResponse(BaseModel):
    """
    Answer to the device after an ingestion.

    Attributes:
        status (str): "success" or "error"
        relay_command (RelayState): command the device must apply
        control_reason (str): why (auto_sensor_detected, auto_sensor_clear,
            manual_control, or "error")
        mode (RelayMode): control mode in force
    """
    status: str
    message: Optional[str] = None
    relay_command: Optional[RelayState] = None
    control_reason: Optional[str] = None
    mode: Optional[RelayMode] = None
    timestamp: Optional[str] = None


class RelayControlResponse(BaseModel):
    status: str
    message: Optional[str] = None
    relay_state: Optional[RelayState] = None
    control_reason: Optional[str] = None
    timestamp: Optional[str] = None


class LatestReadingResponse(BaseModel):
    status: str
    message: Optional[str] = None
    data: Optional[ReadingOut] = None
    system_status: Optional[str] = None
    timestamp: Optional[str] = None


class ReadingsResponse(BaseModel):
    """
    A page of readings for charts.

    Attributes:
        data (list[ReadingOut]): readings, oldest first
        latest_reading (Optional[ReadingOut]): newest reading overall
        count_in_response (int): len(data)
        total_records_in_table (int): number of stored readings
        limit_applied (int): limit after clamping to [1, 500]
    """
    status: str
    message: Optional[str] = None
    data: Optional[list[ReadingOut]] = None
    latest_reading: Optional[ReadingOut] = None
    count_in_response: Optional[int] = None
    total_records_in_table: Optional[int] = None
    limit_applied: Optional[int] = None


class ThresholdsResponse(BaseModel):
    """Threshold poll used by the device and the app."""
    status: str
    message: Optional[str] = None
    temp_threshold: Optional[float] = None
    temp_low_threshold: Optional[float] = None
    hum_threshold: Optional[float] = None
    auto_relay: Optional[bool] = None
    relay_command: Optional[RelayState] = None
    relay_reason: Optional[str] = None


class ThresholdValues(BaseModel):
    temp_high_threshold: float
    temp_low_threshold: float
    humidity_threshold: float
    auto_relay: str  # "yes" / "no"


class ThresholdUpdateResponse(BaseModel):
    status: str
    message: Optional[str] = None
    affected_rows: Optional[int] = None
    updated_values: Optional[ThresholdValues] = None
    debug_info: Optional[dict[str, Any]] = None
    received_data: Optional[Any] = None
    timestamp: Optional[str] = None


class UserData(BaseModel):
    user_id: int
    user_email: str

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    status: str
    message: str
    data: Optional[UserData] = None


class ErrorResponse(BaseModel):
    """Envelope used by the app-wide exception handlers."""
    status: str = "error"
    message: str
    timestamp: str
