"""Companion profile schemas."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


def _check_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {value}")
    return value


class CompanionRegister(BaseModel):
    specializations: list[str] = Field(min_length=1)
    availability_start: str = Field(pattern=HHMM_PATTERN)
    availability_end: str = Field(pattern=HHMM_PATTERN)
    timezone: str = "UTC"
    max_response_distance_km: float | None = Field(default=None, gt=0)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)

    @field_validator("timezone")
    @classmethod
    def timezone_exists(cls, v: str) -> str:
        return _check_timezone(v)


class AvailabilityUpdate(BaseModel):
    is_available: bool | None = None
    availability_start: str | None = Field(default=None, pattern=HHMM_PATTERN)
    availability_end: str | None = Field(default=None, pattern=HHMM_PATTERN)
    timezone: str | None = None
    max_response_distance_km: float | None = Field(default=None, gt=0)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)

    @field_validator(
        "is_available", "availability_start", "availability_end", "timezone", "max_response_distance_km"
    )
    @classmethod
    def not_null(cls, v):
        # Omit a field to leave it unchanged; these columns cannot be cleared
        if v is None:
            raise ValueError("may be omitted but not null")
        return v

    @field_validator("timezone")
    @classmethod
    def timezone_exists(cls, v: str | None) -> str | None:
        return _check_timezone(v) if v is not None else v


class CompanionProfileResponse(BaseModel):
    user_id: int
    specializations: list[str]
    availability_start: str
    availability_end: str
    timezone: str
    max_response_distance_km: float
    verification_status: str
    verified_at: datetime | None = None
    is_available: bool
    is_active: bool
    latitude: float | None = None
    longitude: float | None = None
    last_seen_at: datetime | None = None

    model_config = {"from_attributes": True}


class CompanionStatsResponse(BaseModel):
    total_responses: int
    resolved: int
    success_rate: float
    average_resolution_minutes: float | None = None

    model_config = {"from_attributes": True}
