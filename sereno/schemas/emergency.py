"""Emergency alert schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class Location(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: str | None = Field(default=None, max_length=500)


class PanicRequest(BaseModel):
    location: Location | None = None


class AlertResponse(BaseModel):
    id: int
    user_id: int
    status: str
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    official_contacts_notified: list[str] = []
    responding_companions: list[int] = []
    channel_id: int | None = None
    created_at: datetime
    responded_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: int | None = None


class RespondResponse(BaseModel):
    alert_id: int
    status: str
    channel_id: int | None = None
    first_responder: bool


class ResolveResponse(BaseModel):
    alert_id: int
    status: str
    resolved_at: datetime | None = None


class OfficialContactResponse(BaseModel):
    id: str
    name: str
    phone_number: str
    type: str
    available_24h: bool
    description: str = ""
    website: str | None = None

    model_config = {"from_attributes": True}
