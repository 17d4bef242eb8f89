"""Chat schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from sereno.core.chat_policies import ChannelType, EscalationKind


class SenderView(BaseModel):
    id: int | None = None
    name: str
    role: str


class MessageResponse(BaseModel):
    id: int
    content: str
    type: str
    created_at: datetime
    sender: SenderView


class MessageCreate(BaseModel):
    # Length limits depend on the channel and are enforced by moderation
    content: str


class MessageCreated(BaseModel):
    id: int
    created_at: datetime


class ChannelCreate(BaseModel):
    type: ChannelType = ChannelType.INDIVIDUAL
    participant_ids: list[int] = Field(min_length=1)


class ChannelResponse(BaseModel):
    id: int
    type: str
    emergency_alert_id: int | None = None
    participant_ids: list[int] = []
    created_at: datetime
    archived_at: datetime | None = None
    last_message: MessageResponse | None = None


class EscalateRequest(BaseModel):
    kind: EscalationKind


class EscalationResponse(BaseModel):
    id: int
    channel_id: int
    alert_id: int | None = None
    kind: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ParticipantAdd(BaseModel):
    user_id: int


class CompanionsAdd(BaseModel):
    companion_ids: list[int] = Field(min_length=1)


class ParticipantChange(BaseModel):
    channel_id: int
    user_id: int
    changed: bool
