"""Chat API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from sereno.core.chat_policies import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, UserSender
from sereno.core.deps import get_current_user, get_notifier
from sereno.core.errors import EmergencyServiceError, to_http_exception
from sereno.core.notifications import NotificationDispatcher
from sereno.db.session import get_db
from sereno.models.user import User
from sereno.schemas.chat import (
    ChannelCreate,
    ChannelResponse,
    CompanionsAdd,
    EscalateRequest,
    EscalationResponse,
    MessageCreate,
    MessageCreated,
    MessageResponse,
    ParticipantAdd,
    ParticipantChange,
)
from sereno.services import chat_service

router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("/channels", response_model=list[ChannelResponse])
def list_channels(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Channels the current user participates in, with their last message."""
    return chat_service.list_channels(db, current_user.id)


@router.post("/channels", response_model=ChannelResponse, status_code=status.HTTP_201_CREATED)
def create_channel(
    data: ChannelCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        channel = chat_service.create_channel(db, data.type, data.participant_ids, current_user.id)
    except EmergencyServiceError as e:
        raise to_http_exception(e)
    return ChannelResponse(
        id=channel.id,
        type=channel.type,
        emergency_alert_id=channel.emergency_alert_id,
        participant_ids=chat_service.get_participant_ids(db, channel.id),
        created_at=channel.created_at,
        archived_at=channel.archived_at,
    )


@router.get("/channel/{channel_id}/messages", response_model=list[MessageResponse])
def list_messages(
    channel_id: int,
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Message page in chronological order. Participants only."""
    try:
        return chat_service.list_messages(db, channel_id, current_user.id, limit, offset)
    except EmergencyServiceError as e:
        raise to_http_exception(e)


@router.post(
    "/channel/{channel_id}/messages",
    response_model=MessageCreated,
    status_code=status.HTTP_201_CREATED,
)
def send_message(
    channel_id: int,
    data: MessageCreate,
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    try:
        message = chat_service.send_message(
            db, channel_id, UserSender(current_user.id), data.content, notifier=notifier
        )
    except EmergencyServiceError as e:
        raise to_http_exception(e)
    return MessageCreated(id=message.id, created_at=message.created_at)


@router.post("/channel/{channel_id}/escalate", response_model=EscalationResponse)
def escalate(
    channel_id: int,
    data: EscalateRequest,
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    """Hand the emergency to medical services, police or a crisis center."""
    try:
        return chat_service.escalate(db, channel_id, current_user.id, data.kind, notifier=notifier)
    except EmergencyServiceError as e:
        raise to_http_exception(e)


@router.post("/channel/{channel_id}/participants", response_model=ParticipantChange)
def add_participant(
    channel_id: int,
    data: ParticipantAdd,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        added = chat_service.add_participant(db, channel_id, data.user_id, UserSender(current_user.id))
    except EmergencyServiceError as e:
        raise to_http_exception(e)
    return ParticipantChange(channel_id=channel_id, user_id=data.user_id, changed=added)


@router.delete("/channel/{channel_id}/participants/{user_id}", response_model=ParticipantChange)
def remove_participant(
    channel_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        removed = chat_service.remove_participant(db, channel_id, user_id, UserSender(current_user.id))
    except EmergencyServiceError as e:
        raise to_http_exception(e)
    return ParticipantChange(channel_id=channel_id, user_id=user_id, changed=removed)


@router.post("/channel/{channel_id}/companions")
def add_companions(
    channel_id: int,
    data: CompanionsAdd,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Bring more companions into an emergency chat."""
    try:
        added = chat_service.add_companions(db, channel_id, data.companion_ids, UserSender(current_user.id))
    except EmergencyServiceError as e:
        raise to_http_exception(e)
    return {"channel_id": channel_id, "added": added}


@router.get("/emergency/{alert_id}/history", response_model=list[MessageResponse])
def emergency_history(
    alert_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Full transcript of an emergency chat."""
    try:
        return chat_service.get_emergency_history(db, alert_id, current_user.id)
    except EmergencyServiceError as e:
        raise to_http_exception(e)
