"""Chat channels, with the emergency channel bound 1:1 to an alert."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sereno.core.alert_policies import AlertStatus
from sereno.core.chat_policies import (
    ADDITIONAL_SUPPORT,
    CHANNEL_ARCHIVED,
    CHANNEL_CREATED,
    COMPANION_WELCOME,
    CONTEXT_FOOTER,
    CONTEXT_HEADER,
    EMERGENCY_CHANNEL_CREATED,
    ESCALATION_MESSAGES,
    LOCATION_LINE,
    PARTICIPANT_JOINED,
    PARTICIPANT_LEFT,
    SENDER_KIND_SYSTEM,
    SENDER_KIND_USER,
    SYSTEM,
    ChannelType,
    EscalationKind,
    MessageSource,
    MessageType,
    UserSender,
)
from sereno.core.errors import AccessDenied, AlertAlreadyResolved, MessageRejected, NotFound
from sereno.core.notifications import NotificationDispatcher
from sereno.models.chat_channel import ChannelParticipant, ChatChannel
from sereno.models.chat_message import ChatMessage
from sereno.models.emergency_alert import EmergencyAlert
from sereno.models.escalation_event import EscalationEvent
from sereno.models.user import User
from sereno.services.moderation import moderate_message
from sereno.services.notification_service import notify_escalation, notify_new_message

logger = logging.getLogger(__name__)

SYSTEM_SENDER_VIEW = {"id": None, "name": "System", "role": "SYSTEM"}


# ---------- Lookups ----------


def get_channel(db: Session, channel_id: int) -> ChatChannel:
    channel = db.get(ChatChannel, channel_id)
    if not channel:
        raise NotFound("Channel not found")
    return channel


def get_emergency_channel(db: Session, alert_id: int) -> ChatChannel | None:
    return db.execute(
        select(ChatChannel).where(ChatChannel.emergency_alert_id == alert_id)
    ).scalar_one_or_none()


def get_participant_ids(db: Session, channel_id: int) -> list[int]:
    result = db.execute(
        select(ChannelParticipant.user_id)
        .where(ChannelParticipant.channel_id == channel_id)
        .order_by(ChannelParticipant.id)
    )
    return list(result.scalars().all())


def is_participant(db: Session, channel_id: int, user_id: int) -> bool:
    row = db.execute(
        select(ChannelParticipant.id).where(
            ChannelParticipant.channel_id == channel_id,
            ChannelParticipant.user_id == user_id,
        )
    ).first()
    return row is not None


def _require_participant(db: Session, channel_id: int, user_id: int) -> None:
    if not is_participant(db, channel_id, user_id):
        raise AccessDenied("You are not a participant of this channel")


# ---------- Low-level writes (no commit) ----------


def _insert_participant(db: Session, channel_id: int, user_id: int) -> bool:
    """Add to the participant set. False if already a member."""
    try:
        with db.begin_nested():
            db.add(ChannelParticipant(channel_id=channel_id, user_id=user_id))
    except IntegrityError:
        return False
    return True


def _post(
    db: Session,
    channel_id: int,
    sender: MessageSource,
    content: str,
    message_type: MessageType,
    flagged: bool = False,
) -> ChatMessage:
    if isinstance(sender, UserSender):
        kind, sender_id = SENDER_KIND_USER, sender.user_id
    else:
        kind, sender_id = SENDER_KIND_SYSTEM, None
    message = ChatMessage(
        channel_id=channel_id,
        sender_kind=kind,
        sender_id=sender_id,
        content=content,
        type=message_type.value,
        flagged=flagged,
        created_at=datetime.now(timezone.utc),
    )
    db.add(message)
    db.flush()
    return message


# ---------- Channel creation ----------


def create_channel(
    db: Session,
    channel_type: ChannelType,
    participant_ids: list[int],
    creator_id: int,
) -> ChatChannel:
    """Create an INDIVIDUAL or GROUP channel. Emergency channels go through ensure_emergency_channel."""
    if channel_type == ChannelType.EMERGENCY:
        raise AccessDenied("Emergency channels are opened by the emergency service")
    members = list(dict.fromkeys([creator_id, *participant_ids]))
    if channel_type == ChannelType.INDIVIDUAL and len(members) != 2:
        raise MessageRejected("An individual channel needs exactly one other participant")
    found = set(db.execute(select(User.id).where(User.id.in_(members))).scalars().all())
    missing = [uid for uid in members if uid not in found]
    if missing:
        raise NotFound(f"Users not found: {missing}")

    channel = ChatChannel(type=channel_type.value)
    db.add(channel)
    db.flush()
    for uid in members:
        _insert_participant(db, channel.id, uid)
    _post(db, channel.id, SYSTEM, CHANNEL_CREATED, MessageType.SYSTEM)
    db.commit()
    db.refresh(channel)
    logger.info("Chat channel %s created with type %s", channel.id, channel.type)
    return channel


def ensure_emergency_channel(db: Session, alert: EmergencyAlert) -> tuple[ChatChannel, bool]:
    """Return the alert's channel, creating it on first need.

    Safe under concurrent callers: the unique ``emergency_alert_id`` lets only
    one insert win; losers re-read the winner's row. Creation holds the alert
    row lock, so a resolve either sees the new channel and archives it or has
    already resolved the alert, in which case no channel is opened and
    AlertAlreadyResolved is raised. Returns (channel, created).
    """
    existing = get_emergency_channel(db, alert.id)
    if existing:
        return existing, False

    alert_status = db.execute(
        select(EmergencyAlert.status)
        .where(EmergencyAlert.id == alert.id)
        .with_for_update()
    ).scalar_one_or_none()
    if alert_status is None:
        raise NotFound("Emergency alert not found")
    if alert_status == AlertStatus.RESOLVED.value:
        db.rollback()
        raise AlertAlreadyResolved("This emergency has already been resolved")
    existing = get_emergency_channel(db, alert.id)
    if existing:
        return existing, False

    channel = ChatChannel(type=ChannelType.EMERGENCY.value, emergency_alert_id=alert.id)

    try:
        with db.begin_nested():
            db.add(channel)
    except IntegrityError:
        existing = get_emergency_channel(db, alert.id)
        if existing is None:
            raise
        return existing, False

    _insert_participant(db, channel.id, alert.user_id)
    _post(db, channel.id, SYSTEM, EMERGENCY_CHANNEL_CREATED, MessageType.SYSTEM)
    db.commit()
    db.refresh(channel)
    logger.info("Emergency channel %s created for alert %s", channel.id, alert.id)
    return channel, True


# ---------- Messages ----------


def send_message(
    db: Session,
    channel_id: int,
    sender: MessageSource,
    content: str,
    message_type: MessageType = MessageType.TEXT,
    notifier: NotificationDispatcher | None = None,
) -> ChatMessage:
    """Persist a message.

    Users must be participants of an open channel and pass moderation.
    The system sender bypasses both so it can narrate joins, context,
    escalations and closure.
    """
    channel = get_channel(db, channel_id)
    flagged = False
    if isinstance(sender, UserSender):
        _require_participant(db, channel_id, sender.user_id)
        if channel.is_archived:
            raise AccessDenied("This channel has been archived")
        if message_type != MessageType.TEXT:
            raise AccessDenied("Only the system can post system messages")
        result = moderate_message(
            content,
            is_emergency_channel=channel.type == ChannelType.EMERGENCY.value,
            channel_id=channel_id,
        )
        if not result.allowed:
            raise MessageRejected(result.reason or "Message rejected")
        flagged = result.flagged

    message = _post(db, channel_id, sender, content, message_type, flagged=flagged)
    db.commit()
    db.refresh(message)
    logger.info(
        "Message %s sent to channel %s by %s",
        message.id,
        channel_id,
        sender.user_id if isinstance(sender, UserSender) else "system",
    )
    if notifier is not None:
        notify_new_message(notifier, message, get_participant_ids(db, channel_id))
    return message


def _serialize_messages(db: Session, messages: list[ChatMessage]) -> list[dict]:
    sender_ids = {m.sender_id for m in messages if m.sender_id is not None}
    senders: dict[int, User] = {}
    if sender_ids:
        senders = {u.id: u for u in db.execute(select(User).where(User.id.in_(sender_ids))).scalars().all()}

    out = []
    for m in messages:
        if m.sender_kind == SENDER_KIND_SYSTEM:
            sender = dict(SYSTEM_SENDER_VIEW)
        else:
            u = senders.get(m.sender_id)
            sender = {
                "id": m.sender_id,
                "name": u.display_name if u else "",
                "role": u.role if u else "",
            }
        out.append(
            {
                "id": m.id,
                "content": m.content,
                "type": m.type,
                "created_at": m.created_at,
                "sender": sender,
            }
        )
    return out


def list_messages(
    db: Session,
    channel_id: int,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
) -> list[dict]:
    """Page of messages, newest page first, returned in chronological order."""
    get_channel(db, channel_id)
    _require_participant(db, channel_id, user_id)
    result = db.execute(
        select(ChatMessage)
        .where(ChatMessage.channel_id == channel_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
        .offset(offset)
    )
    messages = list(result.scalars().all())
    messages.reverse()
    return _serialize_messages(db, messages)


def list_channels(db: Session, user_id: int) -> list[dict]:
    """Channels the user belongs to, newest first, with their last message."""
    channels = list(
        db.execute(
            select(ChatChannel)
            .join(ChannelParticipant, ChannelParticipant.channel_id == ChatChannel.id)
            .where(ChannelParticipant.user_id == user_id)
            .order_by(ChatChannel.created_at.desc(), ChatChannel.id.desc())
        ).scalars().all()
    )
    out = []
    for channel in channels:
        last = db.execute(
            select(ChatMessage)
            .where(ChatMessage.channel_id == channel.id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        out.append(
            {
                "id": channel.id,
                "type": channel.type,
                "emergency_alert_id": channel.emergency_alert_id,
                "participant_ids": get_participant_ids(db, channel.id),
                "created_at": channel.created_at,
                "archived_at": channel.archived_at,
                "last_message": _serialize_messages(db, [last])[0] if last else None,
            }
        )
    return out


# ---------- Emergency context ----------


@dataclass
class EmergencyContext:
    """What responders are told about the person who raised the alert."""

    alert_created_at: datetime
    first_name: str | None = None
    mental_health_conditions: list[str] = field(default_factory=list)
    emergency_contact_count: int = 0
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def build_emergency_context(db: Session, alert: EmergencyAlert) -> EmergencyContext:
    user = db.get(User, alert.user_id)
    return EmergencyContext(
        alert_created_at=alert.created_at,
        first_name=user.first_name if user else None,
        mental_health_conditions=list(user.mental_health_conditions or []) if user else [],
        emergency_contact_count=len(user.emergency_contacts or []) if user else 0,
        latitude=alert.latitude,
        longitude=alert.longitude,
        address=alert.address,
    )


def format_emergency_context(context: EmergencyContext) -> str:
    lines = [CONTEXT_HEADER, ""]
    if context.first_name:
        lines.append(f"User: {context.first_name}")
    if context.mental_health_conditions:
        lines.append(f"Conditions: {', '.join(context.mental_health_conditions)}")
    if context.emergency_contact_count:
        lines.append(f"Registered emergency contacts: {context.emergency_contact_count}")
    created = context.alert_created_at
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    lines.append(f"Alert raised at: {created.strftime('%Y-%m-%d %H:%M UTC')}")
    lines.append("")
    lines.append(CONTEXT_FOOTER)
    return "\n".join(lines)


def format_location(context: EmergencyContext) -> str:
    line = LOCATION_LINE.format(latitude=context.latitude, longitude=context.longitude)
    if context.address:
        line += f"\nAddress: {context.address}"
    return line


def share_emergency_context(db: Session, channel_id: int, context: EmergencyContext) -> list[ChatMessage]:
    """Post the context summary, plus the location as its own message when known."""
    get_channel(db, channel_id)
    posted = [_post(db, channel_id, SYSTEM, format_emergency_context(context), MessageType.SYSTEM)]
    if context.has_location:
        posted.append(_post(db, channel_id, SYSTEM, format_location(context), MessageType.SYSTEM))
    db.commit()
    logger.info("Emergency context shared in channel %s", channel_id)
    return posted


def post_companion_welcome(db: Session, channel_id: int) -> ChatMessage:
    return send_message(db, channel_id, SYSTEM, COMPANION_WELCOME, MessageType.SYSTEM)


# ---------- Participants ----------


def add_participant(db: Session, channel_id: int, user_id: int, actor: MessageSource) -> bool:
    """Add a user to the channel. Returns False if they were already in it."""
    channel = get_channel(db, channel_id)
    if isinstance(actor, UserSender):
        _require_participant(db, channel_id, actor.user_id)
    if channel.is_archived:
        raise AccessDenied("This channel has been archived")
    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    added = _insert_participant(db, channel_id, user_id)
    if added:
        _post(db, channel_id, SYSTEM, PARTICIPANT_JOINED.format(name=user.display_name), MessageType.SYSTEM)
    db.commit()
    if added:
        logger.info("User %s added to channel %s by %s", user_id, channel_id, _actor_label(actor))
    return added


def remove_participant(db: Session, channel_id: int, user_id: int, actor: MessageSource) -> bool:
    """Remove a user from the channel. Returns False if they were not in it."""
    channel = get_channel(db, channel_id)
    if isinstance(actor, UserSender):
        _require_participant(db, channel_id, actor.user_id)
    if channel.emergency_alert_id is not None:
        alert = db.get(EmergencyAlert, channel.emergency_alert_id)
        if alert and alert.user_id == user_id:
            raise AccessDenied("The person who raised the alert cannot be removed")
    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    result = db.execute(
        delete(ChannelParticipant).where(
            ChannelParticipant.channel_id == channel_id,
            ChannelParticipant.user_id == user_id,
        )
    )
    removed = result.rowcount > 0
    if removed:
        _post(db, channel_id, SYSTEM, PARTICIPANT_LEFT.format(name=user.display_name), MessageType.SYSTEM)
    db.commit()
    if removed:
        logger.info("User %s removed from channel %s by %s", user_id, channel_id, _actor_label(actor))
    return removed


def add_companions(db: Session, channel_id: int, companion_ids: list[int], actor: MessageSource) -> int:
    """Bring several companions into an emergency channel for group support."""
    channel = get_channel(db, channel_id)
    if isinstance(actor, UserSender):
        _require_participant(db, channel_id, actor.user_id)
    if channel.type != ChannelType.EMERGENCY.value:
        raise AccessDenied("Companions can only be added to emergency channels")
    companions = {
        u.id: u
        for u in db.execute(select(User).where(User.id.in_(companion_ids))).scalars().all()
    }
    not_companions = [cid for cid in companion_ids if cid not in companions or companions[cid].role != "companion"]
    if not_companions:
        raise NotFound(f"Companions not found: {not_companions}")

    added = sum(1 for cid in companion_ids if add_participant(db, channel_id, cid, actor))
    if added:
        send_message(db, channel_id, SYSTEM, ADDITIONAL_SUPPORT.format(count=added), MessageType.SYSTEM)
    logger.info("Added %d companion(s) to emergency channel %s", added, channel_id)
    return added


def _actor_label(actor: MessageSource) -> str:
    return str(actor.user_id) if isinstance(actor, UserSender) else "system"


# ---------- Escalation & archival ----------


def escalate(
    db: Session,
    channel_id: int,
    actor_id: int,
    kind: EscalationKind,
    notifier: NotificationDispatcher | None = None,
) -> EscalationEvent:
    """Participant-triggered hand-off to an external service tier."""
    channel = get_channel(db, channel_id)
    _require_participant(db, channel_id, actor_id)
    if channel.type != ChannelType.EMERGENCY.value:
        raise AccessDenied("Escalation is only available in emergency channels")
    if channel.is_archived:
        raise AccessDenied("This channel has been archived")

    kind = EscalationKind(kind)
    _post(db, channel_id, SYSTEM, ESCALATION_MESSAGES[kind], MessageType.SYSTEM)
    event = EscalationEvent(
        channel_id=channel_id,
        alert_id=channel.emergency_alert_id,
        kind=kind.value,
        requested_by=actor_id,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.warning(
        "Emergency escalation (%s) requested by user %s in channel %s (alert %s)",
        kind.value, actor_id, channel_id, channel.emergency_alert_id,
    )
    if notifier is not None:
        notify_escalation(notifier, channel_id, channel.emergency_alert_id, kind.value, get_participant_ids(db, channel_id))
    return event


def archive_channel(db: Session, channel_id: int, resolved_by: int) -> bool:
    """Close the channel to new activity and post the closing message once."""
    get_channel(db, channel_id)
    result = db.execute(
        update(ChatChannel)
        .where(ChatChannel.id == channel_id, ChatChannel.archived_at.is_(None))
        .values(archived_at=datetime.now(timezone.utc))
    )
    archived = result.rowcount == 1
    if archived:
        _post(db, channel_id, SYSTEM, CHANNEL_ARCHIVED, MessageType.SYSTEM)
    db.commit()
    if archived:
        logger.info("Emergency channel %s archived by %s", channel_id, resolved_by)
    return archived


def get_emergency_history(db: Session, alert_id: int, requester_id: int) -> list[dict]:
    """Full transcript for the alert's participants or its owner."""
    alert = db.get(EmergencyAlert, alert_id)
    if not alert:
        raise NotFound("Emergency alert not found")
    channel = get_emergency_channel(db, alert_id)
    if not channel:
        raise NotFound("No chat exists for this emergency")
    if alert.user_id != requester_id and not is_participant(db, channel.id, requester_id):
        raise AccessDenied("You do not have access to this emergency chat")
    result = db.execute(
        select(ChatMessage)
        .where(ChatMessage.channel_id == channel.id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
    )
    return _serialize_messages(db, list(result.scalars().all()))
