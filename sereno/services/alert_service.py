"""Emergency alert lifecycle: activate, respond, resolve."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sereno.core.alert_policies import HISTORY_LIMIT, OPEN_STATUSES, AlertStatus, check_transition
from sereno.core.chat_policies import SYSTEM
from sereno.core.config import settings
from sereno.core.emergency_contacts import get_auto_contacts
from sereno.core.errors import AccessDenied, AlertAlreadyResolved, NotFound
from sereno.core.notifications import NotificationDispatcher
from sereno.models.alert_responder import AlertResponder
from sereno.models.companion_profile import CompanionProfile
from sereno.models.emergency_alert import EmergencyAlert
from sereno.models.user import User
from sereno.services import chat_service
from sereno.services.notification_service import (
    notify_alert_created,
    notify_alert_resolved,
    notify_companion_responded,
    notify_official_contacts,
)

logger = logging.getLogger(__name__)


def _lock_alert(db: Session, alert_id: int) -> EmergencyAlert:
    alert = db.execute(
        select(EmergencyAlert)
        .where(EmergencyAlert.id == alert_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not alert:
        raise NotFound("Emergency alert not found")
    return alert


def get_responder_ids(db: Session, alert_id: int) -> list[int]:
    result = db.execute(
        select(AlertResponder.companion_id)
        .where(AlertResponder.alert_id == alert_id)
        .order_by(AlertResponder.responded_at, AlertResponder.id)
    )
    return list(result.scalars().all())


def get_open_alert(db: Session, user_id: int) -> EmergencyAlert | None:
    return db.execute(
        select(EmergencyAlert)
        .where(EmergencyAlert.user_id == user_id, EmergencyAlert.status.in_(OPEN_STATUSES))
        .order_by(EmergencyAlert.created_at.desc(), EmergencyAlert.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def _verified_profile(db: Session, user_id: int) -> CompanionProfile | None:
    """Active, verified companion profile of an active companion user."""
    user = db.get(User, user_id)
    if not user or not user.is_active or user.role != "companion":
        return None
    profile = db.execute(
        select(CompanionProfile).where(CompanionProfile.user_id == user_id)
    ).scalar_one_or_none()
    if not profile or not profile.is_active or profile.verification_status != "verified":
        return None
    return profile


# ---------- Activation ----------


def activate_alert(
    db: Session,
    notifier: NotificationDispatcher,
    user_id: int,
    latitude: float | None = None,
    longitude: float | None = None,
    address: str | None = None,
) -> tuple[EmergencyAlert, bool]:
    """Raise a panic alert for the user. Returns (alert, created).

    A user with an alert still ACTIVE or RESPONDED gets that alert back.
    Companion matching and delivery happen on the notification worker, so
    this returns as soon as the alert is stored.
    """
    user = db.execute(select(User).where(User.id == user_id).with_for_update()).scalar_one_or_none()
    if not user:
        raise NotFound("User not found")

    existing = get_open_alert(db, user_id)
    if existing:
        logger.info("User %s already has open alert %s; returning it", user_id, existing.id)
        return existing, False

    contacts = get_auto_contacts(user.country)
    alert = EmergencyAlert(
        user_id=user_id,
        latitude=latitude,
        longitude=longitude,
        address=address,
        status=AlertStatus.ACTIVE.value,
        official_contacts_notified=[c.id for c in contacts],
    )
    db.add(alert)
    db.commit()
    db.refresh(alert)
    logger.warning(
        "Emergency alert %s activated by user %s (location known: %s)",
        alert.id, user_id, alert.has_location,
    )

    if settings.open_channel_on_activation:
        chat_service.ensure_emergency_channel(db, alert)

    notify_alert_created(notifier, alert)
    notify_official_contacts(notifier, alert, contacts)
    return alert, True


# ---------- Response ----------


def _add_responder(db: Session, alert_id: int, companion_id: int) -> bool:
    try:
        with db.begin_nested():
            db.add(AlertResponder(alert_id=alert_id, companion_id=companion_id))
    except IntegrityError:
        return False
    return True


def respond_to_alert(
    db: Session,
    notifier: NotificationDispatcher,
    alert_id: int,
    companion_id: int,
) -> tuple[EmergencyAlert, bool]:
    """
    Record a companion as responding. Returns (alert, transitioned).

    Any number of companions may respond; the responder insert and the
    ACTIVE -> RESPONDED update are both conditional, so concurrent callers
    all end up in the responder set and exactly one of them sees
    ``transitioned`` True. Only that caller shares the emergency context,
    posts the welcome and tells the owner help is coming.
    """
    alert = _lock_alert(db, alert_id)
    if alert.user_id == companion_id:
        raise AccessDenied("You cannot respond to your own alert")
    if _verified_profile(db, companion_id) is None:
        raise AccessDenied("Only active, verified companions can respond to alerts")
    if alert.status == AlertStatus.RESOLVED.value:
        raise AlertAlreadyResolved("This emergency has already been resolved")

    added = _add_responder(db, alert_id, companion_id)
    result = db.execute(
        update(EmergencyAlert)
        .where(EmergencyAlert.id == alert_id, EmergencyAlert.status == AlertStatus.ACTIVE.value)
        .values(status=AlertStatus.RESPONDED.value, responded_at=datetime.now(timezone.utc))
    )
    transitioned = result.rowcount == 1
    db.commit()
    db.refresh(alert)
    logger.info(
        "Companion %s responded to alert %s (new responder: %s, transitioned: %s)",
        companion_id, alert_id, added, transitioned,
    )

    try:
        channel, _ = chat_service.ensure_emergency_channel(db, alert)
        chat_service.add_participant(db, channel.id, companion_id, SYSTEM)
    except (AccessDenied, AlertAlreadyResolved):
        # Resolved between our commit and the join; nothing left to join.
        logger.info("Alert %s resolved before companion %s could join its channel", alert_id, companion_id)
        db.refresh(alert)
        return alert, transitioned

    if transitioned:
        context = chat_service.build_emergency_context(db, alert)
        chat_service.share_emergency_context(db, channel.id, context)
        chat_service.post_companion_welcome(db, channel.id)
        companion = db.get(User, companion_id)
        notify_companion_responded(notifier, alert, companion.display_name if companion else "A companion", channel.id)
    return alert, transitioned


# ---------- Resolution ----------


def resolve_alert(
    db: Session,
    notifier: NotificationDispatcher,
    alert_id: int,
    actor_id: int,
) -> tuple[EmergencyAlert, bool]:
    """Mark the alert resolved and archive its channel. Returns (alert, resolved_now).

    Only the owner or a responding companion may resolve. Resolving an
    already resolved alert succeeds without side effects.
    """
    alert = _lock_alert(db, alert_id)
    responders = get_responder_ids(db, alert_id)
    if actor_id != alert.user_id and actor_id not in responders:
        raise AccessDenied("Only the alert owner or a responding companion can resolve it")
    if alert.status == AlertStatus.RESOLVED.value:
        return alert, False
    check_transition(alert.status, AlertStatus.RESOLVED)

    result = db.execute(
        update(EmergencyAlert)
        .where(EmergencyAlert.id == alert_id, EmergencyAlert.status != AlertStatus.RESOLVED.value)
        .values(
            status=AlertStatus.RESOLVED.value,
            resolved_at=datetime.now(timezone.utc),
            resolved_by=actor_id,
        )
    )
    resolved = result.rowcount == 1
    db.commit()
    db.refresh(alert)
    if not resolved:
        return alert, False
    logger.info("Alert %s resolved by user %s", alert_id, actor_id)

    channel = chat_service.get_emergency_channel(db, alert_id)
    if channel:
        chat_service.archive_channel(db, channel.id, actor_id)
    notify_alert_resolved(notifier, alert, responders, actor_id)
    return alert, True


# ---------- Reads ----------


def get_alert(db: Session, alert_id: int, viewer: User) -> EmergencyAlert:
    alert = db.get(EmergencyAlert, alert_id)
    if not alert:
        raise NotFound("Emergency alert not found")
    if viewer.id == alert.user_id or viewer.role == "admin":
        return alert
    if viewer.id in get_responder_ids(db, alert_id):
        return alert
    if alert.status != AlertStatus.RESOLVED.value and _verified_profile(db, viewer.id) is not None:
        return alert
    raise AccessDenied("You do not have access to this alert")


def list_history(db: Session, user_id: int, limit: int = HISTORY_LIMIT) -> list[EmergencyAlert]:
    """User's alerts, newest first."""
    result = db.execute(
        select(EmergencyAlert)
        .where(EmergencyAlert.user_id == user_id)
        .order_by(EmergencyAlert.created_at.desc(), EmergencyAlert.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def list_active_for_companion(db: Session, companion_id: int) -> list[EmergencyAlert]:
    """Alerts still waiting for a first responder, for a verified companion."""
    if _verified_profile(db, companion_id) is None:
        raise AccessDenied("Only active, verified companions can view active alerts")
    result = db.execute(
        select(EmergencyAlert)
        .where(
            EmergencyAlert.status == AlertStatus.ACTIVE.value,
            EmergencyAlert.user_id != companion_id,
        )
        .order_by(EmergencyAlert.created_at.desc(), EmergencyAlert.id.desc())
    )
    return list(result.scalars().all())


def list_open_responses(db: Session, companion_id: int) -> list[EmergencyAlert]:
    """Unresolved alerts the companion has responded to."""
    result = db.execute(
        select(EmergencyAlert)
        .join(AlertResponder, AlertResponder.alert_id == EmergencyAlert.id)
        .where(AlertResponder.companion_id == companion_id, EmergencyAlert.status.in_(OPEN_STATUSES))
        .order_by(EmergencyAlert.created_at.desc(), EmergencyAlert.id.desc())
    )
    return list(result.scalars().all())
