"""Notification events raised by the emergency and chat services.

Every function here only enqueues a job; delivery happens on the worker.
A failure to enqueue is logged and swallowed so the triggering write is
never affected.
"""

from __future__ import annotations

import logging
from typing import Any

from sereno.core.emergency_contacts import OfficialContact
from sereno.core.notifications import MatchRequest, NotificationDispatcher, NotificationJob
from sereno.models.chat_message import ChatMessage
from sereno.models.emergency_alert import EmergencyAlert

logger = logging.getLogger(__name__)


def _submit(notifier: NotificationDispatcher, job: NotificationJob) -> None:
    try:
        notifier.enqueue(job)
    except Exception:
        logger.exception("Failed to hand off notification %s", job.event)


def _alert_payload(alert: EmergencyAlert) -> dict[str, Any]:
    data: dict[str, Any] = {"alert_id": alert.id, "status": alert.status}
    if alert.has_location:
        data["location"] = {
            "latitude": alert.latitude,
            "longitude": alert.longitude,
            "address": alert.address,
        }
    return data


def notify_alert_created(notifier: NotificationDispatcher, alert: EmergencyAlert) -> None:
    """Fan out a new alert to every companion eligible at the alert's location."""
    data = _alert_payload(alert)
    data.update(
        title="Emergency alert",
        body="Someone near you needs help right now. Can you respond?",
        action="respond_emergency",
    )
    _submit(
        notifier,
        NotificationJob(
            event="emergency.alert_created",
            data=data,
            match=MatchRequest(latitude=alert.latitude, longitude=alert.longitude),
            exclude_user_ids=frozenset({alert.user_id}),
        ),
    )


def notify_official_contacts(
    notifier: NotificationDispatcher,
    alert: EmergencyAlert,
    contacts: list[OfficialContact],
) -> None:
    """Record the hand-off to official lines. Real SMS/voice integration is external."""
    for contact in contacts:
        logger.info(
            "Official contact %s (%s, %s) queued for alert %s",
            contact.id, contact.name, contact.phone_number, alert.id,
        )
    if contacts:
        _submit(
            notifier,
            NotificationJob(
                event="emergency.official_contact",
                data={"alert_id": alert.id, "contact_ids": [c.id for c in contacts]},
                user_ids=[alert.user_id],
            ),
        )


def notify_companion_responded(
    notifier: NotificationDispatcher,
    alert: EmergencyAlert,
    companion_name: str,
    channel_id: int | None,
) -> None:
    """Tell the requester that help is on the way."""
    _submit(
        notifier,
        NotificationJob(
            event="emergency.companion_responded",
            data={
                "alert_id": alert.id,
                "channel_id": channel_id,
                "title": "Help is coming",
                "body": f"{companion_name} is responding to your alert.",
                "action": "open_chat",
            },
            user_ids=[alert.user_id],
        ),
    )


def notify_alert_resolved(
    notifier: NotificationDispatcher,
    alert: EmergencyAlert,
    responder_ids: list[int],
    resolved_by: int,
) -> None:
    _submit(
        notifier,
        NotificationJob(
            event="emergency.resolved",
            data={
                "alert_id": alert.id,
                "status": alert.status,
                "title": "Emergency resolved",
                "body": "This emergency has been marked as resolved. Thank you for your help.",
                "action": "view_summary",
            },
            user_ids=[alert.user_id, *responder_ids],
            exclude_user_ids=frozenset({resolved_by}),
        ),
    )


def notify_new_message(
    notifier: NotificationDispatcher,
    message: ChatMessage,
    participant_ids: list[int],
) -> None:
    exclude = frozenset({message.sender_id}) if message.sender_id is not None else frozenset()
    _submit(
        notifier,
        NotificationJob(
            event="chat.message",
            data={
                "channel_id": message.channel_id,
                "message_id": message.id,
                "type": message.type,
                "preview": message.content[:120],
            },
            user_ids=participant_ids,
            exclude_user_ids=exclude,
        ),
    )


def notify_escalation(
    notifier: NotificationDispatcher,
    channel_id: int,
    alert_id: int | None,
    kind: str,
    participant_ids: list[int],
) -> None:
    _submit(
        notifier,
        NotificationJob(
            event="chat.escalated",
            data={"channel_id": channel_id, "alert_id": alert_id, "kind": kind},
            user_ids=participant_ids,
        ),
    )
