"""SQLAlchemy models."""

from __future__ import annotations

from sereno.models.alert_responder import AlertResponder
from sereno.models.chat_channel import ChannelParticipant, ChatChannel
from sereno.models.chat_message import ChatMessage
from sereno.models.companion_profile import CompanionProfile
from sereno.models.emergency_alert import EmergencyAlert
from sereno.models.escalation_event import EscalationEvent
from sereno.models.user import User

__all__ = [
    "User",
    "AlertResponder",
    "ChannelParticipant",
    "ChatChannel",
    "ChatMessage",
    "CompanionProfile",
    "EmergencyAlert",
    "EscalationEvent",
]
