"""Chat channel types, message sources and system message templates."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class ChannelType(str, enum.Enum):
    INDIVIDUAL = "INDIVIDUAL"
    GROUP = "GROUP"
    EMERGENCY = "EMERGENCY"


class MessageType(str, enum.Enum):
    TEXT = "TEXT"
    SYSTEM = "SYSTEM"


class EscalationKind(str, enum.Enum):
    MEDICAL = "medical"
    POLICE = "police"
    CRISIS_CENTER = "crisis_center"


# ---------- Message source: a real user or the service itself ----------


@dataclass(frozen=True)
class UserSender:
    user_id: int


@dataclass(frozen=True)
class SystemSender:
    """The service narrating in a channel. Not a participant, not a user id."""


SYSTEM = SystemSender()

MessageSource = UserSender | SystemSender

SENDER_KIND_USER = "USER"
SENDER_KIND_SYSTEM = "SYSTEM"


# ---------- System message templates ----------

EMERGENCY_CHANNEL_CREATED = "Emergency channel created. A companion will join you soon."
CHANNEL_CREATED = "Chat channel created."

COMPANION_WELCOME = (
    "Hi, I'm a Sereno companion and I'm here to help.\n\n"
    "You can tell me what is happening. Everything we share here is confidential.\n\n"
    "How are you feeling right now?"
)

PARTICIPANT_JOINED = "{name} joined the chat."
PARTICIPANT_LEFT = "{name} left the chat."
ADDITIONAL_SUPPORT = "Additional support: {count} more companion(s) joined to help you."

CONTEXT_HEADER = "Emergency information"
CONTEXT_FOOTER = (
    "A companion is here to help you. You are not alone.\n\n"
    "This information is confidential and only visible to the companions responding to this emergency."
)
LOCATION_LINE = "Shared location: https://maps.google.com/?q={latitude},{longitude}"

CHANNEL_ARCHIVED = (
    "Emergency resolved.\n\n"
    "This chat has been archived. If you need help again, use the panic button at any time.\n\n"
    "Take care."
)

ESCALATION_MESSAGES: dict[EscalationKind, str] = {
    EscalationKind.MEDICAL: (
        "Medical escalation activated.\n\n"
        "Emergency medical services have been contacted. Please stay online."
    ),
    EscalationKind.POLICE: (
        "Police escalation activated.\n\n"
        "Local authorities have been contacted for immediate assistance."
    ),
    EscalationKind.CRISIS_CENTER: (
        "Crisis center contacted.\n\n"
        "Specialized professionals have been notified and will get in touch with you."
    ),
}

# Page size for message history
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
