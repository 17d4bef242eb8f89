"""Emergency alert state machine and policy constants."""

from __future__ import annotations

import enum

from sereno.core.errors import InvalidTransition


class AlertStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    RESPONDED = "RESPONDED"
    RESOLVED = "RESOLVED"


# Forward-only transitions. RESOLVED is terminal.
ALLOWED_TRANSITIONS: dict[AlertStatus, frozenset[AlertStatus]] = {
    AlertStatus.ACTIVE: frozenset({AlertStatus.RESPONDED, AlertStatus.RESOLVED}),
    AlertStatus.RESPONDED: frozenset({AlertStatus.RESOLVED}),
    AlertStatus.RESOLVED: frozenset(),
}

# Alerts a user can still be helped on; a new panic returns the existing one
OPEN_STATUSES = (AlertStatus.ACTIVE.value, AlertStatus.RESPONDED.value)

# Number of past alerts returned by the history endpoint
HISTORY_LIMIT = 20


def check_transition(current: str | AlertStatus, target: str | AlertStatus) -> None:
    """Raise InvalidTransition unless ``current -> target`` is legal."""
    current = AlertStatus(current)
    target = AlertStatus(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move alert from {current.value} to {target.value}")
