"""Chat content moderation.

Emergency channels get a longer length limit and skip the blocked-term
filter so that safety-relevant messages are never truncated or refused.
Self-harm indicator phrases are flagged and logged for human follow-up; a
match never blocks a message and never escalates on its own.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sereno.core.config import settings

logger = logging.getLogger(__name__)

# Blocked outside emergency channels
BLOCKED_TERMS: frozenset[str] = frozenset({
    "spam",
    "scam",
    "fake",
})

# Indicators that need a human to look at the conversation
SELF_HARM_PHRASES: frozenset[str] = frozenset({
    "want to die",
    "kill myself",
    "end my life",
    "end it all",
    "not worth living",
    "better off dead",
    "hurt myself",
    "quiero morir",
    "no vale la pena",
    "acabar con todo",
    "quitarme la vida",
})


def _compile(phrases: frozenset[str]) -> list[tuple[str, re.Pattern]]:
    return [(p, re.compile(r"\b" + re.escape(p) + r"\b", re.IGNORECASE)) for p in sorted(phrases)]


_BLOCKED_PATTERNS = _compile(BLOCKED_TERMS)
_SELF_HARM_PATTERNS = _compile(SELF_HARM_PHRASES)


@dataclass(frozen=True)
class ModerationResult:
    allowed: bool
    reason: str | None = None
    flagged: bool = False
    matched_phrases: tuple[str, ...] = ()


def max_length_for(is_emergency_channel: bool) -> int:
    if is_emergency_channel:
        return settings.emergency_message_max_length
    return settings.default_message_max_length


def find_self_harm_indicators(content: str) -> tuple[str, ...]:
    return tuple(phrase for phrase, pattern in _SELF_HARM_PATTERNS if pattern.search(content))


def moderate_message(
    content: str,
    is_emergency_channel: bool = False,
    channel_id: int | None = None,
) -> ModerationResult:
    """Decide whether a user message may be stored."""
    if not content or not content.strip():
        return ModerationResult(allowed=False, reason="Message is empty")

    limit = max_length_for(is_emergency_channel)
    if len(content) > limit:
        return ModerationResult(allowed=False, reason=f"Message is too long (max {limit} characters)")

    if not is_emergency_channel:
        for _, pattern in _BLOCKED_PATTERNS:
            if pattern.search(content):
                return ModerationResult(allowed=False, reason="Inappropriate content detected")

    matched = find_self_harm_indicators(content)
    if matched:
        logger.warning(
            "SELF_HARM_INDICATOR channel=%s emergency=%s phrases=%s",
            channel_id,
            is_emergency_channel,
            ",".join(matched),
        )
        return ModerationResult(allowed=True, flagged=True, matched_phrases=matched)

    return ModerationResult(allowed=True)
