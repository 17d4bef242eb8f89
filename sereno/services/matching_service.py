"""Companion eligibility and matching."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.orm import Session

from sereno.models.companion_profile import CompanionProfile
from sereno.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class MatchedCompanion:
    """Companion eligible to receive an emergency alert."""

    companion_id: int
    specializations: list[str]
    max_response_distance_km: float
    distance_km: float | None  # None if either location is unknown


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two lat/lng points in kilometers."""
    R = 6371.0  # Earth radius in km
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return R * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def parse_hhmm(value: str | None) -> time | None:
    """Parse "HH:MM" into a time, or None if it is not a valid clock time."""
    if not value:
        return None
    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except ValueError:
        return None


def is_within_window(start: str | None, end: str | None, current: time) -> bool:
    """Whether ``current`` falls inside [start, end].

    Windows whose end is earlier than their start wrap past midnight
    (22:00-06:00). Unparsable or zero-length windows count as always
    available.
    """
    start_t = parse_hhmm(start)
    end_t = parse_hhmm(end)
    if start_t is None or end_t is None or start_t == end_t:
        logger.warning("Malformed availability window %r-%r; treating as always available", start, end)
        return True
    current = current.replace(second=0, microsecond=0, tzinfo=None)
    if start_t < end_t:
        return start_t <= current <= end_t
    return current >= start_t or current <= end_t


def local_time_for(profile: CompanionProfile, now: datetime) -> time:
    """The companion's wall-clock time at ``now``."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    try:
        tz = ZoneInfo(profile.timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r for companion %s; using UTC", profile.timezone, profile.user_id)
        tz = timezone.utc
    return now.astimezone(tz).time()


def is_eligible(profile: CompanionProfile, now: datetime) -> bool:
    """Verification, availability flag and time window. Distance is checked separately."""
    if not profile.is_active:
        return False
    if profile.verification_status != "verified":
        return False
    if not profile.is_available:
        return False
    return is_within_window(profile.availability_start, profile.availability_end, local_time_for(profile, now))


def find_eligible_companions(
    db: Session,
    latitude: float | None = None,
    longitude: float | None = None,
    now: datetime | None = None,
    exclude_user_ids: frozenset[int] | set[int] = frozenset(),
) -> list[MatchedCompanion]:
    """
    Companions who can be alerted for an emergency at this location and time.

    Distance against ``max_response_distance_km`` only filters when both
    the requester's and the companion's locations are known; a missing
    location never excludes anyone. Results are ordered nearest first,
    unknown distances last.
    """
    now = now or datetime.now(timezone.utc)
    requester_located = latitude is not None and longitude is not None

    rows = db.execute(
        select(CompanionProfile)
        .join(User, User.id == CompanionProfile.user_id)
        .where(
            CompanionProfile.is_active.is_(True),
            CompanionProfile.verification_status == "verified",
            CompanionProfile.is_available.is_(True),
            User.is_active.is_(True),
            User.role == "companion",
        )
    )
    profiles = list(rows.scalars().all())

    matches: list[MatchedCompanion] = []
    for profile in profiles:
        if profile.user_id in exclude_user_ids:
            continue
        if not is_eligible(profile, now):
            continue

        dist: float | None = None
        if requester_located and profile.latitude is not None and profile.longitude is not None:
            dist = haversine_km(latitude, longitude, profile.latitude, profile.longitude)
            if dist > profile.max_response_distance_km:
                continue

        matches.append(
            MatchedCompanion(
                companion_id=profile.user_id,
                specializations=list(profile.specializations or []),
                max_response_distance_km=profile.max_response_distance_km,
                distance_km=round(dist, 2) if dist is not None else None,
            )
        )

    matches.sort(key=lambda m: (m.distance_km is None, m.distance_km or 0.0))
    logger.info("Matched %d eligible companion(s)", len(matches))
    return matches
