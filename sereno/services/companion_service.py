"""Companion directory: registration, verification, availability, stats."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from sereno.core.alert_policies import AlertStatus
from sereno.core.config import settings
from sereno.core.errors import AccessDenied, AlreadyRegistered, NotFound
from sereno.models.alert_responder import AlertResponder
from sereno.models.companion_profile import CompanionProfile
from sereno.models.emergency_alert import EmergencyAlert
from sereno.models.user import User
from sereno.schemas.companion import AvailabilityUpdate, CompanionRegister

logger = logging.getLogger(__name__)


@dataclass
class CompanionStats:
    total_responses: int
    resolved: int
    success_rate: float  # percent
    average_resolution_minutes: float | None


def get_profile(db: Session, user_id: int) -> CompanionProfile:
    profile = db.execute(
        select(CompanionProfile).where(CompanionProfile.user_id == user_id)
    ).scalar_one_or_none()
    if not profile:
        raise NotFound("Companion profile not found")
    return profile


def register_companion(db: Session, user_id: int, data: CompanionRegister) -> CompanionProfile:
    """Create a pending companion profile and give the user the companion role."""
    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    existing = db.execute(
        select(CompanionProfile).where(CompanionProfile.user_id == user_id)
    ).scalar_one_or_none()
    if existing:
        raise AlreadyRegistered("User is already registered as a companion")

    profile = CompanionProfile(
        user_id=user_id,
        specializations=list(data.specializations),
        availability_start=data.availability_start,
        availability_end=data.availability_end,
        timezone=data.timezone,
        max_response_distance_km=data.max_response_distance_km or settings.default_response_radius_km,
        latitude=data.latitude,
        longitude=data.longitude,
        verification_status="pending",
        is_available=False,
    )
    if user.role != "admin":
        user.role = "companion"
    db.add(profile)
    db.commit()
    db.refresh(profile)
    logger.info("User %s registered as companion (pending verification)", user_id)
    return profile


def verify_companion(db: Session, user_id: int, admin_id: int) -> CompanionProfile:
    profile = get_profile(db, user_id)
    profile.verification_status = "verified"
    profile.verified_by = admin_id
    profile.verified_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(profile)
    logger.info("Companion %s verified by admin %s", user_id, admin_id)
    return profile


def update_availability(db: Session, user_id: int, data: AvailabilityUpdate) -> CompanionProfile:
    """Apply the fields the companion sent. Unset fields are left alone."""
    profile = get_profile(db, user_id)
    if not profile.is_active:
        raise AccessDenied("Companion profile is deactivated")
    for name, value in data.model_dump(exclude_unset=True).items():
        setattr(profile, name, value)
    profile.last_seen_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(profile)
    logger.info("Companion %s availability updated (available: %s)", user_id, profile.is_available)
    return profile


def deactivate_companion(db: Session, user_id: int) -> CompanionProfile:
    profile = get_profile(db, user_id)
    profile.is_active = False
    profile.is_available = False
    db.commit()
    db.refresh(profile)
    logger.info("Companion %s deactivated", user_id)
    return profile


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def get_stats(db: Session, user_id: int) -> CompanionStats:
    """Response history of a companion over every alert they responded to."""
    get_profile(db, user_id)
    alerts = list(
        db.execute(
            select(EmergencyAlert)
            .join(AlertResponder, AlertResponder.alert_id == EmergencyAlert.id)
            .where(AlertResponder.companion_id == user_id)
        ).scalars().all()
    )
    resolved = [a for a in alerts if a.status == AlertStatus.RESOLVED.value]
    durations = [
        (_as_utc(a.resolved_at) - _as_utc(a.created_at)).total_seconds() / 60
        for a in resolved
        if a.resolved_at is not None
    ]
    return CompanionStats(
        total_responses=len(alerts),
        resolved=len(resolved),
        success_rate=round(100 * len(resolved) / len(alerts), 1) if alerts else 0.0,
        average_resolution_minutes=round(sum(durations) / len(durations), 1) if durations else None,
    )
