"""Companion directory API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from sereno.core.deps import get_current_user, require_admin, require_companion
from sereno.core.errors import EmergencyServiceError, to_http_exception
from sereno.db.session import get_db
from sereno.models.user import User
from sereno.schemas.companion import (
    AvailabilityUpdate,
    CompanionProfileResponse,
    CompanionRegister,
    CompanionStatsResponse,
)
from sereno.services import companion_service

router = APIRouter(prefix="/emergency/companion", tags=["companions"])


@router.post("/register", response_model=CompanionProfileResponse, status_code=status.HTTP_201_CREATED)
def register(
    data: CompanionRegister,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Sign up as a companion. The profile stays pending until an admin verifies it."""
    try:
        return companion_service.register_companion(db, current_user.id, data)
    except EmergencyServiceError as e:
        raise to_http_exception(e)


@router.put("/availability", response_model=CompanionProfileResponse)
def update_availability(
    data: AvailabilityUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_companion),
):
    try:
        return companion_service.update_availability(db, current_user.id, data)
    except EmergencyServiceError as e:
        raise to_http_exception(e)


@router.post("/deactivate", response_model=CompanionProfileResponse)
def deactivate(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_companion),
):
    try:
        return companion_service.deactivate_companion(db, current_user.id)
    except EmergencyServiceError as e:
        raise to_http_exception(e)


@router.get("/me", response_model=CompanionProfileResponse)
def my_profile(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_companion),
):
    try:
        return companion_service.get_profile(db, current_user.id)
    except EmergencyServiceError as e:
        raise to_http_exception(e)


@router.get("/stats", response_model=CompanionStatsResponse)
def my_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_companion),
):
    try:
        return companion_service.get_stats(db, current_user.id)
    except EmergencyServiceError as e:
        raise to_http_exception(e)


@router.post("/{user_id}/verify", response_model=CompanionProfileResponse)
def verify(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        return companion_service.verify_companion(db, user_id, admin.id)
    except EmergencyServiceError as e:
        raise to_http_exception(e)
