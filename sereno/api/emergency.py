"""Emergency alerts API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query, Response, status
from sqlalchemy.orm import Session

from sereno.core.alert_policies import HISTORY_LIMIT
from sereno.core.deps import get_current_user, get_notifier
from sereno.core.emergency_contacts import get_contacts_by_country
from sereno.core.errors import EmergencyServiceError, to_http_exception
from sereno.core.notifications import NotificationDispatcher
from sereno.db.session import get_db
from sereno.models.emergency_alert import EmergencyAlert
from sereno.models.user import User
from sereno.schemas.emergency import (
    AlertResponse,
    OfficialContactResponse,
    PanicRequest,
    ResolveResponse,
    RespondResponse,
)
from sereno.services import alert_service, chat_service

router = APIRouter(prefix="/emergency", tags=["emergency"])


def _alert_response(db: Session, alert: EmergencyAlert) -> AlertResponse:
    channel = chat_service.get_emergency_channel(db, alert.id)
    return AlertResponse(
        id=alert.id,
        user_id=alert.user_id,
        status=alert.status,
        latitude=alert.latitude,
        longitude=alert.longitude,
        address=alert.address,
        official_contacts_notified=list(alert.official_contacts_notified or []),
        responding_companions=alert_service.get_responder_ids(db, alert.id),
        channel_id=channel.id if channel else None,
        created_at=alert.created_at,
        responded_at=alert.responded_at,
        resolved_at=alert.resolved_at,
        resolved_by=alert.resolved_by,
    )


@router.post("/panic", response_model=AlertResponse, status_code=status.HTTP_201_CREATED)
def panic(
    response: Response,
    data: PanicRequest | None = None,
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    """Raise a panic alert. An alert that is still open is returned with 200."""
    location = data.location if data else None
    try:
        alert, created = alert_service.activate_alert(
            db,
            notifier,
            current_user.id,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            address=location.address if location else None,
        )
    except EmergencyServiceError as e:
        raise to_http_exception(e)
    if not created:
        response.status_code = status.HTTP_200_OK
    return _alert_response(db, alert)


@router.post("/alert/{alert_id}/respond", response_model=RespondResponse)
def respond(
    alert_id: int,
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    """Companion answers an alert and joins its emergency chat."""
    try:
        alert, transitioned = alert_service.respond_to_alert(db, notifier, alert_id, current_user.id)
    except EmergencyServiceError as e:
        raise to_http_exception(e)
    channel = chat_service.get_emergency_channel(db, alert.id)
    return RespondResponse(
        alert_id=alert.id,
        status=alert.status,
        channel_id=channel.id if channel else None,
        first_responder=transitioned,
    )


@router.put("/alert/{alert_id}/resolve", response_model=ResolveResponse)
def resolve(
    alert_id: int,
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    try:
        alert, _ = alert_service.resolve_alert(db, notifier, alert_id, current_user.id)
    except EmergencyServiceError as e:
        raise to_http_exception(e)
    return ResolveResponse(alert_id=alert.id, status=alert.status, resolved_at=alert.resolved_at)


@router.get("/alert/{alert_id}", response_model=AlertResponse)
def get_alert(
    alert_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        alert = alert_service.get_alert(db, alert_id, current_user)
    except EmergencyServiceError as e:
        raise to_http_exception(e)
    return _alert_response(db, alert)


@router.get("/history", response_model=list[AlertResponse])
def history(
    limit: int = Query(default=HISTORY_LIMIT, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Current user's alerts, newest first."""
    return [_alert_response(db, a) for a in alert_service.list_history(db, current_user.id, limit)]


@router.get("/active", response_model=list[AlertResponse])
def active_alerts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Alerts still waiting for a responder. Verified companions only."""
    try:
        alerts = alert_service.list_active_for_companion(db, current_user.id)
    except EmergencyServiceError as e:
        raise to_http_exception(e)
    return [_alert_response(db, a) for a in alerts]


@router.get("/contacts/{country}", response_model=list[OfficialContactResponse])
def official_contacts(
    country: str = Path(min_length=2, max_length=2, pattern=r"^[A-Za-z]{2}$"),
    current_user: User = Depends(get_current_user),
):
    """Crisis lines and emergency numbers for a country."""
    return get_contacts_by_country(country)
