"""Health check endpoint."""

from fastapi import APIRouter

from sereno.core.notifications import notification_dispatcher

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    """Return API health status and notification backlog."""
    return {"status": "ok", "pending_notifications": notification_dispatcher.pending}
