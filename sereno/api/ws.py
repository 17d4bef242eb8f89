"""Realtime push endpoint.

Clients connect with ``?token=<jwt>``. On connect the server sends one
``session.state`` event so a reconnecting client can catch up on pushes it
missed while offline; after that it only receives notification events
(emergency.alert_created, emergency.companion_responded,
emergency.official_contact, emergency.resolved, chat.message, chat.escalated).
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from sereno.core.deps import user_from_token
from sereno.core.ws_manager import ws_manager
from sereno.db.session import get_db
from sereno.models.emergency_alert import EmergencyAlert
from sereno.models.user import User
from sereno.services import alert_service, chat_service

logger = logging.getLogger(__name__)

router = APIRouter()

SESSION_STATE_EVENT = "session.state"


def _alert_state(db: Session, alert: EmergencyAlert) -> dict[str, Any]:
    channel = chat_service.get_emergency_channel(db, alert.id)
    return {
        "id": alert.id,
        "status": alert.status,
        "created_at": alert.created_at.isoformat() if alert.created_at else None,
        "channel_id": channel.id if channel else None,
    }


def session_state(db: Session, user: User) -> dict[str, Any]:
    """Open alert of the user plus, for companions, the alerts they are attending."""
    open_alert = alert_service.get_open_alert(db, user.id)
    state: dict[str, Any] = {
        "user_id": user.id,
        "open_alert": _alert_state(db, open_alert) if open_alert else None,
        "responding_to": [],
    }
    if user.role == "companion":
        state["responding_to"] = [
            _alert_state(db, alert) for alert in alert_service.list_open_responses(db, user.id)
        ]
    return state


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, db: Session = Depends(get_db)):
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4001, reason="Missing token")
        return

    user = user_from_token(db, token)
    if user is None:
        await websocket.close(code=4003, reason="Invalid or expired token")
        return
    user_id = user.id
    state = session_state(db, user)
    # Release the connection before the socket idles
    db.close()

    await ws_manager.connect(websocket, user_id)
    try:
        await websocket.send_text(json.dumps({"event": SESSION_STATE_EVENT, "data": state}, default=str))
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text('{"event":"pong"}')
    except WebSocketDisconnect:
        logger.debug("WS client %s went away", user_id)
    finally:
        ws_manager.disconnect(websocket, user_id)
