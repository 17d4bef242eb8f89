"""WebSocket endpoint tests."""

import pytest
from starlette.websockets import WebSocketDisconnect

from sereno.core.security import create_access_token
from sereno.services import alert_service, chat_service


def _token(user):
    return create_access_token(subject=user.email, role=user.role)


def test_ws_sends_open_alert_state_on_connect(client, db, dispatcher, make_user, make_companion):
    owner = make_user()
    companion = make_companion()
    alert, _ = alert_service.activate_alert(db, dispatcher, owner.id)
    alert_service.respond_to_alert(db, dispatcher, alert.id, companion.id)
    channel = chat_service.get_emergency_channel(db, alert.id)
    db.commit()

    with client.websocket_connect(f"/ws?token={_token(owner)}") as ws:
        message = ws.receive_json()
        assert message["event"] == "session.state"
        assert message["data"]["open_alert"]["id"] == alert.id
        assert message["data"]["open_alert"]["status"] == "RESPONDED"
        assert message["data"]["open_alert"]["channel_id"] == channel.id
        assert message["data"]["responding_to"] == []

        ws.send_text("ping")
        assert ws.receive_json() == {"event": "pong"}

    with client.websocket_connect(f"/ws?token={_token(companion)}") as ws:
        state = ws.receive_json()["data"]
        assert state["open_alert"] is None
        assert [a["id"] for a in state["responding_to"]] == [alert.id]


def test_ws_state_is_empty_after_resolution(client, db, dispatcher, make_user):
    owner = make_user()
    alert, _ = alert_service.activate_alert(db, dispatcher, owner.id)
    alert_service.resolve_alert(db, dispatcher, alert.id, owner.id)
    db.commit()

    with client.websocket_connect(f"/ws?token={_token(owner)}") as ws:
        assert ws.receive_json()["data"]["open_alert"] is None


def test_ws_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws?token=not-a-jwt") as ws:
            ws.receive_json()
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
