"""WebSocket connection registry used as the push transport's last hop."""

import json
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks open sockets per user id."""

    def __init__(self) -> None:
        self._sockets: dict[int, set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: int) -> None:
        await websocket.accept()
        self._sockets.setdefault(user_id, set()).add(websocket)
        logger.info("WS connected: user=%s (total=%s)", user_id, self.total_connections)

    def disconnect(self, websocket: WebSocket, user_id: int) -> None:
        sockets = self._sockets.get(user_id)
        if sockets:
            sockets.discard(websocket)
            if not sockets:
                del self._sockets[user_id]
        logger.info("WS disconnected: user=%s (total=%s)", user_id, self.total_connections)

    def is_connected(self, user_id: int) -> bool:
        return bool(self._sockets.get(user_id))

    async def send_to_user(self, user_id: int, event: str, data: Any) -> int:
        """Push an event to every socket of a user. Returns sockets reached."""
        sockets = self._sockets.get(user_id, set())
        message = json.dumps({"event": event, "data": data}, default=str)
        stale: list[WebSocket] = []
        delivered = 0
        for ws in list(sockets):
            try:
                await ws.send_text(message)
                delivered += 1
            except Exception:
                stale.append(ws)
        for ws in stale:
            self.disconnect(ws, user_id)
        return delivered

    @property
    def total_connections(self) -> int:
        return sum(len(s) for s in self._sockets.values())


ws_manager = ConnectionManager()
