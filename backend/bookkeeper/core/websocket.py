from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketManager:
    """Tracks WebSocket connections per organization for real-time event fan-out."""

    def __init__(self):
        # organization_id -> list of active WebSocket connections
        self._connections: dict[str, list[WebSocket]] = {}

    async def connect(self, organization_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.setdefault(organization_id, []).append(websocket)

    def disconnect(self, organization_id: str, websocket: WebSocket) -> None:
        if organization_id in self._connections:
            self._connections[organization_id] = [
                ws for ws in self._connections[organization_id] if ws != websocket
            ]
            if not self._connections[organization_id]:
                del self._connections[organization_id]

    async def send_to_organization(self, organization_id: str, event: dict) -> None:
        """Send an event to every connection subscribed to an organization."""
        if "timestamp" not in event:
            event["timestamp"] = datetime.now(timezone.utc).isoformat()

        payload = json.dumps(event)
        dead = []
        for ws in self._connections.get(organization_id, []):
            try:
                await ws.send_text(payload)
            except Exception:
                logger.debug("Dropping closed websocket for organization %s", organization_id)
                dead.append(ws)
        for ws in dead:
            self.disconnect(organization_id, ws)

    def connection_count(self, organization_id: str) -> int:
        return len(self._connections.get(organization_id, []))
