"""
Presence Models

Wrapper around one relay WebSocket connection.
"""
from datetime import datetime, UTC
from typing import Dict, Any
import logging

from fastapi import WebSocket

from peercall.schemas.signaling import PresenceEntry

logger = logging.getLogger(__name__)


class RelayConnection:
    """Represents the single relay connection of an identity."""

    def __init__(
        self,
        websocket: WebSocket,
        user_id: str,
        username: str = "",
        full_name: str = "",
    ):
        self.websocket = websocket
        self.user_id = user_id
        self.username = username or user_id
        self.full_name = full_name
        self.connected_at = datetime.now(UTC)

    def to_entry(self) -> PresenceEntry:
        return PresenceEntry(user_id=self.user_id, username=self.username, full_name=self.full_name)

    async def send_json(self, data: Dict[str, Any]) -> bool:
        """Send JSON message to this connection."""
        try:
            await self.websocket.send_json(data)
            return True
        except Exception as e:
            logger.error(f"[Relay] Error sending JSON to {self.user_id}: {e}")
            return False

    async def close(self, code: int, reason: str = "") -> None:
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"[Relay] Close of {self.user_id} failed: {e}")
