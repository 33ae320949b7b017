"""
Presence Registry

Relay-side registry of connected identities:
- One live connection per identity; a newer one supersedes the older
- Direct delivery by identity
- Presence snapshots and broadcast
"""
import asyncio
from typing import Any, Dict, List, Optional
import logging

from fastapi import WebSocket

from peercall.config.constants import WS_CLOSE_SUPERSEDED
from peercall.schemas.signaling import PresenceEntry
from peercall.services.metrics import relay_active_connections

from .models import RelayConnection

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """In-memory map of user_id -> RelayConnection."""

    def __init__(self):
        self._connections: Dict[str, RelayConnection] = {}
        self._lock = asyncio.Lock()

    # === Registration ===

    async def register(
        self,
        user_id: str,
        websocket: WebSocket,
        username: str = "",
        full_name: str = "",
    ) -> RelayConnection:
        """Register a connection; an existing one for the same identity is closed."""
        conn = RelayConnection(websocket, user_id, username=username, full_name=full_name)
        async with self._lock:
            previous = self._connections.get(user_id)
            self._connections[user_id] = conn
            relay_active_connections.set(len(self._connections))

        if previous is not None and previous.websocket is not websocket:
            logger.info(f"[Presence] {user_id} reconnected, closing previous connection")
            await previous.close(WS_CLOSE_SUPERSEDED, "Superseded by a newer connection")

        logger.info(f"[Presence] {user_id} online ({len(self._connections)} connected)")
        return conn

    async def unregister(self, user_id: str, websocket: Optional[WebSocket] = None) -> bool:
        """
        Remove an identity. When `websocket` is given, only that exact
        connection is removed, so a superseded connection cannot evict its
        replacement.
        """
        async with self._lock:
            conn = self._connections.get(user_id)
            if conn is None:
                return False
            if websocket is not None and conn.websocket is not websocket:
                return False
            del self._connections[user_id]
            relay_active_connections.set(len(self._connections))

        logger.info(f"[Presence] {user_id} offline ({len(self._connections)} connected)")
        return True

    # === Queries ===

    def is_online(self, user_id: str) -> bool:
        return user_id in self._connections

    def snapshot(self) -> List[PresenceEntry]:
        return [conn.to_entry() for conn in list(self._connections.values())]

    @property
    def count(self) -> int:
        return len(self._connections)

    # === Delivery ===

    async def send_to_user(self, user_id: str, message: Dict[str, Any]) -> bool:
        conn = self._connections.get(user_id)
        if conn is None:
            return False
        return await conn.send_json(message)

    async def broadcast(self, message: Dict[str, Any]) -> int:
        sent_count = 0
        for conn in list(self._connections.values()):
            if await conn.send_json(message):
                sent_count += 1
        return sent_count
