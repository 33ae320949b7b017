"""
Relay Session

Handles one identity's WebSocket on the relay:
- Registration in the presence registry
- Presence snapshots
- Routing of negotiation messages by target identity

Negotiation payloads are never interpreted, only forwarded.
"""
import json
import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

from peercall.config.constants import WS_CLOSE_POLICY_VIOLATION
from peercall.schemas.signaling import (
    CallError,
    CallOffer,
    ConnectionEstablished,
    GetOnlineUsers,
    OnlineUsers,
    ROUTED_MESSAGE_TYPES,
    dump_message,
    parse_message,
)
from peercall.services.call.exceptions import RelayProtocolError
from peercall.services.metrics import relay_messages
from peercall.services.presence import presence_registry

logger = logging.getLogger(__name__)


class RelaySession:
    """
    Orchestrates the lifecycle of one relay WebSocket connection.
    Handles:
    - Session setup (identity check)
    - Connection registration and presence broadcast
    - Message loop (presence requests, routed messages)
    - Cleanup on disconnect
    """

    def __init__(
        self,
        websocket: WebSocket,
        user_id: Optional[str],
        username: Optional[str] = None,
        full_name: Optional[str] = None,
        registry=None,
    ):
        self.websocket = websocket
        self.user_id = user_id
        self.username = username or user_id or ""
        self.full_name = full_name or ""
        self.registry = registry or presence_registry

    async def run(self) -> None:
        """Main entry point for handling a relay connection."""
        # 1. Setup
        if not await self._setup_session():
            return

        # 2. Register & greet
        if not await self._register_connection():
            return

        # 3. Message loop
        await self._message_loop()

    async def _setup_session(self) -> bool:
        if not self.user_id:
            logger.warning("[Relay] Connection without userId rejected")
            await self.websocket.close(code=WS_CLOSE_POLICY_VIOLATION, reason="userId is required")
            return False
        await self.websocket.accept()
        return True

    async def _register_connection(self) -> bool:
        try:
            await self.registry.register(
                self.user_id,
                self.websocket,
                username=self.username,
                full_name=self.full_name,
            )
            await self.websocket.send_json(dump_message(ConnectionEstablished(username=self.username)))
            await self._broadcast_presence()
            return True
        except Exception as e:
            logger.error(f"[Relay] Registration error for {self.user_id}: {e}")
            await self._cleanup()
            return False

    async def _message_loop(self) -> None:
        try:
            while True:
                text = await self.websocket.receive_text()
                await self._handle_text_message(text)

        except WebSocketDisconnect:
            logger.info(f"[Relay] {self.user_id} disconnected")

        except Exception as e:
            logger.error(f"[Relay] Error during message loop for {self.user_id}: {e}")

        finally:
            await self._cleanup()

    async def _handle_text_message(self, text: str) -> None:
        try:
            data = json.loads(text)
            message = parse_message(data)
        except (json.JSONDecodeError, RelayProtocolError) as e:
            relay_messages.labels(type="unknown", outcome="dropped").inc()
            logger.warning(f"[Relay] Dropping malformed message from {self.user_id}: {e}")
            return

        if isinstance(message, GetOnlineUsers):
            relay_messages.labels(type=message.type, outcome="presence").inc()
            await self.websocket.send_json(self._presence_message())

        elif isinstance(message, ROUTED_MESSAGE_TYPES):
            await self._route(message, data)

        else:
            relay_messages.labels(type=message.type, outcome="dropped").inc()
            logger.warning(f"[Relay] Unexpected '{message.type}' from {self.user_id}")

    async def _route(self, message, data: Dict[str, Any]) -> None:
        target = message.target_user_id
        if not target:
            relay_messages.labels(type=message.type, outcome="dropped").inc()
            logger.warning(f"[Relay] '{message.type}' from {self.user_id} has no targetUserId")
            return

        # Forward verbatim, stamped with the sender
        forwarded = dict(data)
        forwarded.pop("targetUserId", None)
        forwarded["fromUserId"] = self.user_id

        if await self.registry.send_to_user(target, forwarded):
            relay_messages.labels(type=message.type, outcome="routed").inc()
            logger.debug(f"[Relay] {message.type}: {self.user_id} -> {target}")
            return

        relay_messages.labels(type=message.type, outcome="offline").inc()
        if isinstance(message, CallOffer):
            logger.info(f"[Relay] Call from {self.user_id} to offline {target}")
            await self.websocket.send_json(dump_message(CallError(reason=f"User {target} is not online")))
        else:
            logger.info(f"[Relay] Dropping {message.type} for offline {target}")

    def _presence_message(self) -> Dict[str, Any]:
        return dump_message(OnlineUsers(users=self.registry.snapshot()))

    async def _broadcast_presence(self) -> None:
        await self.registry.broadcast(self._presence_message())

    async def _cleanup(self) -> None:
        if await self.registry.unregister(self.user_id, self.websocket):
            await self._broadcast_presence()
