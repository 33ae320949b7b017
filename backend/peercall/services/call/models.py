"""
Call Session Models

State enums and the CallSession record owned by CallSessionManager.
"""
import uuid
from contextlib import AsyncExitStack
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .candidates import IceCandidateBuffer
from .exceptions import InvalidTransitionError


class CallState(str, Enum):
    IDLE = "idle"
    CALLING = "calling"
    INCOMING = "incoming"
    CONNECTING = "connecting"
    ACTIVE = "active"
    ENDING = "ending"
    ERROR = "error"


class CallRole(str, Enum):
    CALLER = "caller"
    CALLEE = "callee"


class CallStatus(str, Enum):
    """User-visible status reported through CallSessionManager.on_status."""
    CONNECTED = "connected"  # relay open, no call
    CALLING = "calling"
    INCOMING = "incoming"
    CONNECTING = "connecting"
    ACTIVE = "active"
    ERROR = "error"
    DISCONNECTED = "disconnected"  # relay down, no call


class CallOutcome(str, Enum):
    """Result of a user-initiated call operation."""
    OK = "ok"
    SESSION_BUSY = "session_busy"
    NO_INCOMING_CALL = "no_incoming_call"
    INVALID_TARGET = "invalid_target"
    CANCELLED = "cancelled"
    FAILED = "failed"


# Edges of the session state table; IDLE is reached only through ENDING
_TRANSITIONS: Dict[CallState, Tuple[CallState, ...]] = {
    CallState.CALLING: (CallState.CONNECTING, CallState.ENDING),
    CallState.INCOMING: (CallState.CONNECTING, CallState.ENDING),
    CallState.CONNECTING: (CallState.ACTIVE, CallState.ENDING),
    CallState.ACTIVE: (CallState.ENDING,),
    CallState.ENDING: (CallState.IDLE,),
    CallState.IDLE: (),
}


class CallSession:
    """
    The single active or pending call of a local identity.

    Identity fields are bound at creation and read-only afterwards; every
    outbound message for the session uses them. Media and transport handles
    acquired for the session are registered on `resources` and released
    together by `close()`.
    """

    def __init__(
        self,
        local_user_id: str,
        remote_user_id: str,
        role: CallRole,
        pending_offer: Optional[Dict[str, Any]] = None,
    ):
        self._session_id = uuid.uuid4().hex
        self._local_user_id = local_user_id
        self._remote_user_id = remote_user_id
        self._role = role

        self.state = CallState.CALLING if role == CallRole.CALLER else CallState.INCOMING
        self.pending_offer = pending_offer
        self._local_description: Optional[Dict[str, Any]] = None
        self._remote_description: Optional[Dict[str, Any]] = None

        self.local_stream = None
        self.transport = None
        # Sink draining remote tracks when nobody else consumes them
        self.remote_sink = None
        # True once the remote party knows this session exists
        self.remote_aware = role == CallRole.CALLEE

        self.candidates = IceCandidateBuffer()
        self.resources = AsyncExitStack()
        self._closed = False

        self.created_at = datetime.now(UTC)
        self.last_transition_at = self.created_at

    # === Identity (immutable) ===

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def local_user_id(self) -> str:
        return self._local_user_id

    @property
    def remote_user_id(self) -> str:
        return self._remote_user_id

    @property
    def role(self) -> CallRole:
        return self._role

    # === Negotiation descriptions (set at most once) ===

    @property
    def local_description(self) -> Optional[Dict[str, Any]]:
        return self._local_description

    @local_description.setter
    def local_description(self, description: Dict[str, Any]) -> None:
        if self._local_description is not None:
            raise InvalidTransitionError(f"Session {self._session_id} already has a local description")
        self._local_description = description

    @property
    def remote_description(self) -> Optional[Dict[str, Any]]:
        return self._remote_description

    @remote_description.setter
    def remote_description(self, description: Dict[str, Any]) -> None:
        if self._remote_description is not None:
            raise InvalidTransitionError(f"Session {self._session_id} already has a remote description")
        self._remote_description = description

    @property
    def pending_remote_candidates(self) -> Tuple[Dict[str, Any], ...]:
        return self.candidates.pending_remote

    # === State ===

    def transition(self, new_state: CallState) -> None:
        if new_state not in _TRANSITIONS.get(self.state, ()):
            raise InvalidTransitionError(
                f"Session {self._session_id}: {self.state.value} -> {new_state.value} not allowed"
            )
        self.state = new_state
        self.last_transition_at = datetime.now(UTC)

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Clear candidates and release every registered resource, once."""
        if self._closed:
            return
        self._closed = True
        self.candidates.clear()
        try:
            await self.resources.aclose()
        finally:
            self.local_stream = None
            self.transport = None
            self.remote_sink = None

    def __repr__(self) -> str:
        return (
            f"CallSession(id={self._session_id[:8]}, {self._local_user_id}->{self._remote_user_id}, "
            f"role={self._role.value}, state={self.state.value})"
        )
