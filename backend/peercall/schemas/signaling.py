"""
Signaling Message Schemas

Pydantic models for the relay message envelope. Every message is one JSON
object tagged by "type"; SignalingMessage is the closed union of all
variants, so adding a variant means adding a model here and a handler in
CallSessionManager.

Wire names are camelCase (fromUserId, targetUserId, fullName); attributes
are snake_case.
"""
import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from peercall.services.call.exceptions import RelayProtocolError


# =============================================================================
# Base Models
# =============================================================================

class SignalingModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class RoutedMessage(SignalingModel):
    """A message the relay forwards from one identity to another."""
    target_user_id: Optional[str] = None
    # Stamped by the relay on delivery
    from_user_id: Optional[str] = None


class PresenceEntry(SignalingModel):
    """One reachable identity as reported by the presence registry."""
    user_id: str
    username: str
    full_name: str = ""


# =============================================================================
# Message Variants
# =============================================================================

class ConnectionEstablished(SignalingModel):
    """Relay greeting sent once per (re)connection."""
    type: Literal["connection-established"] = "connection-established"
    username: str


class CallOffer(RoutedMessage):
    """Caller's negotiation offer."""
    type: Literal["call-offer"] = "call-offer"
    offer: Dict[str, Any]


class CallAnswer(RoutedMessage):
    """Callee's negotiation answer."""
    type: Literal["call-answer"] = "call-answer"
    answer: Dict[str, Any]


class IceCandidate(RoutedMessage):
    """One network-path candidate."""
    type: Literal["ice-candidate"] = "ice-candidate"
    candidate: Dict[str, Any]


class CallEnd(RoutedMessage):
    """Hang-up or rejection."""
    type: Literal["call-end"] = "call-end"


class CallError(RoutedMessage):
    """Call failure reported by the relay or the remote party."""
    type: Literal["call-error"] = "call-error"
    reason: str = Field("", alias="message")


class GetOnlineUsers(SignalingModel):
    """Presence snapshot request."""
    type: Literal["get-online-users"] = "get-online-users"


class OnlineUsers(SignalingModel):
    """Presence snapshot."""
    type: Literal["online-users"] = "online-users"
    users: List[PresenceEntry] = Field(default_factory=list)


SignalingMessage = Annotated[
    Union[
        ConnectionEstablished,
        CallOffer,
        CallAnswer,
        IceCandidate,
        CallEnd,
        CallError,
        GetOnlineUsers,
        OnlineUsers,
    ],
    Field(discriminator="type"),
]

ROUTED_MESSAGE_TYPES = (CallOffer, CallAnswer, IceCandidate, CallEnd, CallError)

_message_adapter: TypeAdapter = TypeAdapter(SignalingMessage)


# =============================================================================
# Codec
# =============================================================================

def parse_message(raw: Union[str, bytes, Dict[str, Any]]) -> SignalingModel:
    """
    Parse one relay frame into its SignalingMessage variant.

    Raises:
        RelayProtocolError: invalid JSON, unknown type or missing fields.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RelayProtocolError(f"Invalid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise RelayProtocolError(f"Expected a JSON object, got {type(raw).__name__}")

    try:
        return _message_adapter.validate_python(raw)
    except ValidationError as e:
        raise RelayProtocolError(
            f"Invalid '{raw.get('type')}' message: {e.error_count()} error(s)"
        ) from e


def dump_message(message: SignalingModel) -> Dict[str, Any]:
    """Wire dict for a message (camelCase, unset optionals omitted)."""
    return message.model_dump(by_alias=True, exclude_none=True)


def encode_message(message: SignalingModel) -> str:
    """Wire JSON text for a message."""
    return json.dumps(dump_message(message))
