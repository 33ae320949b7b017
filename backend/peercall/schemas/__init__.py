"""
Schemas Package

Pydantic models for relay (signaling) messages.
"""

from peercall.schemas.signaling import (
    SignalingModel,
    RoutedMessage,
    PresenceEntry,
    ConnectionEstablished,
    CallOffer,
    CallAnswer,
    IceCandidate,
    CallEnd,
    CallError,
    GetOnlineUsers,
    OnlineUsers,
    SignalingMessage,
    ROUTED_MESSAGE_TYPES,
    parse_message,
    dump_message,
    encode_message,
)

__all__ = [
    "SignalingModel",
    "RoutedMessage",
    "PresenceEntry",
    "ConnectionEstablished",
    "CallOffer",
    "CallAnswer",
    "IceCandidate",
    "CallEnd",
    "CallError",
    "GetOnlineUsers",
    "OnlineUsers",
    "SignalingMessage",
    "ROUTED_MESSAGE_TYPES",
    "parse_message",
    "dump_message",
    "encode_message",
]
