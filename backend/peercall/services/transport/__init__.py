"""
Transport Module

aiortc-backed peer transport.
"""
from .peer import (
    AiortcPeerTransport,
    ConnectivityState,
    candidate_from_dict,
    candidate_to_dict,
    create_peer_transport,
    description_from_dict,
    description_to_dict,
)

__all__ = [
    "AiortcPeerTransport",
    "ConnectivityState",
    "candidate_from_dict",
    "candidate_to_dict",
    "create_peer_transport",
    "description_from_dict",
    "description_to_dict",
]
