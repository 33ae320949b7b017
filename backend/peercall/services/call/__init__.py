"""
Call Module

Session state, candidate buffering and the error taxonomy. The session
manager itself lives in peercall.services.call.manager.
"""
from .candidates import IceCandidateBuffer
from .exceptions import (
    CallSessionError,
    InvalidTransitionError,
    MediaUnavailableError,
    NegotiationRejectedError,
    PeerConnectivityFailedError,
    RelayProtocolError,
    TransportClosedError,
)
from .models import CallOutcome, CallRole, CallSession, CallState, CallStatus

__all__ = [
    "IceCandidateBuffer",
    "CallSessionError",
    "InvalidTransitionError",
    "MediaUnavailableError",
    "NegotiationRejectedError",
    "PeerConnectivityFailedError",
    "RelayProtocolError",
    "TransportClosedError",
    "CallOutcome",
    "CallRole",
    "CallSession",
    "CallState",
    "CallStatus",
]
