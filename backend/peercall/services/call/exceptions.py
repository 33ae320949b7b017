"""
Call Session Exceptions

Error taxonomy shared by the call session manager and its collaborators.
Collaborators raise these; CallSessionManager catches them and reduces
them to a user-visible CallStatus.
"""


class CallSessionError(Exception):
    """Base exception for call session errors"""
    pass


class MediaUnavailableError(CallSessionError):
    """Raised when camera/microphone is denied, absent or unconfigured"""
    pass


class TransportClosedError(CallSessionError):
    """Raised when the relay channel is not open at send time"""
    pass


class NegotiationRejectedError(CallSessionError):
    """Raised when the remote party is busy, offline or declined"""
    pass


class PeerConnectivityFailedError(CallSessionError):
    """Raised when the peer transport reports failed/disconnected"""
    pass


class RelayProtocolError(CallSessionError):
    """Raised for malformed or unexpected relay messages"""
    pass


class InvalidTransitionError(CallSessionError):
    """Raised when a session is moved along an edge the state table lacks"""
    pass
