"""
Signaling Module

Client-side relay connection with automatic reconnection.
"""
from .backoff import ReconnectBackoff
from .channel import SignalingChannel

__all__ = ["ReconnectBackoff", "SignalingChannel"]
