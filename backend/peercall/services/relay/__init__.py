"""
Relay Module

Server-side handling of one relay WebSocket connection.
"""
from .session import RelaySession

__all__ = ["RelaySession"]
