"""
WebSocket Module

Provides the call signaling relay endpoint.
"""
from .router import router

__all__ = ["router"]
