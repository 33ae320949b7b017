"""
Presence Module

Relay-side registry of connected identities.

Usage:
    from peercall.services.presence import presence_registry

    await presence_registry.send_to_user("bob", {"type": "call-end", "fromUserId": "alice"})
"""
from .models import RelayConnection
from .registry import PresenceRegistry

# Singleton instance
presence_registry = PresenceRegistry()

__all__ = ["PresenceRegistry", "RelayConnection", "presence_registry"]
