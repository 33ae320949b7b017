"""
peercall - two-party audio/video calls over a relayed signaling channel.

Client side: CallClient wires the signaling channel, media capture and
peer transport into a CallSessionManager.
Relay side: the FastAPI app in peercall.main routes negotiation messages
between connected identities.
"""

__version__ = "1.0.0"
