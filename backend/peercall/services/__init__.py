"""
Services package.

Client side: call, signaling, media, transport.
Relay side: presence, relay.
"""
