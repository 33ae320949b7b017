"""
Application-wide constants for signaling and call handling.

This file centralizes values shared by the relay service and the client
so both sides agree on them.

Note: Environment-dependent settings (URLs, devices, delays) belong in settings.py.
This file is for protocol-level values that do not change between environments.
"""

# ==============================================================================
# RELAY ENDPOINT
# ==============================================================================

# WebSocket path of the relay service
RELAY_WS_PATH: str = "/call-signaling"

# Query parameter carrying the authenticated identity
RELAY_IDENTITY_PARAM: str = "userId"

# ==============================================================================
# WEBSOCKET CLOSE CODES
# ==============================================================================

# Missing or invalid identity on connect
WS_CLOSE_POLICY_VIOLATION: int = 1008

# Connection replaced by a newer one for the same identity
WS_CLOSE_SUPERSEDED: int = 4000

# ==============================================================================
# CALL HANDLING
# ==============================================================================

# Reason relayed to a caller when the callee already has a session
CALL_BUSY_REASON: str = "busy"

# Media kinds a local stream can carry
MEDIA_KIND_AUDIO: str = "audio"
MEDIA_KIND_VIDEO: str = "video"
MEDIA_KINDS: tuple = (MEDIA_KIND_AUDIO, MEDIA_KIND_VIDEO)
