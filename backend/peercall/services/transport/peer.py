"""
Peer Transport Adapter

Thin wrapper around aiortc's RTCPeerConnection exposing the negotiation
handshake as plain dicts, so descriptions and candidates can travel
through the relay untouched.

Wire shapes:
    description: {"type": "offer"|"answer", "sdp": "..."}
    candidate:   {"candidate": "candidate:...", "sdpMid": "0", "sdpMLineIndex": 0}
"""
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiortc import (
    MediaStreamTrack,
    RTCConfiguration,
    RTCIceCandidate,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from peercall.config.settings import settings
from peercall.services.call.exceptions import RelayProtocolError

logger = logging.getLogger(__name__)

_CANDIDATE_PREFIX = "candidate:"


class ConnectivityState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CLOSED = "closed"


# =============================================================================
# Payload conversion
# =============================================================================

def description_to_dict(description: RTCSessionDescription) -> Dict[str, Any]:
    return {"type": description.type, "sdp": description.sdp}


def description_from_dict(payload: Dict[str, Any]) -> RTCSessionDescription:
    """
    Raises:
        RelayProtocolError: missing fields or unknown description type.
    """
    try:
        return RTCSessionDescription(sdp=payload["sdp"], type=payload["type"])
    except (KeyError, TypeError, ValueError) as e:
        raise RelayProtocolError(f"Invalid session description: {e}") from e


def candidate_to_dict(candidate: RTCIceCandidate) -> Dict[str, Any]:
    return {
        "candidate": _CANDIDATE_PREFIX + candidate_to_sdp(candidate),
        "sdpMid": candidate.sdpMid,
        "sdpMLineIndex": candidate.sdpMLineIndex,
    }


def candidate_from_dict(payload: Dict[str, Any]) -> Optional[RTCIceCandidate]:
    """
    Parse a relayed candidate. Returns None for the end-of-candidates marker.

    Raises:
        RelayProtocolError: the candidate line cannot be parsed.
    """
    line = payload.get("candidate") if isinstance(payload, dict) else None
    if not line:
        return None
    if line.startswith(_CANDIDATE_PREFIX):
        line = line[len(_CANDIDATE_PREFIX):]

    try:
        candidate = candidate_from_sdp(line)
    except (ValueError, IndexError, KeyError) as e:
        raise RelayProtocolError(f"Invalid ICE candidate '{line}': {e}") from e

    candidate.sdpMid = payload.get("sdpMid")
    candidate.sdpMLineIndex = payload.get("sdpMLineIndex")
    return candidate


def build_configuration(ice_servers: Optional[List[str]] = None) -> RTCConfiguration:
    urls = settings.STUN_SERVERS if ice_servers is None else ice_servers
    return RTCConfiguration(iceServers=[RTCIceServer(urls=[url]) for url in urls])


# =============================================================================
# Transport
# =============================================================================

class AiortcPeerTransport:
    """
    One peer connection per call session.

    Hooks (assigned by the session manager):
        on_local_candidate(candidate_dict)
        on_connectivity_change(ConnectivityState)
        on_remote_track(track)
    """

    def __init__(
        self,
        ice_servers: Optional[List[str]] = None,
        pc: Optional[RTCPeerConnection] = None,
    ):
        self.pc = pc or RTCPeerConnection(configuration=build_configuration(ice_servers))
        self._closed = False

        self.on_local_candidate: Optional[Callable[[Dict[str, Any]], Awaitable[None]]] = None
        self.on_connectivity_change: Optional[Callable[[ConnectivityState], Awaitable[None]]] = None
        self.on_remote_track: Optional[Callable[[MediaStreamTrack], Awaitable[None]]] = None

        self.pc.on("icecandidate", self._handle_ice_candidate)
        self.pc.on("connectionstatechange", self._handle_connection_state)
        self.pc.on("track", self._handle_track)

    # === Events ===

    async def _handle_ice_candidate(self, candidate: Optional[RTCIceCandidate]) -> None:
        # aiortc embeds most candidates in the local description; trickled ones land here
        if candidate is None or self.on_local_candidate is None:
            return
        await self.on_local_candidate(candidate_to_dict(candidate))

    async def _handle_connection_state(self) -> None:
        raw_state = self.pc.connectionState
        logger.info(f"[Transport] Connection state: {raw_state}")
        try:
            state = ConnectivityState(raw_state)
        except ValueError:
            # "new"
            return
        if self.on_connectivity_change:
            await self.on_connectivity_change(state)

    async def _handle_track(self, track: MediaStreamTrack) -> None:
        logger.info(f"[Transport] Remote {track.kind} track received")
        if self.on_remote_track:
            await self.on_remote_track(track)

    # === Negotiation ===

    def add_local_tracks(self, stream) -> None:
        for track in stream.tracks.values():
            self.pc.addTrack(track)

    async def create_offer(self) -> Dict[str, Any]:
        offer = await self.pc.createOffer()
        return description_to_dict(offer)

    async def create_answer(self, remote_offer: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if remote_offer is not None and self.pc.remoteDescription is None:
            await self.set_remote_description(remote_offer)
        answer = await self.pc.createAnswer()
        return description_to_dict(answer)

    async def set_local_description(self, description: Dict[str, Any]) -> Dict[str, Any]:
        """Apply and return the local description (including gathered candidates)."""
        await self.pc.setLocalDescription(description_from_dict(description))
        return description_to_dict(self.pc.localDescription)

    async def set_remote_description(self, description: Dict[str, Any]) -> None:
        await self.pc.setRemoteDescription(description_from_dict(description))

    async def add_ice_candidate(self, candidate: Dict[str, Any]) -> None:
        parsed = candidate_from_dict(candidate)
        if parsed is None:
            return
        await self.pc.addIceCandidate(parsed)

    # === Teardown ===

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.on_local_candidate = None
        self.on_connectivity_change = None
        self.on_remote_track = None
        await self.pc.close()
        logger.info("[Transport] Peer connection closed")


def create_peer_transport() -> AiortcPeerTransport:
    """Default PeerTransportFactory."""
    return AiortcPeerTransport()
