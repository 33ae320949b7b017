"""
Protocol definitions for the collaborators of CallSessionManager.

This module defines interfaces (Python Protocols) that allow:
- Swapping implementations (aiortc transport, devices, relay client)
- Testing the state machine with in-memory fakes
- Clear contracts between components

Usage:
    from peercall.services.protocols import PeerTransportProtocol

    async def negotiate(transport: PeerTransportProtocol):
        offer = await transport.create_offer()
        applied = await transport.set_local_description(offer)
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from peercall.schemas.signaling import SignalingModel


class SignalingChannelProtocol(Protocol):
    """
    Interface for the relay channel as seen by the session manager.
    """

    @property
    def is_open(self) -> bool:
        ...

    async def send(self, message: SignalingModel) -> None:
        """
        Send one message to the relay.

        Raises:
            TransportClosedError: if the channel is not open. Nothing is queued.
        """
        ...


class MediaCaptureProtocol(Protocol):
    """
    Interface for local camera/microphone acquisition.
    """

    async def acquire(self, constraints: Any) -> Any:
        """
        Open the requested local sources.

        Args:
            constraints: MediaConstraints (which kinds to capture)

        Returns:
            LocalStream owning one track per captured kind

        Raises:
            MediaUnavailableError: device denied, absent or unconfigured
        """
        ...

    def release(self, stream: Any) -> None:
        """Stop every track of the stream. Safe on None or an already released stream."""
        ...

    def set_track_enabled(self, stream: Any, kind: str, enabled: bool) -> bool:
        """Mute/unmute one kind without touching the transport. Returns False if absent."""
        ...


class PeerTransportProtocol(Protocol):
    """
    Interface for the peer-to-peer negotiation handshake.

    Descriptions and candidates are plain dicts and opaque to callers.
    Event hooks are assigned by the owner after creation:
        on_local_candidate(candidate) -> awaitable
        on_connectivity_change(state: ConnectivityState) -> awaitable
        on_remote_track(track) -> awaitable
    """

    on_local_candidate: Optional[Callable[[Dict[str, Any]], Awaitable[None]]]
    on_connectivity_change: Optional[Callable[[Any], Awaitable[None]]]
    on_remote_track: Optional[Callable[[Any], Awaitable[None]]]

    def add_local_tracks(self, stream: Any) -> None:
        ...

    async def create_offer(self) -> Dict[str, Any]:
        ...

    async def create_answer(self, remote_offer: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        ...

    async def set_local_description(self, description: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a local description; returns the description as applied."""
        ...

    async def set_remote_description(self, description: Dict[str, Any]) -> None:
        ...

    async def add_ice_candidate(self, candidate: Dict[str, Any]) -> None:
        ...

    async def close(self) -> None:
        """Close the transport. Idempotent."""
        ...


# create() of the Peer Transport Adapter
PeerTransportFactory = Callable[[], PeerTransportProtocol]
