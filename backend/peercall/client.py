"""
Peercall Client

Composition of the client-side components for one local identity:
SignalingChannel + MediaCapture + peer transport factory, owned by a
CallSessionManager.

Console usage:
    python -m peercall.client --user alice --call bob
    python -m peercall.client --user bob --accept
"""
import argparse
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from peercall.config.settings import settings
from peercall.schemas.signaling import PresenceEntry
from peercall.services.call.exceptions import TransportClosedError
from peercall.services.call.manager import CallSessionManager
from peercall.services.call.models import CallOutcome, CallStatus
from peercall.services.media import MediaCapture, MediaConstraints
from peercall.services.metrics import start_metrics_server
from peercall.services.protocols import PeerTransportFactory
from peercall.services.signaling import SignalingChannel
from peercall.services.transport import create_peer_transport

logger = logging.getLogger(__name__)


class CallClient:
    """One local identity connected to the relay."""

    def __init__(
        self,
        user_id: str,
        relay_url: Optional[str] = None,
        channel: Optional[SignalingChannel] = None,
        media: Optional[MediaCapture] = None,
        transport_factory: Optional[PeerTransportFactory] = None,
        constraints: Optional[MediaConstraints] = None,
        on_status: Optional[Callable[[CallStatus], None]] = None,
        on_presence: Optional[Callable[[List[PresenceEntry]], None]] = None,
        on_remote_track: Optional[Callable[[Any], Awaitable[None]]] = None,
    ):
        self.user_id = user_id
        self.channel = channel or SignalingChannel(url=relay_url)
        self.media = media or MediaCapture()
        self.manager = CallSessionManager(
            user_id,
            self.channel,
            self.media,
            transport_factory or create_peer_transport,
            constraints=constraints,
            on_status=on_status,
            on_presence=on_presence,
            on_remote_track=on_remote_track,
        )

        self.channel.on_message = self.manager.handle_message
        self.channel.on_open = self.manager.handle_channel_open
        self.channel.on_lost = self.manager.handle_channel_lost

    async def start(self) -> bool:
        """Connect to the relay. Returns False if it is unreachable (retrying in background)."""
        try:
            await self.channel.connect(self.user_id)
            return True
        except TransportClosedError as e:
            logger.warning(f"[Client] {e}, retrying in background")
            self.channel.schedule_reconnect()
            return False

    async def stop(self) -> None:
        await self.manager.end_call()
        await self.channel.close()

    # === Call operations ===

    async def start_call(self, remote_user_id: str) -> CallOutcome:
        return await self.manager.start_call(remote_user_id)

    async def accept_call(self) -> CallOutcome:
        return await self.manager.accept_call()

    async def reject_call(self) -> CallOutcome:
        return await self.manager.reject_call()

    async def end_call(self) -> None:
        await self.manager.end_call()

    def set_track_enabled(self, kind: str, enabled: bool) -> bool:
        return self.manager.set_track_enabled(kind, enabled)

    @property
    def status(self) -> CallStatus:
        return self.manager.status


def _parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Peercall console client")
    parser.add_argument("--user", required=True, help="Local identity")
    parser.add_argument("--relay", default=settings.RELAY_WS_URL, help="Relay WebSocket URL")
    parser.add_argument("--call", metavar="USER_ID", help="Call this identity once connected")
    parser.add_argument("--accept", action="store_true", help="Accept incoming calls automatically")
    parser.add_argument("--audio-only", action="store_true", help="Do not capture video")
    parser.add_argument("--metrics-port", type=int, help="Expose Prometheus metrics on this port")
    return parser.parse_args(argv)


async def _run(args) -> None:
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    client: Optional[CallClient] = None

    def on_status(status: CallStatus) -> None:
        logger.info(f"📞 {args.user}: {status.value}")
        if status == CallStatus.INCOMING and args.accept:
            loop.create_task(client.accept_call())

    def on_presence(users: List[PresenceEntry]) -> None:
        names = ", ".join(u.user_id for u in users if u.user_id != args.user) or "nobody"
        logger.info(f"👥 Online: {names}")

    client = CallClient(
        args.user,
        relay_url=args.relay,
        constraints=MediaConstraints(audio=True, video=not args.audio_only),
        on_status=on_status,
        on_presence=on_presence,
    )

    await client.start()
    if args.call:
        outcome = await client.start_call(args.call)
        logger.info(f"Call to {args.call}: {outcome.value}")

    try:
        await stop_event.wait()
    finally:
        await client.stop()


def main(argv=None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    if args.metrics_port:
        start_metrics_server(args.metrics_port)

    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("🛑 Client stopped")


if __name__ == "__main__":
    main()
