"""
Signaling Channel

Client side of the relay connection:
- One long-lived WebSocket per identity (identity is a URL parameter)
- In-order delivery of parsed SignalingMessages to an async callback
- Fail-fast sends while disconnected (nothing is queued)
- Automatic reconnection with bounded exponential backoff after an
  unexpected closure; close() cancels it

Every successful open, first or after a reconnect, requests a fresh
presence snapshot.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from peercall.config.constants import RELAY_IDENTITY_PARAM
from peercall.config.settings import settings
from peercall.schemas.signaling import (
    GetOnlineUsers,
    SignalingModel,
    encode_message,
    parse_message,
)
from peercall.services.call.exceptions import RelayProtocolError, TransportClosedError
from peercall.services.metrics import reconnect_attempts

from .backoff import ReconnectBackoff

logger = logging.getLogger(__name__)

MessageHandler = Callable[[SignalingModel], Awaitable[None]]
OpenHandler = Callable[[bool], Awaitable[None]]
LostHandler = Callable[[], Awaitable[None]]


class SignalingChannel:
    """
    Duplex, message-oriented connection to the relay service.

    Hooks (assign before connect):
        on_message(message): awaited once per inbound message, in arrival order
        on_open(reconnected): awaited after each successful open, before any
            message of that connection is delivered
        on_lost(): awaited when the connection drops unexpectedly
    """

    def __init__(
        self,
        url: Optional[str] = None,
        backoff: Optional[ReconnectBackoff] = None,
        connector: Optional[Callable[[str], Awaitable]] = None,
    ):
        self.url = url or settings.RELAY_WS_URL
        self._backoff = backoff or ReconnectBackoff(
            base=settings.RECONNECT_BASE_DELAY_SEC,
            cap=settings.RECONNECT_MAX_DELAY_SEC,
            stable_after=settings.RECONNECT_STABLE_AFTER_SEC,
        )
        self._connector = connector or websockets.connect

        self.identity: Optional[str] = None
        self._ws = None
        self._open = False
        self._closing = False
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

        self.on_message: Optional[MessageHandler] = None
        self.on_open: Optional[OpenHandler] = None
        self.on_lost: Optional[LostHandler] = None

    # === Connection lifecycle ===

    @property
    def is_open(self) -> bool:
        return self._open and self._ws is not None

    @property
    def backoff(self) -> ReconnectBackoff:
        return self._backoff

    def connection_url(self) -> str:
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode({RELAY_IDENTITY_PARAM: self.identity})}"

    async def connect(self, identity: str) -> "SignalingChannel":
        """
        Open the relay connection for an identity.

        Raises:
            TransportClosedError: the relay could not be reached.
        """
        if not identity:
            raise ValueError("identity is required")
        self.identity = identity
        self._closing = False
        await self._open_connection(reconnected=False)
        return self

    async def close(self) -> None:
        """Intentional close: no reconnection afterwards."""
        self._closing = True

        reconnect_task = self._reconnect_task
        self._reconnect_task = None
        if reconnect_task and not reconnect_task.done() and reconnect_task is not asyncio.current_task():
            reconnect_task.cancel()
            await asyncio.gather(reconnect_task, return_exceptions=True)

        ws = self._ws
        self._ws = None
        self._open = False
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"[Signaling] Error while closing socket: {e}")

        reader_task = self._reader_task
        self._reader_task = None
        if reader_task and not reader_task.done() and reader_task is not asyncio.current_task():
            reader_task.cancel()
            await asyncio.gather(reader_task, return_exceptions=True)

        logger.info(f"[Signaling] Channel closed for {self.identity}")

    async def _open_connection(self, reconnected: bool) -> None:
        url = self.connection_url()
        try:
            ws = await self._connector(url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise TransportClosedError(f"Relay unreachable at {self.url}: {e}") from e

        if self._closing:
            await ws.close()
            raise TransportClosedError("Channel closed while connecting")

        self._ws = ws
        self._open = True
        self._backoff.mark_connected()
        logger.info(f"[Signaling] Connected to relay as {self.identity} (reconnected={reconnected})")

        if self.on_open:
            try:
                await self.on_open(reconnected)
            except Exception as e:
                logger.error(f"[Signaling] on_open handler failed: {e}", exc_info=True)

        try:
            await self.send(GetOnlineUsers())
        except TransportClosedError as e:
            logger.warning(f"[Signaling] Could not request presence snapshot: {e}")

        self._reader_task = asyncio.create_task(self._read_loop(ws))

    # === Receive ===

    async def _read_loop(self, ws) -> None:
        try:
            async for raw in ws:
                try:
                    message = parse_message(raw)
                except RelayProtocolError as e:
                    logger.warning(f"[Signaling] Dropping malformed relay message: {e}")
                    continue

                if self.on_message is None:
                    continue
                try:
                    await self.on_message(message)
                except Exception as e:
                    logger.error(f"[Signaling] Handler failed for '{message.type}': {e}", exc_info=True)

        except ConnectionClosed as e:
            logger.info(f"[Signaling] Relay connection closed: {e}")
        except Exception as e:
            logger.error(f"[Signaling] Error in receive loop: {e}")
        finally:
            if self._ws is ws:
                await self._handle_lost()

    async def _handle_lost(self) -> None:
        self._ws = None
        self._open = False
        self._backoff.mark_disconnected()

        if self._closing:
            return

        logger.warning(f"[Signaling] Relay connection lost for {self.identity}")
        if self.on_lost:
            try:
                await self.on_lost()
            except Exception as e:
                logger.error(f"[Signaling] on_lost handler failed: {e}")
        self.schedule_reconnect()

    # === Send ===

    async def send(self, message: SignalingModel) -> None:
        """
        Send one message.

        Raises:
            TransportClosedError: the channel is not open; nothing is queued.
        """
        ws = self._ws
        if not self._open or ws is None:
            raise TransportClosedError(f"Relay channel is not open, cannot send '{message.type}'")

        try:
            await ws.send(encode_message(message))
        except ConnectionClosed as e:
            self.schedule_reconnect()
            raise TransportClosedError(f"Relay channel closed while sending '{message.type}'") from e

        logger.debug(f"[Signaling] Sent {message.type}")

    # === Reconnection ===

    def schedule_reconnect(self) -> None:
        """Start the backoff loop unless closing or already running."""
        if self._closing or not self.identity:
            return
        if self._reconnect_task and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        while not self._closing and self.identity:
            delay = self._backoff.next_delay()
            logger.info(f"[Signaling] Reconnecting in {delay:.1f}s (attempt {self._backoff.attempt})")
            await asyncio.sleep(delay)
            if self._closing:
                return

            try:
                await self._open_connection(reconnected=True)
            except TransportClosedError as e:
                reconnect_attempts.labels(result="failure").inc()
                logger.warning(f"[Signaling] Reconnect failed: {e}")
                continue

            reconnect_attempts.labels(result="success").inc()
            if self.is_open:
                return
