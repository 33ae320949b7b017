"""
Call Session Manager

Single owner of the local identity's CallSession. Handles:
- User operations (start/accept/reject/end call, mute)
- Inbound relay messages, dispatched by message model
- Peer transport connectivity events
- Teardown through one routine reachable from every terminal transition

State table:
    Idle       --start_call-->          Calling
    Idle       --call-offer-->          Incoming
    Calling    --call-answer-->         Connecting
    Incoming   --accept_call-->         Connecting
    Incoming   --reject_call-->         Idle
    Connecting --transport connected--> Active
    any call   --end/call-end/failed--> Idle
    any        --call-error-->          Error --(delay)--> Idle

Every await in a negotiation step is followed by a check that the session
is still current; results of a step whose session was torn down meanwhile
are discarded.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiortc.contrib.media import MediaBlackhole

from peercall.config.constants import CALL_BUSY_REASON, MEDIA_KINDS
from peercall.config.settings import settings
from peercall.schemas.signaling import (
    CallAnswer,
    CallEnd,
    CallError,
    CallOffer,
    ConnectionEstablished,
    GetOnlineUsers,
    IceCandidate,
    OnlineUsers,
    PresenceEntry,
    RoutedMessage,
    SignalingModel,
)
from peercall.services.media.capture import MediaConstraints
from peercall.services.metrics import session_transitions
from peercall.services.protocols import (
    MediaCaptureProtocol,
    PeerTransportFactory,
    SignalingChannelProtocol,
)
from peercall.services.transport.peer import ConnectivityState

from .exceptions import (
    CallSessionError,
    NegotiationRejectedError,
    PeerConnectivityFailedError,
    TransportClosedError,
)
from .models import CallOutcome, CallRole, CallSession, CallState, CallStatus

logger = logging.getLogger(__name__)

_STATUS_BY_STATE: Dict[CallState, CallStatus] = {
    CallState.CALLING: CallStatus.CALLING,
    CallState.INCOMING: CallStatus.INCOMING,
    CallState.CONNECTING: CallStatus.CONNECTING,
    CallState.ACTIVE: CallStatus.ACTIVE,
}


class _SessionDiscarded(Exception):
    """The session was torn down while a negotiation step was awaiting."""


class CallSessionManager:
    """
    Orchestrates one call session at a time for a local identity.

    User operations return a CallOutcome; no collaborator exception escapes.
    """

    def __init__(
        self,
        local_user_id: str,
        channel: SignalingChannelProtocol,
        media: MediaCaptureProtocol,
        transport_factory: PeerTransportFactory,
        constraints: Optional[MediaConstraints] = None,
        error_revert_delay: Optional[float] = None,
        on_status: Optional[Callable[[CallStatus], None]] = None,
        on_presence: Optional[Callable[[List[PresenceEntry]], None]] = None,
        on_remote_track: Optional[Callable[[Any], Awaitable[None]]] = None,
    ):
        self.local_user_id = local_user_id
        self._channel = channel
        self._media = media
        self._transport_factory = transport_factory
        self._constraints = constraints or MediaConstraints()
        self._error_revert_delay = (
            settings.CALL_ERROR_REVERT_SEC if error_revert_delay is None else error_revert_delay
        )
        self.on_status = on_status
        self.on_presence = on_presence
        # Remote tracks go here; without a consumer they are drained by a MediaBlackhole
        self.on_remote_track = on_remote_track

        self._session: Optional[CallSession] = None
        self._last_error: Optional[CallSessionError] = None
        self._error_active = False
        self._revert_handle: Optional[asyncio.TimerHandle] = None
        self._last_status: Optional[CallStatus] = None

        self._online_users: List[PresenceEntry] = []
        self.relay_username: Optional[str] = None

        self._handlers: Dict[type, Callable[[Any], Awaitable[None]]] = {
            ConnectionEstablished: self._on_connection_established,
            CallOffer: self._on_call_offer,
            CallAnswer: self._on_call_answer,
            IceCandidate: self._on_ice_candidate,
            CallEnd: self._on_call_end,
            CallError: self._on_call_error,
            GetOnlineUsers: self._on_get_online_users,
            OnlineUsers: self._on_online_users,
        }

    # === Queries ===

    @property
    def session(self) -> Optional[CallSession]:
        return self._session

    @property
    def state(self) -> CallState:
        if self._session is not None:
            return self._session.state
        if self._error_active:
            return CallState.ERROR
        return CallState.IDLE

    @property
    def status(self) -> CallStatus:
        if self._session is not None:
            return _STATUS_BY_STATE[self._session.state]
        if self._error_active:
            return CallStatus.ERROR
        return CallStatus.CONNECTED if self._channel.is_open else CallStatus.DISCONNECTED

    @property
    def last_error(self) -> Optional[CallSessionError]:
        return self._last_error

    @property
    def online_users(self) -> List[PresenceEntry]:
        return list(self._online_users)

    @property
    def handled_message_types(self) -> tuple:
        return tuple(self._handlers)

    # === User operations ===

    async def start_call(self, remote_user_id: str) -> CallOutcome:
        """Idle -> Calling: acquire media, create transport, send offer."""
        if not remote_user_id or remote_user_id == self.local_user_id:
            logger.warning(f"[CallSession] Invalid call target: {remote_user_id!r}")
            return CallOutcome.INVALID_TARGET

        if self.state != CallState.IDLE:
            logger.warning(f"[CallSession] start_call({remote_user_id}) rejected in state {self.state.value}")
            return CallOutcome.SESSION_BUSY

        session = CallSession(self.local_user_id, remote_user_id, CallRole.CALLER)
        self._attach(session)

        try:
            await self._prepare_media_and_transport(session)

            offer = await session.transport.create_offer()
            self._ensure_current(session)
            applied = await session.transport.set_local_description(offer)
            self._ensure_current(session)
            session.local_description = applied

            # The remote side may learn of the call even if the send then fails
            session.remote_aware = True
            await self._channel.send(CallOffer(target_user_id=session.remote_user_id, offer=applied))
            self._ensure_current(session)
            await session.candidates.mark_local_description_set()

        except _SessionDiscarded:
            logger.info(f"[CallSession] Call to {remote_user_id} cancelled during setup")
            return CallOutcome.CANCELLED
        except CallSessionError as e:
            await self._fail(session, e)
            return CallOutcome.FAILED
        except Exception as e:
            logger.error(f"[CallSession] Unexpected error calling {remote_user_id}: {e}", exc_info=True)
            await self._fail(session, CallSessionError(str(e)))
            return CallOutcome.FAILED

        logger.info(f"[CallSession] Offer sent to {session.remote_user_id}")
        return CallOutcome.OK

    async def accept_call(self) -> CallOutcome:
        """Incoming -> Connecting: acquire media, apply buffered offer, send answer."""
        session = self._session
        if session is None:
            return CallOutcome.NO_INCOMING_CALL
        if session.state != CallState.INCOMING or session.pending_offer is None:
            logger.warning(f"[CallSession] accept_call ignored in state {session.state.value}")
            return CallOutcome.SESSION_BUSY

        offer = session.pending_offer
        self._transition(session, CallState.CONNECTING)

        try:
            await self._prepare_media_and_transport(session)

            await session.transport.set_remote_description(offer)
            self._ensure_current(session)
            session.remote_description = offer
            session.pending_offer = None
            await session.candidates.flush(session.transport.add_ice_candidate)
            self._ensure_current(session)

            answer = await session.transport.create_answer(offer)
            self._ensure_current(session)
            applied = await session.transport.set_local_description(answer)
            self._ensure_current(session)
            session.local_description = applied

            await self._channel.send(CallAnswer(target_user_id=session.remote_user_id, answer=applied))
            self._ensure_current(session)
            await session.candidates.mark_local_description_set()

        except _SessionDiscarded:
            logger.info("[CallSession] Incoming call ended during accept")
            return CallOutcome.CANCELLED
        except CallSessionError as e:
            await self._fail(session, e)
            return CallOutcome.FAILED
        except Exception as e:
            logger.error(f"[CallSession] Unexpected error accepting call: {e}", exc_info=True)
            await self._fail(session, CallSessionError(str(e)))
            return CallOutcome.FAILED

        logger.info(f"[CallSession] Answer sent to {session.remote_user_id}")
        return CallOutcome.OK

    async def reject_call(self) -> CallOutcome:
        """Incoming -> Idle, notifying the caller."""
        session = self._session
        if session is None or session.state != CallState.INCOMING:
            return CallOutcome.NO_INCOMING_CALL

        logger.info(f"[CallSession] Rejecting call from {session.remote_user_id}")
        await self._teardown(session, notify_remote=True)
        return CallOutcome.OK

    async def end_call(self) -> None:
        """Hang up from any state. Idempotent."""
        session = self._session
        if session is None:
            if self._error_active:
                self._clear_error()
                self._emit_status()
            return
        await self._teardown(session, notify_remote=True)

    def set_track_enabled(self, kind: str, enabled: bool) -> bool:
        if kind not in MEDIA_KINDS:
            logger.warning(f"[CallSession] Unknown media kind {kind!r}")
            return False
        session = self._session
        if session is None or session.local_stream is None:
            return False
        return self._media.set_track_enabled(session.local_stream, kind, enabled)

    # === Relay channel events ===

    async def handle_message(self, message: SignalingModel) -> None:
        """Dispatch one inbound relay message."""
        handler = self._handlers.get(type(message))
        if handler is None:
            logger.warning(f"[CallSession] No handler for {type(message).__name__}")
            return
        await handler(message)

    async def handle_channel_open(self, reconnected: bool) -> None:
        # A reconnect invalidates any negotiation context
        session = self._session
        if reconnected and session is not None:
            logger.warning(f"[CallSession] Relay reconnected, tearing down {session!r}")
            await self._teardown(session, notify_remote=True)
            return
        self._emit_status()

    async def handle_channel_lost(self) -> None:
        logger.warning("[CallSession] Relay channel lost")
        self._emit_status()

    # === Inbound message handlers ===

    async def _on_connection_established(self, message: ConnectionEstablished) -> None:
        self.relay_username = message.username
        logger.info(f"[CallSession] Relay greeted {message.username}")

    async def _on_online_users(self, message: OnlineUsers) -> None:
        self._online_users = list(message.users)
        logger.debug(f"[CallSession] Presence snapshot: {len(self._online_users)} user(s)")
        if self.on_presence:
            self.on_presence(self.online_users)

    async def _on_get_online_users(self, message: GetOnlineUsers) -> None:
        logger.warning("[CallSession] Unexpected get-online-users from relay, ignoring")

    async def _on_call_offer(self, message: CallOffer) -> None:
        caller = message.from_user_id
        if not caller:
            logger.warning("[CallSession] Dropping call-offer without sender")
            return

        if self.state != CallState.IDLE:
            logger.info(f"[CallSession] Busy ({self.state.value}), refusing call from {caller}")
            try:
                await self._channel.send(CallError(target_user_id=caller, reason=CALL_BUSY_REASON))
            except TransportClosedError as e:
                logger.warning(f"[CallSession] Could not send busy to {caller}: {e}")
            return

        session = CallSession(self.local_user_id, caller, CallRole.CALLEE, pending_offer=message.offer)
        self._attach(session)
        logger.info(f"[CallSession] Incoming call from {caller}")

    async def _on_call_answer(self, message: CallAnswer) -> None:
        session = self._session
        if session is None or not self._from_remote(session, message):
            logger.debug("[CallSession] Dropping call-answer for no matching session")
            return
        if (
            session.state != CallState.CALLING
            or session.transport is None
            or session.local_description is None
            or session.remote_description is not None
        ):
            logger.warning(f"[CallSession] Unexpected call-answer in state {session.state.value}")
            return

        self._transition(session, CallState.CONNECTING)
        try:
            await session.transport.set_remote_description(message.answer)
            self._ensure_current(session)
            session.remote_description = message.answer
            await session.candidates.flush(session.transport.add_ice_candidate)
        except _SessionDiscarded:
            return
        except CallSessionError as e:
            await self._fail(session, e)
        except Exception as e:
            logger.error(f"[CallSession] Unexpected error applying answer: {e}", exc_info=True)
            await self._fail(session, CallSessionError(str(e)))

    async def _on_ice_candidate(self, message: IceCandidate) -> None:
        session = self._session
        if session is None or not self._from_remote(session, message):
            logger.debug("[CallSession] Dropping ice-candidate for no matching session")
            return
        await session.candidates.offer_remote(message.candidate)

    async def _on_call_end(self, message: CallEnd) -> None:
        session = self._session
        if session is None:
            return
        if not self._from_remote(session, message):
            logger.info(f"[CallSession] Ignoring call-end from {message.from_user_id}")
            return
        logger.info(f"[CallSession] {session.remote_user_id} ended the call")
        await self._teardown(session, notify_remote=False)

    async def _on_call_error(self, message: CallError) -> None:
        session = self._session
        if session is not None and not self._from_remote(session, message):
            logger.info(f"[CallSession] Ignoring call-error from {message.from_user_id}")
            return

        reason = message.reason or "Call failed"
        logger.warning(f"[CallSession] Call error: {reason}")
        self._last_error = NegotiationRejectedError(reason)
        self._enter_error()
        if session is not None:
            await self._teardown(session, notify_remote=False)
        else:
            self._emit_status()

    # === Transport events ===

    async def _on_local_candidate(self, session: CallSession, candidate: Dict[str, Any]) -> None:
        if session is not self._session:
            return
        await session.candidates.offer_local(candidate)

    async def _send_local_candidate(self, session: CallSession, candidate: Dict[str, Any]) -> None:
        if session is not self._session:
            return
        try:
            await self._channel.send(IceCandidate(target_user_id=session.remote_user_id, candidate=candidate))
        except TransportClosedError as e:
            logger.warning(f"[CallSession] Dropped local candidate: {e}")

    async def _on_connectivity_change(self, session: CallSession, state: ConnectivityState) -> None:
        if session is not self._session:
            logger.debug(f"[CallSession] Ignoring {state.value} from a finished session")
            return

        if state == ConnectivityState.CONNECTED:
            if session.state == CallState.CONNECTING:
                self._transition(session, CallState.ACTIVE)
                logger.info(f"[CallSession] Call with {session.remote_user_id} is active")
        elif state in (ConnectivityState.FAILED, ConnectivityState.DISCONNECTED):
            self._last_error = PeerConnectivityFailedError(f"Peer transport {state.value}")
            logger.warning(f"[CallSession] Peer transport {state.value}, ending call")
            await self._teardown(session, notify_remote=True)

    async def _on_remote_track(self, session: CallSession, track) -> None:
        if session is not self._session:
            track.stop()
            return
        if self.on_remote_track is not None:
            await self.on_remote_track(track)
            return

        # Unread remote frames queue up without bound inside aiortc
        if session.remote_sink is None:
            session.remote_sink = MediaBlackhole()
            session.resources.push_async_callback(session.remote_sink.stop)
        session.remote_sink.addTrack(track)
        await session.remote_sink.start()

    # === Session plumbing ===

    async def _prepare_media_and_transport(self, session: CallSession) -> None:
        """Acquire media and a transport, registering both for release on teardown."""
        stream = await self._media.acquire(self._constraints)
        if session is not self._session:
            self._media.release(stream)
            raise _SessionDiscarded()
        session.local_stream = stream
        session.resources.callback(self._media.release, stream)

        transport = self._transport_factory()
        session.transport = transport
        session.resources.push_async_callback(transport.close)

        async def on_local_candidate(candidate):
            await self._on_local_candidate(session, candidate)

        async def on_connectivity_change(state):
            await self._on_connectivity_change(session, state)

        async def send_local_candidate(candidate):
            await self._send_local_candidate(session, candidate)

        async def on_remote_track(track):
            await self._on_remote_track(session, track)

        transport.on_local_candidate = on_local_candidate
        transport.on_connectivity_change = on_connectivity_change
        transport.on_remote_track = on_remote_track
        session.candidates.attach_sender(send_local_candidate)

        transport.add_local_tracks(stream)

    def _ensure_current(self, session: CallSession) -> None:
        if session is not self._session:
            raise _SessionDiscarded()

    @staticmethod
    def _from_remote(session: CallSession, message: RoutedMessage) -> bool:
        return message.from_user_id is None or message.from_user_id == session.remote_user_id

    def _attach(self, session: CallSession) -> None:
        self._session = session
        session_transitions.labels(state=session.state.value).inc()
        logger.info(f"[CallSession] New session {session!r}")
        self._emit_status()

    def _transition(self, session: CallSession, new_state: CallState) -> None:
        previous = session.state
        session.transition(new_state)
        session_transitions.labels(state=new_state.value).inc()
        logger.debug(f"[CallSession] {session.session_id[:8]}: {previous.value} -> {new_state.value}")
        if session is self._session:
            self._emit_status()

    async def _fail(self, session: CallSession, error: CallSessionError) -> None:
        if session is not self._session:
            return
        logger.error(f"[CallSession] {type(error).__name__}: {error}")
        self._last_error = error
        self._enter_error()
        await self._teardown(session, notify_remote=True)

    async def _teardown(self, session: CallSession, notify_remote: bool) -> None:
        """
        The single release path: detach, notify the remote (optionally),
        close transport, release media, clear candidates.
        """
        if session is not self._session:
            return
        # Detached before any await so concurrent callers see no session
        self._session = None
        self._transition(session, CallState.ENDING)

        try:
            if notify_remote and session.remote_aware:
                try:
                    await self._channel.send(CallEnd(target_user_id=session.remote_user_id))
                except TransportClosedError as e:
                    logger.warning(f"[CallSession] Could not notify {session.remote_user_id}: {e}")
        finally:
            try:
                await session.close()
            except Exception as e:
                logger.error(f"[CallSession] Error releasing resources of {session!r}: {e}")
            self._transition(session, CallState.IDLE)
            logger.info(f"[CallSession] Session {session.session_id[:8]} with {session.remote_user_id} ended")
            self._emit_status()

    # === Error status ===

    def _enter_error(self) -> None:
        self._cancel_revert()
        self._error_active = True
        loop = asyncio.get_running_loop()
        self._revert_handle = loop.call_later(self._error_revert_delay, self._revert_error)

    def _revert_error(self) -> None:
        self._revert_handle = None
        if not self._error_active:
            return
        self._error_active = False
        logger.info("[CallSession] Error cleared")
        self._emit_status()

    def _clear_error(self) -> None:
        self._cancel_revert()
        self._error_active = False

    def _cancel_revert(self) -> None:
        if self._revert_handle is not None:
            self._revert_handle.cancel()
            self._revert_handle = None

    def _emit_status(self) -> None:
        status = self.status
        if status == self._last_status:
            return
        self._last_status = status
        logger.info(f"[CallSession] Status: {status.value}")
        if self.on_status:
            try:
                self.on_status(status)
            except Exception as e:
                logger.error(f"[CallSession] Status callback failed: {e}")
