"""
Ice Candidate Buffer

Holds network-path candidates until both sides of the negotiation are
ready for them:
- local candidates are relayed only after the local description is set
- remote candidates are applied only after the remote description is set,
  strictly in arrival order

Candidates can arrive before either description exists; applying them early
loses them, so buffering here is required for correctness.
"""
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

Candidate = Dict[str, Any]
CandidateSink = Callable[[Candidate], Awaitable[None]]


class IceCandidateBuffer:
    """Per-session candidate queues for both directions."""

    def __init__(self, send_local: Optional[CandidateSink] = None):
        self._send_local = send_local
        self._apply_remote: Optional[CandidateSink] = None

        self._pending_local: Deque[Candidate] = deque()
        self._pending_remote: Deque[Candidate] = deque()

        self._local_ready = False
        self._remote_ready = False
        self._flushed = False
        self._cleared = False

    # === Local direction ===

    def attach_sender(self, send_local: CandidateSink) -> None:
        self._send_local = send_local

    async def offer_local(self, candidate: Candidate) -> None:
        """Relay a locally gathered candidate, or queue it until the local description is set."""
        if self._cleared:
            return
        if self._local_ready and self._send_local:
            await self._send_local(candidate)
        else:
            self._pending_local.append(candidate)

    async def mark_local_description_set(self) -> None:
        """Relay every queued local candidate in order; later ones go straight out."""
        if self._cleared or self._local_ready:
            return
        self._local_ready = True
        while self._pending_local and not self._cleared:
            candidate = self._pending_local.popleft()
            if self._send_local:
                await self._send_local(candidate)

    # === Remote direction ===

    async def offer_remote(self, candidate: Candidate) -> None:
        """Apply a received candidate, or buffer it until the remote description is applied."""
        if self._cleared:
            return
        if self._remote_ready and self._apply_remote:
            await self._apply(candidate)
        else:
            self._pending_remote.append(candidate)

    async def flush(self, apply_remote: CandidateSink) -> int:
        """
        Apply every buffered remote candidate in arrival order, then clear the buffer.

        Must be called exactly once, immediately after the remote description
        has been applied. Candidates offered while the flush is in progress
        are appended and applied in the same pass.

        Returns:
            Number of candidates taken from the buffer.
        """
        if self._flushed:
            raise RuntimeError("Remote candidates already flushed for this session")
        self._flushed = True
        self._apply_remote = apply_remote

        flushed = 0
        while self._pending_remote and not self._cleared:
            candidate = self._pending_remote.popleft()
            await self._apply(candidate)
            flushed += 1

        self._remote_ready = True
        if flushed:
            logger.debug(f"[Candidates] Flushed {flushed} buffered remote candidate(s)")
        return flushed

    async def _apply(self, candidate: Candidate) -> None:
        try:
            await self._apply_remote(candidate)
        except Exception as e:
            # One unusable candidate must not stop the rest
            logger.warning(f"[Candidates] Remote candidate rejected by transport: {e}")

    # === Teardown ===

    def clear(self) -> None:
        """Drop both queues; later offers are ignored."""
        self._cleared = True
        self._pending_local.clear()
        self._pending_remote.clear()

    # === Query ===

    @property
    def pending_remote(self) -> Tuple[Candidate, ...]:
        return tuple(self._pending_remote)

    @property
    def pending_local(self) -> Tuple[Candidate, ...]:
        return tuple(self._pending_local)

    @property
    def remote_ready(self) -> bool:
        return self._remote_ready

    @property
    def is_empty(self) -> bool:
        return not self._pending_local and not self._pending_remote
