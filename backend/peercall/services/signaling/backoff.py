"""
Reconnect Backoff

Bounded exponential delay for relay reconnection attempts.
"""
import time
from typing import Callable, Optional


class ReconnectBackoff:
    """
    Delay policy: base * 2**attempt, capped.

    The sequence of delays is non-decreasing until the cap. It resets to the
    base delay only after a connection has stayed up for `stable_after`
    seconds, so a connection that flaps right after opening keeps backing off.
    """

    def __init__(
        self,
        base: float = 1.0,
        cap: float = 30.0,
        stable_after: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if base <= 0 or cap < base:
            raise ValueError(f"Invalid backoff bounds: base={base}, cap={cap}")
        self.base = base
        self.cap = cap
        self.stable_after = stable_after
        self._clock = clock
        self._attempt = 0
        self._connected_at: Optional[float] = None

    @property
    def attempt(self) -> int:
        return self._attempt

    def next_delay(self) -> float:
        """Delay before the next attempt; advances the attempt counter."""
        delay = min(self.base * (2 ** self._attempt), self.cap)
        if delay < self.cap:
            self._attempt += 1
        return delay

    def mark_connected(self) -> None:
        """Record that a connection just opened."""
        self._connected_at = self._clock()

    def mark_disconnected(self) -> None:
        """Record connection loss; resets if the connection had been stable."""
        if self._connected_at is not None:
            if self._clock() - self._connected_at >= self.stable_after:
                self.reset()
            self._connected_at = None

    def reset(self) -> None:
        self._attempt = 0
