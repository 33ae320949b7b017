"""
In-memory fakes implementing the collaborator protocols of CallSessionManager.
"""
import asyncio
import json
from typing import Any, Dict, List, Optional

from peercall.services.call.exceptions import MediaUnavailableError, TransportClosedError


class FakeChannel:
    """
    Records sent messages; raises TransportClosedError when closed.
    Map a message class in `gates` to an Event to hold its send until set.
    """

    def __init__(self, is_open: bool = True):
        self.is_open = is_open
        self.sent: List[Any] = []
        self.gates: Dict[type, asyncio.Event] = {}
        self.holding: List[Any] = []

    async def send(self, message) -> None:
        if not self.is_open:
            raise TransportClosedError("fake channel closed")
        gate = self.gates.get(type(message))
        if gate is not None:
            self.holding.append(message)
            await gate.wait()
        self.sent.append(message)

    def sent_of(self, message_cls) -> List[Any]:
        return [m for m in self.sent if isinstance(m, message_cls)]


class FakeStream:
    def __init__(self):
        self.released = False
        self.enabled = {"audio": True, "video": True}


class FakeMedia:
    """Media capture double. Set `gate` to hold acquire() until it is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.gate: Optional[asyncio.Event] = None
        self.streams: List[FakeStream] = []

    async def acquire(self, constraints=None) -> FakeStream:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise MediaUnavailableError("camera denied")
        stream = FakeStream()
        self.streams.append(stream)
        return stream

    def release(self, stream) -> None:
        if stream is not None:
            stream.released = True

    def set_track_enabled(self, stream, kind: str, enabled: bool) -> bool:
        if kind not in stream.enabled:
            return False
        stream.enabled[kind] = enabled
        return True


class FakeTransport:
    """
    Peer transport double recording every call in order.
    Map a method name in `gates` to an Event to hold that call until set.
    """

    def __init__(self, gates: Optional[Dict[str, asyncio.Event]] = None):
        self.on_local_candidate = None
        self.on_connectivity_change = None
        self.on_remote_track = None
        self.gates = gates or {}
        self.calls: List[Any] = []
        self.applied_candidates: List[Dict[str, Any]] = []
        self.local_description: Optional[Dict[str, Any]] = None
        self.remote_description: Optional[Dict[str, Any]] = None
        self.candidates_during_local_description: List[Dict[str, Any]] = []
        self.closed = False

    async def _enter(self, name: str) -> None:
        self.calls.append(name)
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()

    def add_local_tracks(self, stream) -> None:
        self.calls.append("add_local_tracks")

    async def create_offer(self) -> Dict[str, Any]:
        await self._enter("create_offer")
        return {"type": "offer", "sdp": "v=0 offer"}

    async def create_answer(self, remote_offer=None) -> Dict[str, Any]:
        await self._enter("create_answer")
        return {"type": "answer", "sdp": "v=0 answer"}

    async def set_local_description(self, description: Dict[str, Any]) -> Dict[str, Any]:
        await self._enter("set_local_description")
        for candidate in self.candidates_during_local_description:
            await self.on_local_candidate(candidate)
        self.local_description = dict(description, sdp=description["sdp"] + " a=candidate")
        return self.local_description

    async def set_remote_description(self, description: Dict[str, Any]) -> None:
        await self._enter("set_remote_description")
        self.remote_description = description

    async def add_ice_candidate(self, candidate: Dict[str, Any]) -> None:
        assert self.remote_description is not None, "candidate applied before remote description"
        self.calls.append(("add_ice_candidate", candidate["candidate"]))
        self.applied_candidates.append(candidate)

    async def close(self) -> None:
        self.closed = True

    async def report(self, state) -> None:
        await self.on_connectivity_change(state)


class FakeTransportFactory:
    """PeerTransportFactory that remembers what it created."""

    def __init__(self):
        self.created: List[FakeTransport] = []
        self.gates: Dict[str, asyncio.Event] = {}

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(self.gates)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class FakeRemoteTrack:
    """Remote track double counting how many frames were pulled from it."""

    def __init__(self, kind: str = "video"):
        self.kind = kind
        self.received = 0
        self.stopped = False

    async def recv(self):
        await asyncio.sleep(0)
        self.received += 1
        return None

    def stop(self) -> None:
        self.stopped = True


def candidate(n: int) -> Dict[str, Any]:
    return {"candidate": f"candidate:{n} 1 udp 2122260223 10.0.0.{n} 5000{n} typ host", "sdpMid": "0", "sdpMLineIndex": 0}


class FakeWebSocket:
    """Client-side socket double: push() feeds frames, drop() ends the stream."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, text: str) -> None:
        self.sent.append(json.loads(text))

    def push(self, payload) -> None:
        self._incoming.put_nowait(payload if isinstance(payload, str) else json.dumps(payload))

    def drop(self) -> None:
        self._incoming.put_nowait(None)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is None:
            self.closed = True
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Stands in for websockets.connect; fails the first `failures` attempts."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.urls: List[str] = []
        self.sockets: List[FakeWebSocket] = []

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.failures:
            self.failures -= 1
            raise OSError("connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]


async def wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
