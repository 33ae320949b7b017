"""
End-to-end tests of CallClient over a fake relay socket
"""
import pytest

from helpers import FakeConnector, FakeMedia, FakeRemoteTrack, FakeTransportFactory, wait_until
from peercall.client import CallClient
from peercall.services.call.models import CallOutcome, CallState, CallStatus
from peercall.services.signaling import ReconnectBackoff, SignalingChannel
from peercall.services.transport.peer import ConnectivityState

OFFER = {"type": "offer", "sdp": "v=0 remote offer"}


def make_client(connector, media, transports, statuses):
    channel = SignalingChannel(
        url="ws://relay.test/call-signaling",
        backoff=ReconnectBackoff(base=0.01, cap=0.04),
        connector=connector,
    )
    return CallClient(
        "alice",
        channel=channel,
        media=media,
        transport_factory=transports,
        on_status=statuses.append,
    )


@pytest.mark.asyncio
async def test_relay_drop_during_active_call_reconnects_and_tears_down():
    connector = FakeConnector()
    media = FakeMedia()
    transports = FakeTransportFactory()
    statuses = []
    client = make_client(connector, media, transports, statuses)

    assert await client.start()
    first = connector.last
    first.push({"type": "call-offer", "fromUserId": "bob", "offer": OFFER})
    await wait_until(lambda: client.manager.state == CallState.INCOMING)

    assert await client.accept_call() == CallOutcome.OK
    await transports.last.report(ConnectivityState.CONNECTED)
    assert client.manager.state == CallState.ACTIVE

    first.drop()
    await wait_until(lambda: len(connector.sockets) == 2 and client.channel.is_open)
    await wait_until(lambda: client.manager.state == CallState.IDLE)

    second = connector.last
    # Best-effort hang-up to the old peer, then a fresh presence request
    assert second.sent[0] == {"type": "call-end", "targetUserId": "bob"}
    assert second.sent[1] == {"type": "get-online-users"}
    assert media.streams[0].released
    assert transports.last.closed
    assert CallStatus.ACTIVE in statuses
    assert client.status == CallStatus.CONNECTED

    await client.stop()


@pytest.mark.asyncio
async def test_start_call_over_relay():
    connector = FakeConnector()
    statuses = []
    client = make_client(connector, FakeMedia(), FakeTransportFactory(), statuses)
    await client.start()

    assert await client.start_call("bob") == CallOutcome.OK

    offer = connector.last.sent[-1]
    assert offer["type"] == "call-offer"
    assert offer["targetUserId"] == "bob"
    assert "fromUserId" not in offer

    await client.stop()
    assert connector.last.sent[-1] == {"type": "call-end", "targetUserId": "bob"}
    assert client.manager.state == CallState.IDLE


@pytest.mark.asyncio
async def test_start_reports_unreachable_relay():
    connector = FakeConnector(failures=100)
    client = make_client(connector, FakeMedia(), FakeTransportFactory(), [])

    assert await client.start() is False
    assert client.status == CallStatus.DISCONNECTED

    await client.stop()


@pytest.mark.asyncio
async def test_remote_tracks_reach_the_client_consumer():
    connector = FakeConnector()
    transports = FakeTransportFactory()
    tracks = []

    async def on_remote_track(track):
        tracks.append(track.kind)

    channel = SignalingChannel(url="ws://relay.test/call-signaling", connector=connector)
    client = CallClient(
        "alice",
        channel=channel,
        media=FakeMedia(),
        transport_factory=transports,
        on_remote_track=on_remote_track,
    )
    await client.start()
    assert await client.start_call("bob") == CallOutcome.OK

    await transports.last.on_remote_track(FakeRemoteTrack("audio"))

    assert tracks == ["audio"]
    await client.stop()
