"""
Tests for IceCandidateBuffer ordering
"""
import pytest

from peercall.services.call.candidates import IceCandidateBuffer


class Recorder:
    def __init__(self, fail_on=None):
        self.items = []
        self.fail_on = fail_on

    async def __call__(self, candidate):
        if candidate == self.fail_on:
            raise ValueError("bad candidate")
        self.items.append(candidate)


@pytest.mark.asyncio
async def test_remote_candidates_wait_for_flush():
    buffer = IceCandidateBuffer()
    applied = Recorder()

    await buffer.offer_remote("c1")
    await buffer.offer_remote("c2")
    assert applied.items == []
    assert buffer.pending_remote == ("c1", "c2")

    flushed = await buffer.flush(applied)

    assert flushed == 2
    assert applied.items == ["c1", "c2"]
    assert buffer.remote_ready
    assert buffer.is_empty

    await buffer.offer_remote("c3")
    assert applied.items == ["c1", "c2", "c3"]


@pytest.mark.asyncio
async def test_flush_twice_raises():
    buffer = IceCandidateBuffer()
    await buffer.flush(Recorder())
    with pytest.raises(RuntimeError):
        await buffer.flush(Recorder())


@pytest.mark.asyncio
async def test_rejected_candidate_does_not_stop_the_rest():
    buffer = IceCandidateBuffer()
    applied = Recorder(fail_on="c2")
    for c in ("c1", "c2", "c3"):
        await buffer.offer_remote(c)

    await buffer.flush(applied)

    assert applied.items == ["c1", "c3"]


@pytest.mark.asyncio
async def test_local_candidates_released_after_local_description():
    sent = Recorder()
    buffer = IceCandidateBuffer(send_local=sent)

    await buffer.offer_local("l1")
    await buffer.offer_local("l2")
    assert sent.items == []

    await buffer.mark_local_description_set()
    await buffer.offer_local("l3")

    assert sent.items == ["l1", "l2", "l3"]


@pytest.mark.asyncio
async def test_clear_drops_queues_and_ignores_later_offers():
    sent = Recorder()
    buffer = IceCandidateBuffer(send_local=sent)
    await buffer.offer_local("l1")
    await buffer.offer_remote("r1")

    buffer.clear()
    await buffer.offer_remote("r2")
    await buffer.mark_local_description_set()

    assert buffer.is_empty
    assert sent.items == []
