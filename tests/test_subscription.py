"""
Subscription Tests
==================

Bounded buffer behavior: ordering, drop-oldest overflow and close.
"""

import asyncio

import pytest

from gameview.stream import Frame, Subscription, SubscriptionClosed


def frame(seq: int) -> Frame:
    return Frame(seq=seq, timestamp=float(seq), data=f"F{seq}".encode())


class TestSubscriptionBuffer:
    """Tests for offer/get ordering and overflow."""

    def test_rejects_zero_size(self):
        """Verify a buffer must hold at least one frame."""
        with pytest.raises(ValueError):
            Subscription(maxsize=0)

    def test_frames_come_out_in_order(self):
        """Verify frames are delivered in the order offered."""
        async def scenario():
            sub = Subscription(maxsize=8)
            for seq in range(5):
                assert sub.offer(frame(seq)) is True
            return [(await sub.get()).seq for _ in range(5)]

        assert asyncio.run(scenario()) == [0, 1, 2, 3, 4]

    def test_overflow_drops_oldest(self):
        """Verify a full buffer discards its oldest frame, never the new one."""
        sub = Subscription(maxsize=3)
        results = [sub.offer(frame(seq)) for seq in range(5)]

        assert results == [True, True, True, False, False]
        assert sub.dropped == 2
        assert sub.size == 3
        assert [sub.get_nowait().seq for _ in range(3)] == [2, 3, 4]
        assert sub.get_nowait() is None

    def test_get_times_out(self):
        """Verify get() returns None when nothing arrives in time."""
        async def scenario():
            sub = Subscription()
            return await sub.get(timeout=0.01)

        assert asyncio.run(scenario()) is None

    def test_waiting_reader_is_woken(self):
        """Verify a reader blocked in get() receives a later offer."""
        async def scenario():
            sub = Subscription()
            reader = asyncio.create_task(sub.get())
            await asyncio.sleep(0.01)
            sub.offer(frame(7))
            return await asyncio.wait_for(reader, timeout=1.0)

        assert asyncio.run(scenario()).seq == 7

    def test_metrics(self):
        """Verify counters are reported."""
        sub = Subscription(maxsize=1, subscriber_id="viewer")
        sub.offer(frame(0))
        sub.offer(frame(1))
        sub.get_nowait()

        metrics = sub.metrics()
        assert metrics["id"] == "viewer"
        assert metrics["offered"] == 2
        assert metrics["delivered"] == 1
        assert metrics["dropped"] == 1
        assert metrics["closed"] is False


class TestSubscriptionClose:
    """Tests for end-of-stream semantics."""

    def test_offer_after_close_raises(self):
        """Verify a closed subscription refuses frames."""
        sub = Subscription()
        sub.close()
        with pytest.raises(SubscriptionClosed):
            sub.offer(frame(0))

    def test_buffered_frames_survive_close(self):
        """Verify frames buffered before close() are still readable."""
        async def scenario():
            sub = Subscription()
            sub.offer(frame(0))
            sub.offer(frame(1))
            sub.close()
            received = [f.seq async for f in sub]
            with pytest.raises(SubscriptionClosed):
                await sub.get()
            return received

        assert asyncio.run(scenario()) == [0, 1]

    def test_close_wakes_waiting_reader(self):
        """Verify close() ends a reader blocked on an empty buffer."""
        async def scenario():
            sub = Subscription()
            reader = asyncio.create_task(sub.get())
            await asyncio.sleep(0.01)
            sub.close()
            with pytest.raises(SubscriptionClosed):
                await asyncio.wait_for(reader, timeout=1.0)

        asyncio.run(scenario())

    def test_close_is_idempotent(self):
        """Verify closing twice is harmless."""
        sub = Subscription()
        sub.close()
        sub.close()
        assert sub.closed
