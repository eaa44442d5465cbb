"""
Tests for the supervisor's event streams.
"""

import asyncio

from jumpgate.core.domain.streams import EventStream


class TestEventStream:
    """Test cases for EventStream."""

    async def test_events_in_order(self) -> None:
        stream: EventStream[int] = EventStream("numbers")
        for i in range(3):
            assert stream.put(i) is True

        assert [await stream.next() for _ in range(3)] == [0, 1, 2]

    async def test_close_ends_after_pending_events(self) -> None:
        stream: EventStream[str] = EventStream("words")
        stream.put("a")
        stream.close()

        assert await stream.next() == "a"
        assert await stream.next() is None
        assert stream.closed is True

    async def test_next_after_exhaustion_returns_none(self) -> None:
        stream: EventStream[str] = EventStream("words")
        stream.close()

        assert await stream.next() is None
        assert await stream.next() is None

    async def test_put_after_close_is_dropped(self) -> None:
        stream: EventStream[str] = EventStream("words")
        stream.close()

        assert stream.put("late") is False
        assert await stream.next() is None

    async def test_close_is_idempotent(self) -> None:
        stream: EventStream[str] = EventStream("words")
        stream.close()
        stream.close()

        assert stream.closed is True
        assert await stream.next() is None

    async def test_next_waits_for_event(self) -> None:
        stream: EventStream[str] = EventStream("words")
        waiter = asyncio.ensure_future(stream.next())
        await asyncio.sleep(0)
        assert not waiter.done()

        stream.put("hello")

        assert await asyncio.wait_for(waiter, 1.0) == "hello"
