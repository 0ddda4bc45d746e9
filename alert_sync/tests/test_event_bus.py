"""
Unit Tests for the Alert Event Bus
"""

import asyncio

import pytest

from alert_sync.event_bus import AlertEventBus


class TestEventBus:
    """Test subscribe / emit / unsubscribe"""

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers_receive_payload(self, bus):
        received = []

        async def async_handler(payload):
            received.append(("async", payload))

        bus.subscribe("alert", lambda payload: received.append(("sync", payload)))
        bus.subscribe("alert", async_handler)

        await bus.emit("alert", {"market": "X", "price": 1})

        assert ("sync", {"market": "X", "price": 1}) in received
        assert ("async", {"market": "X", "price": 1}) in received

    @pytest.mark.asyncio
    async def test_topics_are_isolated(self, bus):
        received = []
        bus.subscribe("alert", received.append)

        await bus.emit("notice", {"title": "hello"})

        assert received == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_break_emit(self, bus):
        received = []

        def broken(payload):
            raise RuntimeError("boom")

        bus.subscribe("alert", broken)
        bus.subscribe("alert", received.append)

        await bus.emit("alert", 1)

        assert received == [1]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, bus):
        received = []
        bus.subscribe("alert", received.append)
        bus.unsubscribe("alert", received.append)

        await bus.emit("alert", 1)

        assert received == []
        assert bus.handler_count("alert") == 0

    def test_unsubscribe_unknown_handler_is_ignored(self, bus):
        bus.unsubscribe("alert", print)

    @pytest.mark.asyncio
    async def test_history(self, bus):
        await bus.emit("alert", 1)
        await bus.emit("notice", 2)

        assert [m.payload for m in bus.recent()] == [1, 2]
        assert [m.payload for m in bus.recent("notice")] == [2]


class TestOnce:
    """Test one-shot subscriptions"""

    @pytest.mark.asyncio
    async def test_once_returns_next_payload_and_unsubscribes(self, bus):
        waiter = asyncio.create_task(bus.once("prices"))
        while bus.handler_count("prices") == 0:
            await asyncio.sleep(0)

        await bus.emit("prices", {"X": {"price": 1.0}})

        assert await waiter == {"X": {"price": 1.0}}
        assert bus.handler_count("prices") == 0

    @pytest.mark.asyncio
    async def test_once_timeout(self):
        bus = AlertEventBus()

        with pytest.raises(asyncio.TimeoutError):
            await bus.once("prices", timeout=0.01)

        assert bus.handler_count("prices") == 0
