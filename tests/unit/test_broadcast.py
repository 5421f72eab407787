"""Tests for Broadcast: delivery order, cancellation, failures, close."""

from __future__ import annotations

import asyncio
import logging

import pytest

from pybloc.bus.broadcast import Broadcast


class TestDelivery:
    def test_delivers_to_all_in_subscription_order(self):
        bus = Broadcast()
        order = []
        bus.subscribe(lambda v: order.append(("a", v)))
        bus.subscribe(lambda v: order.append(("b", v)))

        bus.publish(1)

        assert order == [("a", 1), ("b", 1)]

    def test_no_replay_for_late_subscriber(self, recorder):
        bus = Broadcast()
        bus.publish(1)
        values, callback = recorder
        bus.subscribe(callback)
        bus.publish(2)
        assert values == [2]

    def test_publish_without_subscribers_is_noop(self):
        bus = Broadcast()
        assert bus.publish("x") == []
        assert bus.published_count == 1

    def test_subscribe_during_publish_applies_next_round(self, recorder):
        bus = Broadcast()
        values, callback = recorder

        def first(value):
            if value == 1:
                bus.subscribe(callback)

        bus.subscribe(first)
        bus.publish(1)
        bus.publish(2)

        assert values == [2]


class TestCancellation:
    def test_cancel_stops_delivery(self, recorder):
        bus = Broadcast()
        values, callback = recorder
        sub = bus.subscribe(callback)
        bus.publish(1)
        sub.cancel()
        bus.publish(2)

        assert values == [1]
        assert not sub.is_active
        assert bus.subscriber_count == 0

    def test_cancel_is_idempotent(self):
        bus = Broadcast()
        sub = bus.subscribe(lambda v: None)
        sub.cancel()
        sub.cancel()
        assert bus.subscriber_count == 0

    def test_cancel_leaves_other_subscribers(self, recorder):
        bus = Broadcast()
        values, callback = recorder
        sub = bus.subscribe(lambda v: None)
        bus.subscribe(callback)
        sub.cancel()
        bus.publish(1)
        assert values == [1]

    def test_cancel_during_round_skips_remaining_delivery(self, recorder):
        bus = Broadcast()
        values, callback = recorder
        later = None

        def first(value):
            later.cancel()

        bus.subscribe(first)
        later = bus.subscribe(callback)
        bus.publish(1)

        assert values == []

    def test_subscription_context_manager(self, recorder):
        bus = Broadcast()
        values, callback = recorder
        with bus.subscribe(callback):
            bus.publish(1)
        bus.publish(2)
        assert values == [1]


class TestFailures:
    def test_failing_subscriber_does_not_stop_others(self, recorder, caplog):
        bus = Broadcast(name="demo")
        values, callback = recorder

        def bad(value):
            raise ValueError("boom")

        bus.subscribe(bad)
        bus.subscribe(callback)

        with caplog.at_level(logging.ERROR):
            errors = bus.publish(1)

        assert values == [1]
        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)
        assert bus.error_count == 1
        assert any("demo" in r.getMessage() for r in caplog.records)


class TestClose:
    def test_close_detaches_subscribers(self, recorder):
        bus = Broadcast()
        values, callback = recorder
        sub = bus.subscribe(callback)
        bus.close()
        bus.publish(1)

        assert values == []
        assert not sub.is_active
        assert bus.is_closed

    def test_subscribe_after_close_is_inert(self, recorder):
        bus = Broadcast()
        bus.close()
        values, callback = recorder
        closed = []
        sub = bus.subscribe(callback, on_close=lambda: closed.append(True))
        bus.publish(1)

        assert not sub.is_active
        assert values == []
        assert closed == [True]

    def test_close_is_idempotent(self):
        bus = Broadcast()
        bus.close()
        bus.close()
        assert bus.is_closed


class TestAsyncIteration:
    @pytest.mark.asyncio
    async def test_iterates_until_closed(self):
        bus = Broadcast()
        received = []

        async def consume():
            async for value in bus:
                received.append(value)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        bus.publish(1)
        bus.publish(2)
        bus.close()
        await asyncio.wait_for(task, timeout=1)

        assert received == [1, 2]

    @pytest.mark.asyncio
    async def test_iterator_on_closed_broadcast_ends_immediately(self):
        bus = Broadcast()
        bus.close()
        received = [value async for value in bus]
        assert received == []

    @pytest.mark.asyncio
    async def test_aclose_stops_iteration(self):
        bus = Broadcast()
        iterator = bus.__aiter__()
        await iterator.aclose()
        bus.publish(1)

        with pytest.raises(StopAsyncIteration):
            await iterator.__anext__()
        assert bus.subscriber_count == 0
