"""Tests for live streams and watch handles."""
import asyncio

import pytest

from attachment_queue.utils.streams import LiveValue, WatchHandle


async def collect(live, count):
    items = []
    async for item in live.subscribe():
        items.append(item)
        if len(items) == count:
            break
    return items


class TestLiveValue:
    """Tests for LiveValue."""

    @pytest.mark.asyncio
    async def test_subscriber_gets_current_value_first(self):
        live = LiveValue({'a'})

        assert await collect(live, 1) == [{'a'}]

    @pytest.mark.asyncio
    async def test_subscriber_gets_later_values(self):
        live = LiveValue()
        task = asyncio.create_task(collect(live, 2))
        await asyncio.sleep(0.01)

        live.publish(1)
        await asyncio.sleep(0.01)
        live.publish(2)

        assert await asyncio.wait_for(task, 1) == [1, 2]

    @pytest.mark.asyncio
    async def test_slow_subscriber_only_sees_latest(self):
        """Snapshots are full states, so intermediate ones may be skipped."""
        live = LiveValue(0)
        received = []

        async def consume():
            async for value in live.subscribe():
                received.append(value)
                if value == 3:
                    return
                await asyncio.sleep(0.05)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        live.publish(1)
        live.publish(2)
        live.publish(3)
        await asyncio.wait_for(task, 1)

        assert received == [0, 3]

    @pytest.mark.asyncio
    async def test_close_ends_subscriptions(self):
        live = LiveValue('only')
        items = []

        async def consume():
            async for value in live.subscribe():
                items.append(value)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        live.close()
        await asyncio.wait_for(task, 1)

        assert items == ['only']

    def test_publish_after_close(self):
        live = LiveValue()
        live.close()

        with pytest.raises(RuntimeError):
            live.publish(1)

    def test_single_initial_value(self):
        with pytest.raises(TypeError):
            LiveValue(1, 2)


class TestWatchHandle:
    """Tests for WatchHandle."""

    @pytest.mark.asyncio
    async def test_cancel_stops_task(self):
        handle = WatchHandle.spawn(asyncio.sleep(10), 'sleeper')
        assert handle.active

        handle.cancel()
        await handle.wait()

        assert handle.cancelled
        assert not handle.active

    @pytest.mark.asyncio
    async def test_wait_on_finished_task(self):
        async def quick():
            return None

        handle = WatchHandle.spawn(quick(), 'quick')
        await handle.wait()

        assert not handle.active
        assert not handle.cancelled

    @pytest.mark.asyncio
    async def test_wait_propagates_failures(self):
        async def boom():
            raise ValueError("boom")

        handle = WatchHandle.spawn(boom(), 'boom')

        with pytest.raises(ValueError, match="boom"):
            await handle.wait()
