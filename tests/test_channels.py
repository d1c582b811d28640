"""Tests for snapshot channels."""

import asyncio

import pytest

from ledger_sync.channels import SnapshotChannel


class TestSnapshotChannel:
    """Test conflation, restart and close semantics."""

    @pytest.mark.asyncio
    async def test_iterator_starts_at_latest(self):
        channel: SnapshotChannel[list[int]] = SnapshotChannel("numbers")
        channel.publish([1])
        channel.publish([1, 2])

        iterator = channel.__aiter__()
        assert await iterator.__anext__() == [1, 2]

    @pytest.mark.asyncio
    async def test_slow_consumer_sees_only_newest(self):
        channel: SnapshotChannel[int] = SnapshotChannel("numbers")
        received = []

        async def consume():
            async for value in channel:
                received.append(value)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        channel.publish(1)
        channel.publish(2)
        channel.publish(3)
        await asyncio.sleep(0.01)
        channel.close()
        await asyncio.wait_for(task, 1)

        assert received == [3]

    @pytest.mark.asyncio
    async def test_close_ends_all_iterators(self):
        channel: SnapshotChannel[int] = SnapshotChannel("numbers")

        async def drain():
            return [value async for value in channel]

        tasks = [asyncio.create_task(drain()) for _ in range(2)]
        await asyncio.sleep(0)
        channel.publish(7)
        await asyncio.sleep(0.01)
        channel.close()

        results = await asyncio.wait_for(asyncio.gather(*tasks), 1)
        assert results == [[7], [7]]

    @pytest.mark.asyncio
    async def test_restart_after_iterator_exit(self):
        channel: SnapshotChannel[str] = SnapshotChannel("names")
        channel.publish("a")

        async for value in channel:
            assert value == "a"
            break

        channel.publish("b")
        async for value in channel:
            assert value == "b"
            break

    def test_publish_after_close_is_dropped(self):
        channel: SnapshotChannel[int] = SnapshotChannel("numbers")
        channel.publish(1)
        channel.close()

        assert channel.publish(2) is False
        assert channel.latest == 1
        assert channel.closed is True
