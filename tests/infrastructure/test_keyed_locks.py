import asyncio

import pytest

from oss_rebuild.infrastructure.keyed_locks import KeyedLocks


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    locks = KeyedLocks()
    order = []

    async def writer(name):
        async with locks.hold("runs/run-1.json"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(writer("a"), writer("b"))
    assert order == ["a-in", "a-out", "b-in", "b-out"]


@pytest.mark.asyncio
async def test_entries_are_dropped_once_released():
    locks = KeyedLocks()
    for i in range(100):
        async with locks.hold(f"asset-{i}"):
            assert len(locks) == 1
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_contended_entry_survives_until_the_last_waiter():
    locks = KeyedLocks()
    release = asyncio.Event()

    async def holder():
        async with locks.hold("k"):
            await release.wait()

    async def waiter():
        async with locks.hold("k"):
            pass

    first = asyncio.create_task(holder())
    await asyncio.sleep(0)
    second = asyncio.create_task(waiter())
    await asyncio.sleep(0)
    assert len(locks) == 1
    release.set()
    await asyncio.gather(first, second)
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_entry_is_dropped_when_the_body_raises():
    locks = KeyedLocks()
    with pytest.raises(RuntimeError):
        async with locks.hold("k"):
            raise RuntimeError("write failed")
    assert len(locks) == 0
