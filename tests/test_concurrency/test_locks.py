"""Tests for per-key asyncio locks."""

import asyncio

from marketkit.concurrency.locks import KeyedLock


class TestKeyedLock:
    async def test_serializes_same_key(self):
        locks = KeyedLock()
        order = []

        async def worker(name):
            async with locks.hold("s1"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-start", "a-end", "b-start", "b-end"]

    async def test_different_keys_run_concurrently(self):
        locks = KeyedLock()
        inside = asyncio.Event()
        release = asyncio.Event()

        async def holder():
            async with locks.hold("s1"):
                inside.set()
                await release.wait()

        task = asyncio.create_task(holder())
        await inside.wait()
        assert locks.locked("s1")
        async with locks.hold("s2"):
            assert locks.locked("s1")
            assert locks.locked("s2")
        release.set()
        await task

    async def test_idle_locks_dropped(self):
        locks = KeyedLock()
        async with locks.hold("s1"):
            assert len(locks) == 1
        assert len(locks) == 0
        assert not locks.locked("s1")

    async def test_released_on_error(self):
        locks = KeyedLock()
        try:
            async with locks.hold("s1"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert len(locks) == 0
        async with locks.hold("s1"):
            assert locks.locked("s1")
