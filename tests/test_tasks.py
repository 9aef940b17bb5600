"""Tests for background task supervision, keyed locks and the balance cache."""

import asyncio
import logging

import pytest

from custodial_wallet.core.tasks import KeyedLock, TaskSupervisor
from custodial_wallet.wallet.cache import MemoryCache, balance_key


class TestTaskSupervisor:
    async def test_failure_is_logged_not_raised(self, caplog):
        supervisor = TaskSupervisor()

        async def boom():
            raise RuntimeError("kaput")

        with caplog.at_level(logging.ERROR, logger="custodial_wallet.core.tasks"):
            supervisor.spawn(boom(), name="boom")
            await supervisor.drain()

        assert supervisor.pending == 0
        assert any("boom" in r.message and "kaput" in r.message for r in caplog.records)

    async def test_drain_waits_for_nested_spawns(self):
        supervisor = TaskSupervisor()
        done = []

        async def child():
            await asyncio.sleep(0)
            done.append("child")

        async def parent():
            supervisor.spawn(child(), name="child")
            done.append("parent")

        supervisor.spawn(parent(), name="parent")
        await supervisor.drain()
        assert done == ["parent", "child"]

    async def test_shutdown_without_wait_cancels(self):
        supervisor = TaskSupervisor()
        started = asyncio.Event()

        async def forever():
            started.set()
            await asyncio.sleep(3600)

        task = supervisor.spawn(forever(), name="forever")
        await started.wait()
        await supervisor.shutdown(wait=False)
        assert task.cancelled()

    async def test_spawn_after_shutdown(self):
        supervisor = TaskSupervisor()
        await supervisor.shutdown()

        async def noop():
            pass

        with pytest.raises(RuntimeError):
            supervisor.spawn(noop(), name="late")


class TestKeyedLock:
    async def test_same_key_serializes(self):
        locks = KeyedLock()
        events = []

        async def worker(tag):
            async with locks.hold("0xabc"):
                events.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                events.append(f"{tag}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert events in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )
        assert len(locks) == 0

    async def test_different_keys_overlap(self):
        locks = KeyedLock()
        inside = 0
        peak = 0

        async def worker(key):
            nonlocal inside, peak
            async with locks.hold(key):
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.01)
                inside -= 1

        await asyncio.gather(worker("a"), worker("b"))
        assert peak == 2

    async def test_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(ValueError):
            async with locks.hold("k"):
                raise ValueError("x")
        assert len(locks) == 0


class TestMemoryCache:
    async def test_get_set_delete(self):
        cache = MemoryCache()
        key = balance_key("0xabc")
        assert key == "wallet:balance:0xabc"
        assert await cache.get(key) is None
        await cache.set(key, "1.0", 30)
        assert await cache.get(key) == "1.0"
        await cache.delete(key)
        assert await cache.get(key) is None

    async def test_expiry(self):
        cache = MemoryCache()
        await cache.set("k", "v", 0)
        assert await cache.get("k") is None
        assert len(cache) == 0
