import asyncio

import pytest

from ledger_chat.core.cache import KeyedCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_least_recently_used_entry_is_evicted():
    cache: KeyedCache[int] = KeyedCache(name="lru", max_entries=2)
    cache.put("a", 1)
    cache.put("b", 2)
    assert cache.get("a") == 1

    cache.put("c", 3)

    assert "b" not in cache
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    assert len(cache) == 2


def test_entries_expire_after_idle_ttl():
    clock = FakeClock()
    cache: KeyedCache[str] = KeyedCache(name="ttl", ttl_seconds=10, clock=clock)
    cache.put("a", "x")
    cache.put("b", "y")

    clock.advance(6)
    assert cache.get("a") == "x"
    clock.advance(6)

    # "a" was touched 6s ago, "b" has been idle for 12s
    assert cache.get("a") == "x"
    assert cache.get("b") is None
    assert len(cache) == 1


def test_delete_and_clear():
    cache: KeyedCache[int] = KeyedCache(name="misc")
    cache.put("a", 1)
    assert cache.delete("a") is True
    assert cache.delete("a") is False
    cache.put("b", 2)
    cache.clear()
    assert len(cache) == 0


async def test_concurrent_callers_share_one_build():
    cache: KeyedCache[str] = KeyedCache(name="flight")
    calls = 0

    async def builder() -> str:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return "built"

    results = await asyncio.gather(*(cache.get_or_build("k", builder) for _ in range(10)))

    assert results == ["built"] * 10
    assert calls == 1
    assert not cache.is_building("k")


async def test_failed_build_reaches_all_waiters_and_is_not_cached():
    cache: KeyedCache[str] = KeyedCache(name="flight")
    calls = 0

    async def failing() -> str:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        raise RuntimeError("boom")

    results = await asyncio.gather(*(cache.get_or_build("k", failing) for _ in range(3)), return_exceptions=True)

    assert calls == 1
    assert all(isinstance(r, RuntimeError) for r in results)
    assert "k" not in cache

    async def working() -> str:
        return "ok"

    assert await cache.get_or_build("k", working) == "ok"


async def test_waiters_retry_when_the_leading_build_is_cancelled():
    cache: KeyedCache[str] = KeyedCache(name="flight")
    started = asyncio.Event()

    async def slow() -> str:
        started.set()
        await asyncio.sleep(10)
        return "slow"

    async def fast() -> str:
        return "fast"

    leader = asyncio.create_task(cache.get_or_build("k", slow))
    await started.wait()
    waiter = asyncio.create_task(cache.get_or_build("k", fast))
    await asyncio.sleep(0)

    leader.cancel()
    with pytest.raises(asyncio.CancelledError):
        await leader

    assert await waiter == "fast"


async def test_rebuild_replaces_value_on_success():
    cache: KeyedCache[str] = KeyedCache(name="rebuild")
    cache.put("k", "old")

    async def builder() -> str:
        return "new"

    assert await cache.rebuild("k", builder) == "new"
    assert cache.get("k") == "new"


async def test_rebuild_keeps_previous_value_on_failure():
    cache: KeyedCache[str] = KeyedCache(name="rebuild")
    cache.put("k", "old")

    async def failing() -> str:
        raise RuntimeError("source down")

    with pytest.raises(RuntimeError):
        await cache.rebuild("k", failing)

    assert cache.get("k") == "old"


async def test_rebuild_waits_for_in_flight_build():
    cache: KeyedCache[int] = KeyedCache(name="rebuild")
    order: list[str] = []

    async def first() -> int:
        order.append("first:start")
        await asyncio.sleep(0.01)
        order.append("first:end")
        return 1

    async def second() -> int:
        order.append("second:start")
        return 2

    build = asyncio.create_task(cache.get_or_build("k", first))
    await asyncio.sleep(0)
    assert await cache.rebuild("k", second) == 2
    assert await build == 1

    assert order == ["first:start", "first:end", "second:start"]
    assert cache.get("k") == 2
