"""Time-bounded cache tests"""

import asyncio

import pytest
from agentchain.cache import CacheEntry, TTLCache
from agentchain.config import CacheConfig


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _cache(clock=None, **config) -> TTLCache:
    return TTLCache(CacheConfig(**config), clock=clock or FakeClock())


def test_cache_entry_expiry_is_strict():
    entry = CacheEntry(value=1, stored_at=10.0, ttl=5.0)
    assert entry.is_expired(15.0) is False
    assert entry.is_expired(15.001) is True


class TestBasicOperations:
    def test_set_get(self):
        cache = _cache()
        cache.set("agent:1", {"name": "Scout"})
        assert cache.get("agent:1") == {"name": "Scout"}
        assert cache.get("agent:2") is None
        assert cache.get("agent:2", "fallback") == "fallback"

    def test_has_and_contains(self):
        cache = _cache()
        cache.set("k", 0)
        assert cache.has("k")
        assert "k" in cache
        assert "other" not in cache

    def test_delete(self):
        cache = _cache()
        cache.set("k", "v")
        assert cache.delete("k") is True
        assert cache.delete("k") is False
        assert cache.get("k") is None

    def test_falsy_values_are_stored(self):
        cache = _cache()
        cache.set("zero", 0)
        cache.set("none", None)
        assert cache.has("zero")
        assert cache.has("none")
        assert cache.delete("none") is True

    def test_stats_count_hits_and_misses(self):
        cache = _cache(max_size=10)
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("missing")
        stats = cache.stats()
        assert stats == {"size": 1, "max_size": 10, "hits": 2, "misses": 1, "evictions": 0}


class TestExpiry:
    def test_default_ttl(self):
        clock = FakeClock()
        cache = _cache(clock, default_ttl=300.0)
        cache.set("k", "v")
        clock.advance(300.0)
        assert cache.get("k") == "v"
        clock.advance(0.01)
        assert cache.get("k") is None
        assert cache.size() == 0

    def test_per_entry_ttl(self):
        clock = FakeClock()
        cache = _cache(clock)
        cache.set("short", 1, ttl=1.0)
        cache.set("long", 2, ttl=100.0)
        clock.advance(2.0)
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_has_drops_expired_entry(self):
        clock = FakeClock()
        cache = _cache(clock)
        cache.set("k", "v", ttl=1.0)
        clock.advance(5.0)
        assert cache.has("k") is False
        assert len(cache) == 0

    def test_overwrite_restarts_ttl(self):
        clock = FakeClock()
        cache = _cache(clock)
        cache.set("k", "old", ttl=10.0)
        clock.advance(8.0)
        cache.set("k", "new", ttl=10.0)
        clock.advance(8.0)
        assert cache.get("k") == "new"

    def test_real_clock_expiry(self):
        """100 ms entry read after 150 ms"""
        cache = TTLCache()
        cache.set("k", "v", ttl=0.1)

        async def wait():
            await asyncio.sleep(0.15)

        asyncio.run(wait())
        assert cache.get("k") is None

    def test_cleanup_removes_only_expired(self):
        clock = FakeClock()
        cache = _cache(clock)
        cache.set("a", 1, ttl=1.0)
        cache.set("b", 2, ttl=1.0)
        cache.set("c", 3, ttl=100.0)
        clock.advance(2.0)
        assert cache.cleanup() == 2
        assert list(cache.keys()) == ["c"]
        assert cache.cleanup() == 0


class TestCapacity:
    def test_evicts_oldest_inserted(self):
        cache = _cache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert list(cache.keys()) == ["b", "c"]
        assert cache.stats()["evictions"] == 1

    def test_reads_do_not_refresh_position(self):
        """Eviction is by insertion order, not recency"""
        cache = _cache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.get("a") is None
        assert cache.get("b") == 2

    def test_overwrite_never_evicts(self):
        cache = _cache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        assert cache.size() == 2
        assert cache.get("a") == 10
        assert cache.get("b") == 2
        assert cache.stats()["evictions"] == 0

    def test_size_never_exceeds_max(self):
        cache = _cache(max_size=5)
        for i in range(50):
            cache.set(f"k{i}", i)
            assert cache.size() <= 5
        assert list(cache.keys()) == [f"k{i}" for i in range(45, 50)]


class TestLifecycle:
    def test_start_outside_loop(self):
        cache = _cache()
        assert cache.start() is False
        assert cache.running is False

    def test_sweep_task_removes_expired_entries(self):
        async def scenario():
            cache = TTLCache(CacheConfig(cleanup_interval=0.02))
            cache.set("k", "v", ttl=0.01)
            assert cache.start() is True
            assert cache.start() is True
            assert cache.running
            await asyncio.sleep(0.1)
            size = cache.size()
            cache.destroy()
            return size, cache.running

        size, running = asyncio.run(scenario())
        assert size == 0
        assert running is False

    def test_clear_and_destroy_are_idempotent(self):
        cache = _cache()
        cache.set("k", "v")
        cache.clear()
        cache.clear()
        assert cache.size() == 0
        cache.set("k", "v")
        cache.destroy()
        cache.destroy()
        assert cache.size() == 0


class TestGetOrSet:
    def test_miss_calls_supplier_and_stores(self):
        cache = _cache()
        calls = []

        def supplier():
            calls.append(1)
            return "value"

        async def scenario():
            first = await cache.get_or_set("k", supplier, ttl=60)
            second = await cache.get_or_set("k", supplier, ttl=60)
            return first, second

        assert asyncio.run(scenario()) == ("value", "value")
        assert len(calls) == 1

    def test_async_supplier(self):
        cache = _cache()

        async def supplier():
            return 42

        assert asyncio.run(cache.get_or_set("answer", supplier)) == 42
        assert cache.get("answer") == 42

    def test_concurrent_callers_share_one_supplier_call(self):
        cache = _cache()
        calls = []

        async def supplier():
            calls.append(1)
            await asyncio.sleep(0.01)
            return "shared"

        async def scenario():
            return await asyncio.gather(*(cache.get_or_set("k", supplier) for _ in range(5)))

        assert asyncio.run(scenario()) == ["shared"] * 5
        assert len(calls) == 1

    def test_supplier_error_propagates_and_stores_nothing(self):
        cache = _cache()

        async def supplier():
            await asyncio.sleep(0.01)
            raise RuntimeError("upstream down")

        async def scenario():
            return await asyncio.gather(
                cache.get_or_set("k", supplier),
                cache.get_or_set("k", supplier),
                return_exceptions=True,
            )

        results = asyncio.run(scenario())
        assert all(isinstance(r, RuntimeError) for r in results)
        assert cache.has("k") is False

    def test_supplier_error_then_retry_succeeds(self):
        cache = _cache()

        def failing():
            raise ValueError("bad")

        async def scenario():
            with pytest.raises(ValueError):
                await cache.get_or_set("k", failing)
            return await cache.get_or_set("k", lambda: "ok")

        assert asyncio.run(scenario()) == "ok"
