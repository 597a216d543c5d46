from __future__ import annotations

from pathlib import Path

import pytest

from serp_entities.errors import CacheError
from serp_entities.services.cache_store import FileCacheStore
from serp_entities.tools.analysis_cache import AnalysisCache, CacheEntry, build_cache_key


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class DictStore:
    def __init__(self):
        self.data: dict[str, str] = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ttl_seconds):
        self.data[key] = value

    async def delete(self, key):
        self.data.pop(key, None)

    async def keys(self, prefix):
        return [k for k in self.data if k.startswith(prefix)]


class BrokenStore:
    async def get(self, key):
        raise CacheError("store down")

    async def set(self, key, value, ttl_seconds):
        raise CacheError("store down")

    async def delete(self, key):
        raise CacheError("store down")

    async def keys(self, prefix):
        raise CacheError("store down")


def test_cache_key_covers_search_parameters():
    assert build_cache_key("уроки английского", "ru", "ru", "mobile") == (
        "analysis:уроки английского:ru:ru:mobile"
    )


@pytest.mark.asyncio
async def test_memory_round_trip_and_ttl_expiry():
    clock = FakeClock()
    cache = AnalysisCache(clock=clock)
    value = {"top10": [], "timestamp": "2024-01-01T00:00:00+00:00"}

    await cache.set("analysis:q:us:en:desktop", value, ttl=10)
    clock.now += 9.9
    assert await cache.get("analysis:q:us:en:desktop") == value

    clock.now += 0.1
    assert await cache.get("analysis:q:us:en:desktop") is None


@pytest.mark.asyncio
async def test_durable_hit_survives_a_new_process(tmp_path: Path):
    store = FileCacheStore(cache_dir=str(tmp_path))
    await AnalysisCache(store).set("analysis:q:us:en:desktop", {"answer": 42})

    fresh = AnalysisCache(FileCacheStore(cache_dir=str(tmp_path)))
    assert await fresh.get("analysis:q:us:en:desktop") == {"answer": 42}
    assert fresh.memory_keys() == []


@pytest.mark.asyncio
async def test_expired_durable_entry_is_a_miss_and_not_promoted():
    clock = FakeClock()
    store = DictStore()
    store.data["analysis:q:us:en:desktop"] = CacheEntry(
        data={"stale": True}, created_at=clock.now - 100, ttl=50
    ).to_json()
    cache = AnalysisCache(store, clock=clock)

    assert await cache.get("analysis:q:us:en:desktop") is None
    assert cache.memory_keys() == []


@pytest.mark.asyncio
async def test_broken_store_degrades_to_memory_only():
    cache = AnalysisCache(BrokenStore())

    await cache.set("analysis:q:us:en:desktop", {"ok": True})
    assert await cache.get("analysis:q:us:en:desktop") == {"ok": True}

    await cache.clear()
    assert await cache.get("analysis:q:us:en:desktop") is None
    assert cache.stats() == {"memory_entries": 0, "has_durable_store": True}


@pytest.mark.asyncio
async def test_memory_tier_evicts_oldest_entries():
    clock = FakeClock()
    cache = AnalysisCache(max_memory_entries=2, clock=clock)

    for key in ("analysis:a", "analysis:b", "analysis:c"):
        await cache.set(key, key)
        clock.now += 1

    assert sorted(cache.memory_keys()) == ["analysis:b", "analysis:c"]
    assert await cache.get("analysis:a") is None


@pytest.mark.asyncio
async def test_clear_only_touches_own_namespace():
    store = DictStore()
    store.data["other:keep"] = "x"
    cache = AnalysisCache(store)
    await cache.set("analysis:q:us:en:desktop", {"v": 1})

    await cache.clear()

    assert list(store.data) == ["other:keep"]
    assert cache.memory_keys() == []


@pytest.mark.asyncio
async def test_delete_removes_both_tiers():
    store = DictStore()
    cache = AnalysisCache(store)
    await cache.set("analysis:q:us:en:desktop", {"v": 1})

    await cache.delete("analysis:q:us:en:desktop")

    assert store.data == {}
    assert await cache.get("analysis:q:us:en:desktop") is None


@pytest.mark.asyncio
async def test_file_store_honours_expiry_and_prefix(tmp_path: Path):
    clock = FakeClock()
    store = FileCacheStore(cache_dir=str(tmp_path), clock=clock)
    await store.set("analysis:a", "one", 10)
    await store.set("other:b", "two", 10)

    assert await store.keys("analysis:") == ["analysis:a"]
    assert await store.get("analysis:a") == "one"

    clock.now += 10
    assert await store.get("analysis:a") is None
    assert not list(tmp_path.glob("*.tmp"))
