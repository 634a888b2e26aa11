"""CacheService behaviour shared by the report cache strategies."""

import time


async def test_memory_values_are_stored_as_is(memory_cache):
    value = [{"kind": "text"}]
    await memory_cache.set("k", value)
    assert await memory_cache.get("k") is value


async def test_sqlite_values_round_trip_as_json(sqlite_cache):
    await sqlite_cache.set("k", [{"kind": "table", "rows": [[1, None]]}], ttl=60)
    assert await sqlite_cache.get("k") == [{"kind": "table", "rows": [[1, None]]}]


async def test_sqlite_entries_expire(sqlite_cache, monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(time, "time", lambda: now[0])

    await sqlite_cache.set("k", {"a": 1}, ttl=10)
    now[0] = 1011.0

    assert await sqlite_cache.get("k") is None


async def test_delete(memory_cache, redis_cache, sqlite_cache):
    for cache in (memory_cache, redis_cache, sqlite_cache):
        await cache.set("k", 1, ttl=60)
        assert await cache.delete("k")
        assert not await cache.delete("k")
        assert await cache.get("k") is None


async def test_prune_expired_drops_expired_pairs_only(memory_cache):
    await memory_cache.set("old", [1])
    await memory_cache.set("old_expires_at", 100.0)
    await memory_cache.set("fresh", [2])
    await memory_cache.set("fresh_expires_at", 200.0)
    await memory_cache.set("plain", 3)

    assert await memory_cache.prune_expired("_expires_at", now=150.0) == 1
    assert sorted(memory_cache.memory_cache) == ["fresh", "fresh_expires_at", "plain"]


async def test_prune_expired_leaves_ttl_backends_alone(redis_cache):
    await redis_cache.set("old_expires_at", 100.0, ttl=60)
    assert await redis_cache.prune_expired("_expires_at", now=150.0) == 0
    assert await redis_cache.get("old_expires_at") == 100.0


async def test_cleanup_expired_cache(database, monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(time, "time", lambda: now[0])

    await database.set_cache_entry("short", "1", ttl=5)
    await database.set_cache_entry("long", "2", ttl=500)
    now[0] = 1010.0

    assert await database.cleanup_expired_cache() == 1
    assert await database.get_cache_entry("long") == "2"
