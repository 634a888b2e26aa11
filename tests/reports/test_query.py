"""Cache orchestration of ``Report.query`` on every backend."""

import time
from datetime import datetime
from decimal import Decimal

import pytest

from conftest import FailingReport, SampleReport
from core.cache import CacheBackendError
from services.reports import Report, ReportError, ReportNotLoadedError, ReportState


class DatedReport(Report):
    name = "Dated"

    def __init__(self, options=None, **kwargs):
        super().__init__(options, **kwargs)
        self.query_count = 0

    async def do_query(self):
        self.query_count += 1
        self.t(
            [[datetime(2024, 1, self.options["day"], 3, 4, 5), Decimal("1.50"), 7]],
            columns=["when", "amount", "n"],
        )


class ReentrantReport(Report):
    async def do_query(self):
        self.h1("Before")
        await self.query()


async def test_zero_ttl_always_queries(memory_cache):
    report = SampleReport({"project": 1}, cache=memory_cache, expires_in=0)

    await report.query()
    await report.query()

    assert report.query_count == 2
    assert memory_cache.memory_cache == {}


async def test_without_cache_always_queries():
    report = SampleReport()
    await report.query()
    await report.query()
    assert report.query_count == 2


async def test_requery_does_not_duplicate_components():
    report = SampleReport()
    first = len(await report.query())
    second = len(await report.query())
    assert first == second == 8


async def test_memory_backend_writes_data_and_expiry_entries(memory_cache, monkeypatch):
    monkeypatch.setattr(time, "time", lambda: 1000.0)
    report = SampleReport({"project": 1}, cache=memory_cache, expires_in=60)

    await report.query()

    key = report.cache_key
    assert memory_cache.memory_cache[f"{key}_expires_at"] == 1060.0
    assert memory_cache.memory_cache[key][0]["kind"] == "text"


async def test_memory_backend_hit_within_ttl(memory_cache, monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(time, "time", lambda: now[0])

    first = SampleReport({"project": 1}, cache=memory_cache, expires_in=60)
    await first.query()

    now[0] = 1059.0
    second = SampleReport({"project": 1}, cache=memory_cache, expires_in=60)
    data = await second.query()

    assert first.query_count == 1
    assert second.query_count == 0
    assert second.state is ReportState.LOADED
    assert [c.kind for c in data] == [c.kind for c in await first.to_data()]


async def test_memory_backend_miss_after_expiry(memory_cache, monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(time, "time", lambda: now[0])

    await SampleReport({"project": 1}, cache=memory_cache, expires_in=60).query()

    now[0] = 1061.0
    second = SampleReport({"project": 1}, cache=memory_cache, expires_in=60)
    await second.query()

    assert second.query_count == 1
    assert memory_cache.memory_cache[f"{second.cache_key}_expires_at"] == 1121.0


async def test_memory_backend_ignores_data_without_expiry_entry(memory_cache):
    report = SampleReport({"project": 1}, cache=memory_cache)
    await memory_cache.set(report.cache_key, [{"kind": "text", "value": "stale"}])

    await report.query()

    assert report.query_count == 1


async def test_different_options_do_not_share_entries(memory_cache):
    await SampleReport({"project": 1}, cache=memory_cache).query()
    other = SampleReport({"project": 2}, cache=memory_cache)
    await other.query()
    assert other.query_count == 1


async def test_redis_backend_uses_single_entry(redis_cache):
    first = SampleReport({"project": 1}, cache=redis_cache, expires_in=30)
    await first.query()

    second = SampleReport({"project": 1}, cache=redis_cache, expires_in=30)
    await second.query()

    assert first.query_count == 1
    assert second.query_count == 0
    assert list(redis_cache.redis.store) == [first.cache_key]


async def test_redis_backend_expires_entries(redis_cache, monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(time, "time", lambda: now[0])

    await SampleReport({"project": 1}, cache=redis_cache, expires_in=30).query()
    now[0] = 1031.0
    second = SampleReport({"project": 1}, cache=redis_cache, expires_in=30)
    await second.query()

    assert second.query_count == 1


async def test_sqlite_backend_hit(sqlite_cache):
    first = SampleReport({"project": 1}, cache=sqlite_cache)
    await first.query()

    second = SampleReport({"project": 1}, cache=sqlite_cache)
    data = await second.query()

    assert second.query_count == 0
    assert data[3].rows == [[1, "a"], [2, "b"]]
    assert await sqlite_cache.get(f"{first.cache_key}_expires_at") is None


async def test_fetch_computes_only_on_miss(redis_cache):
    calls = []

    async def compute():
        calls.append(1)
        return {"value": len(calls)}

    assert await redis_cache.fetch("k", compute, 10) == {"value": 1}
    assert await redis_cache.fetch("k", compute, 10) == {"value": 1}
    assert len(calls) == 1


async def test_fetch_requires_ttl_backend(memory_cache):
    async def compute():
        return 1

    with pytest.raises(CacheBackendError):
        await memory_cache.fetch("k", compute, 10)


def test_ttl_support_per_backend(memory_cache, redis_cache, sqlite_cache):
    assert not memory_cache.supports_ttl
    assert redis_cache.supports_ttl
    assert sqlite_cache.supports_ttl


async def test_failed_query_resets_state(memory_cache):
    report = FailingReport(cache=memory_cache)

    with pytest.raises(RuntimeError, match="source unavailable"):
        await report.query()

    assert report.state is ReportState.UNLOADED
    assert report._data == []
    assert memory_cache.memory_cache == {}


async def test_expire_cache_forces_rebuild(memory_cache):
    await SampleReport({"project": 1}, cache=memory_cache).query()

    report = SampleReport({"project": 1}, cache=memory_cache)
    await report.expire_cache()
    await report.query()

    assert report.query_count == 1


def test_accessors_require_loaded_report():
    report = SampleReport()
    with pytest.raises(ReportNotLoadedError):
        report.tables


async def test_query_from_inside_do_query_is_rejected():
    report = ReentrantReport()

    with pytest.raises(ReportError, match="querying -> querying"):
        await report.query()

    assert report.state is ReportState.UNLOADED
    assert report._data == []


@pytest.mark.parametrize("backend", ["memory", "redis", "sqlite"])
async def test_cache_hit_matches_fresh_build(backend, memory_cache, redis_cache, sqlite_cache):
    cache = {"memory": memory_cache, "redis": redis_cache, "sqlite": sqlite_cache}[backend]

    fresh = DatedReport({"day": 2}, cache=cache)
    cached = DatedReport({"day": 2}, cache=cache)
    fresh_csv = await fresh.to_csv()
    cached_csv = await cached.to_csv()

    assert (fresh.query_count, cached.query_count) == (1, 0)
    assert cached_csv == fresh_csv
    assert fresh.row(0) == cached.row(0)
    assert await fresh.as_json() == await cached.as_json()


async def test_expired_memory_pairs_are_removed(memory_cache, monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(time, "time", lambda: now[0])

    old = SampleReport({"project": 1}, cache=memory_cache, expires_in=60)
    await old.query()
    now[0] = 1100.0
    other = SampleReport({"project": 2}, cache=memory_cache, expires_in=60)
    await other.query()

    assert sorted(memory_cache.memory_cache) == sorted(
        [other.cache_key, f"{other.cache_key}_expires_at"]
    )
