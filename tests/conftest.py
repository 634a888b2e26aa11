"""Shared fixtures: settings, the three cache backends and sample reports."""

import fnmatch
import time

import pytest

from core.cache import CacheService
from core.config import Settings
from core.database import Database
from services.reports import Report


class FakeRedis:
    """In-process stand-in for ``redis.asyncio.Redis`` with key expiry."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        item = self.store.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= time.time():
            del self.store[key]
            return None
        return value

    async def setex(self, key, ttl, value):
        self.store[key] = (value, time.time() + ttl)

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def keys(self, pattern):
        return [key for key in self.store if fnmatch.fnmatch(key, pattern)]

    async def ping(self):
        return True

    async def close(self):
        self.store.clear()


class SampleReport(Report):
    """Three tables, two charts, one editable text and the run options."""

    name = "Sample"

    def __init__(self, options=None, **kwargs):
        super().__init__(options, **kwargs)
        self.query_count = 0

    async def do_query(self):
        self.query_count += 1
        self.h1("Sample report")
        self.text("Summary goes here", editable=True)
        self.show_params(*sorted(self.options.items()))
        self.t([[1, "a"], [2, "b"]], columns=["id", "name"], title="First")
        self.bar_chart("Results", ["mon", "tue"], {"passed": [1, 2], "failed": [0, 1]})
        self.t([[3, "c"]], columns=["id", "name"])
        self.line_chart("Trend", ["w1", "w2"], {"runs": [4, 5]})
        self.t([["x", None]], columns=["k", "v"])


class FailingReport(Report):
    name = "Failing"

    async def do_query(self):
        self.h1("Half built")
        raise RuntimeError("source unavailable")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path}/reports.db",
        redis_enabled=False,
        www_host="reports.test",
        www_path="tool",
    )


@pytest.fixture
def memory_cache(settings):
    cache = CacheService(settings)
    assert cache.backend == "memory"
    return cache


@pytest.fixture
def redis_cache(settings):
    redis_settings = settings.model_copy(update={"redis_enabled": True, "redis_url": "redis://fake:6379/0"})
    cache = CacheService(redis_settings)
    cache.redis = FakeRedis()
    assert cache.backend == "redis"
    return cache


@pytest.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest.fixture
def sqlite_cache(settings, database):
    cache = CacheService(settings, database)
    assert cache.backend == "sqlite"
    return cache
