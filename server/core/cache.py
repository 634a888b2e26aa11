"""Cache service with Redis (production), SQLite or in-memory backend.

Redis and SQLite store an expiry with every entry and are TTL-aware. The
in-memory backend keeps plain key/value pairs; callers that need expiry on it
manage a separate ``<key>_expires_at`` entry themselves (see
``services.reports.base.Report.query``).

Backend errors are not swallowed here: a report that cannot reach its cache
fails loudly instead of silently recomputing on every request.
"""

import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TYPE_CHECKING

import redis.asyncio as redis

from core.config import Settings
from core.logging import get_logger, log_cache_operation

if TYPE_CHECKING:
    from core.database import Database

logger = get_logger(__name__)


class CacheBackendError(RuntimeError):
    """Operation not supported by the active cache backend."""


class CacheService:
    """Async cache service with Redis, SQLite or memory backend.

    Backend selection:
    - Redis: When REDIS_ENABLED=true and REDIS_URL is set (production)
    - SQLite: When Redis is disabled and a database is available
    - Memory: Otherwise (single process, no native TTL)
    """

    def __init__(self, settings: Settings, database: Optional["Database"] = None):
        self.settings = settings
        self.database = database
        self.redis: Optional[redis.Redis] = None
        self.memory_cache: Dict[str, Any] = {}
        self.use_redis = settings.redis_enabled and bool(settings.redis_url)
        self.use_sqlite = not self.use_redis and database is not None

    async def startup(self):
        """Initialize cache connection."""
        if self.use_redis:
            self.redis = redis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True
            )
            await self.redis.ping()
            logger.info("Redis cache initialized", url=self.settings.redis_url)
        elif self.use_sqlite:
            logger.info("Using SQLite cache")
        else:
            logger.info("Using in-memory cache", redis_enabled=self.settings.redis_enabled)

    async def shutdown(self):
        """Close cache connections."""
        if self.redis:
            await self.redis.close()
            logger.info("Redis cache connections closed")

        self.memory_cache.clear()

    @property
    def backend(self) -> str:
        """Name of the active backend: ``redis``, ``sqlite`` or ``memory``."""
        if self.use_redis and self.redis is not None:
            return "redis"
        if self.use_sqlite and self.database is not None:
            return "sqlite"
        return "memory"

    @property
    def supports_ttl(self) -> bool:
        """Whether entries expire on their own."""
        return self.backend != "memory"

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache, None on a miss."""
        backend = self.backend
        if backend == "redis":
            raw = await self.redis.get(key)
            value = json.loads(raw) if raw is not None else None
        elif backend == "sqlite":
            raw = await self.database.get_cache_entry(key)
            value = json.loads(raw) if raw is not None else None
        else:
            value = self.memory_cache.get(key)

        log_cache_operation(logger, "get", key, hit=value is not None, backend=backend)
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set value in cache.

        ``ttl`` defaults to ``settings.cache_ttl`` on TTL-aware backends and is
        ignored by the memory backend.
        """
        backend = self.backend
        ttl = ttl or self.settings.cache_ttl

        if backend == "redis":
            await self.redis.setex(key, ttl, json.dumps(value, default=str))
        elif backend == "sqlite":
            await self.database.set_cache_entry(key, json.dumps(value, default=str), ttl)
        else:
            self.memory_cache[key] = value

        log_cache_operation(logger, "set", key, ttl=ttl, backend=backend)

    async def delete(self, key: str) -> bool:
        """Delete value from cache."""
        backend = self.backend
        if backend == "redis":
            deleted = bool(await self.redis.delete(key))
        elif backend == "sqlite":
            deleted = await self.database.delete_cache_entry(key)
        else:
            deleted = self.memory_cache.pop(key, None) is not None

        log_cache_operation(logger, "delete", key, deleted=deleted, backend=backend)
        return deleted

    async def fetch(self, key: str, compute: Callable[[], Awaitable[Any]], ttl: int) -> Any:
        """Return the cached value for ``key`` or compute, store and return it.

        Only available on TTL-aware backends; the stored entry expires after
        ``ttl`` seconds without further bookkeeping by the caller.
        """
        if not self.supports_ttl:
            raise CacheBackendError(f"{self.backend} cache has no native TTL support")

        value = await self.get(key)
        if value is not None:
            return value

        value = await compute()
        await self.set(key, value, ttl=ttl)
        return value

    async def prune_expired(self, suffix: str, now: Optional[float] = None) -> int:
        """Drop expired data/expiry pairs from the memory backend.

        Every ``<key><suffix>`` entry holds the UNIX expiry of ``<key>``. TTL-aware
        backends expire entries themselves and are left alone.
        """
        if self.supports_ttl:
            return 0

        now = time.time() if now is None else now
        expired = [
            key for key, expires_at in self.memory_cache.items()
            if key.endswith(suffix) and isinstance(expires_at, (int, float)) and expires_at <= now
        ]
        for expires_key in expired:
            del self.memory_cache[expires_key]
            self.memory_cache.pop(expires_key[:-len(suffix)], None)

        if expired:
            log_cache_operation(logger, "prune_expired", suffix, deleted=len(expired), backend="memory")
        return len(expired)
