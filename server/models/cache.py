"""SQLite-backed cache table for deployments without Redis.

Entries carry their own expiry timestamp, which makes this backend TTL-aware:
reports cached here are stored as a single row instead of a data entry plus a
separate ``_expires_at`` entry.
"""

import time
from typing import Optional
from sqlmodel import SQLModel, Field


class CacheEntry(SQLModel, table=True):
    """Key-value cache row with optional expiration (UNIX timestamp)."""

    __tablename__ = "cache_entries"

    key: str = Field(primary_key=True, max_length=512)
    value: str = Field(max_length=5000000)  # serialized report payloads can be large
    expires_at: Optional[float] = Field(default=None, index=True)
    created_at: float = Field(default_factory=time.time)

    def is_expired(self, now: Optional[float] = None) -> bool:
        """True once ``expires_at`` has passed; entries without expiry never expire."""
        if self.expires_at is None:
            return False
        return self.expires_at < (now if now is not None else time.time())
