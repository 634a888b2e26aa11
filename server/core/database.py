"""Async database service with SQLModel and SQLAlchemy 2.0.

Holds three kinds of rows: cache entries (the SQLite cache backend),
editable-field submissions for reports, and chart images posted by clients.
"""

import time
from typing import Dict, Any, Iterable, Optional
from sqlmodel import SQLModel, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from contextlib import asynccontextmanager

from core.config import Settings
from models.database import ReportData, ChartImage
from models.cache import CacheEntry
from core.logging import get_logger

logger = get_logger(__name__)


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            engine_kwargs: Dict[str, Any] = {"echo": self.settings.database_echo}
            # In-memory SQLite runs on a StaticPool which takes no sizing arguments
            if ":memory:" not in self.settings.database_url:
                engine_kwargs["pool_size"] = self.settings.database_pool_size
                engine_kwargs["max_overflow"] = self.settings.database_max_overflow

            self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully", url=self.settings.database_url)

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    # ============================================================================
    # Cache Entries (SQLite-backed Redis alternative)
    # ============================================================================

    async def get_cache_entry(self, key: str) -> Optional[str]:
        """Get cache value by key. Returns None if expired or not found."""
        async with self.get_session() as session:
            stmt = select(CacheEntry).where(CacheEntry.key == key)
            result = await session.execute(stmt)
            entry = result.scalar_one_or_none()

            if not entry:
                return None

            if entry.is_expired():
                await session.delete(entry)
                await session.commit()
                return None

            return entry.value

    async def set_cache_entry(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Set cache value with optional TTL in seconds."""
        now = time.time()
        expires_at = now + ttl if ttl else None

        async with self.get_session() as session:
            stmt = select(CacheEntry).where(CacheEntry.key == key)
            result = await session.execute(stmt)
            existing = result.scalar_one_or_none()

            if existing:
                existing.value = value
                existing.expires_at = expires_at
                existing.created_at = now
            else:
                session.add(CacheEntry(
                    key=key,
                    value=value,
                    expires_at=expires_at,
                    created_at=now
                ))

            await session.commit()

    async def delete_cache_entry(self, key: str) -> bool:
        """Delete cache entry by key. Returns True if a row was removed."""
        async with self.get_session() as session:
            stmt = select(CacheEntry).where(CacheEntry.key == key)
            result = await session.execute(stmt)
            entry = result.scalar_one_or_none()

            if not entry:
                return False

            await session.delete(entry)
            await session.commit()
            return True

    async def cleanup_expired_cache(self) -> int:
        """Remove all expired cache entries. Returns count deleted."""
        async with self.get_session() as session:
            stmt = select(CacheEntry).where(
                CacheEntry.expires_at.isnot(None),
                CacheEntry.expires_at < time.time()
            )
            result = await session.execute(stmt)
            entries = result.scalars().all()

            for entry in entries:
                await session.delete(entry)

            await session.commit()
            if entries:
                logger.info("Cleaned up expired cache entries", count=len(entries))
            return len(entries)

    # ============================================================================
    # Report Data (editable-field submissions)
    # ============================================================================

    async def save_report_data(self, user_id: int, project_id: int, key: str,
                               data: Dict[str, str]) -> ReportData:
        """Store a new submission; earlier ones are kept for history."""
        async with self.get_session() as session:
            row = ReportData(user_id=user_id, project_id=project_id, key=key, data=dict(data))
            session.add(row)
            await session.commit()
            await session.refresh(row)
            logger.debug("Saved report data", key=key, user_id=user_id,
                         project_id=project_id, fields=len(data))
            return row

    async def get_latest_report_data(self, user_id: int, project_id: int,
                                     key: str) -> Optional[Dict[str, str]]:
        """Newest submission for the triple, or None when nothing was posted."""
        async with self.get_session() as session:
            stmt = (
                select(ReportData)
                .where(
                    ReportData.user_id == user_id,
                    ReportData.project_id == project_id,
                    ReportData.key == key,
                )
                .order_by(ReportData.id.desc())
                .limit(1)
            )
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
            return dict(row.data) if row and row.data else None

    # ============================================================================
    # Chart Images
    # ============================================================================

    async def save_chart_image(self, key: str, data: bytes,
                               content_type: str = "image/png") -> None:
        """Insert or replace the image for a chart image key."""
        async with self.get_session() as session:
            stmt = select(ChartImage).where(ChartImage.key == key)
            result = await session.execute(stmt)
            existing = result.scalar_one_or_none()

            if existing:
                existing.data = data
                existing.content_type = content_type
            else:
                session.add(ChartImage(key=key, data=data, content_type=content_type))

            await session.commit()

    async def get_chart_images(self, keys: Iterable[str]) -> Dict[str, bytes]:
        """Images for the given keys; keys without an image are left out."""
        keys = [k for k in keys if k]
        if not keys:
            return {}

        async with self.get_session() as session:
            stmt = select(ChartImage).where(ChartImage.key.in_(keys))
            result = await session.execute(stmt)
            return {image.key: image.data for image in result.scalars().all()}
