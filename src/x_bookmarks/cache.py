"""Per-user bookmark cache and sync log, backed by a relational store.

The cache is advisory: one snapshot row per user, replaced wholesale on every
refresh and never expired server-side. Freshness is decided at read time
against CACHE_TTL.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from .clock import Clock, as_utc, utc_now
from .database import (
    DEFAULT_DATABASE_URL,
    BookmarkCacheRow,
    SyncLogRow,
    init_db,
    make_engine,
    make_sessionmaker,
)
from .errors import StoreError
from .models import Bookmark, CacheEntry, SyncLogEntry

logger = logging.getLogger(__name__)

# Shared by the read path and the status report
CACHE_TTL = timedelta(hours=1)


def is_fresh(
    last_synced_at: datetime, now: datetime, ttl: timedelta = CACHE_TTL
) -> bool:
    """True iff the snapshot is strictly younger than ``ttl``."""
    return as_utc(now) - as_utc(last_synced_at) < ttl


def cache_age_minutes(last_synced_at: datetime, now: datetime) -> int:
    return int((as_utc(now) - as_utc(last_synced_at)).total_seconds() // 60)


class CacheStore:
    def __init__(
        self,
        database_url: str = DEFAULT_DATABASE_URL,
        clock: Clock = utc_now,
        echo: bool = False,
    ):
        self.clock = clock
        try:
            self._engine = make_engine(database_url, echo=echo)
        except SQLAlchemyError as e:
            raise StoreError(f"Invalid database URL {database_url!r}: {e}") from e
        self._sessions = make_sessionmaker(self._engine)

    async def init(self) -> None:
        try:
            await init_db(self._engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to initialize the database: {e}") from e

    async def close(self) -> None:
        await self._engine.dispose()

    async def read(self, user_id: str) -> CacheEntry | None:
        """Return the user's snapshot, or None if there is none."""
        try:
            async with self._sessions() as session:
                row = await session.get(BookmarkCacheRow, user_id)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read cache for {user_id}: {e}") from e

        if row is None:
            return None
        data = row.data or {}
        return CacheEntry(
            user_id=row.user_id,
            bookmarks=[Bookmark.from_dict(b) for b in data.get("bookmarks", [])],
            meta=data.get("meta") or {},
            last_synced_at=as_utc(row.last_synced_at),
        )

    async def write(
        self, user_id: str, bookmarks: list[Bookmark], meta: dict
    ) -> CacheEntry:
        """Replace the user's snapshot and stamp it with the current time."""
        synced_at = self.clock()
        row = BookmarkCacheRow(
            user_id=user_id,
            data={"bookmarks": [b.to_dict() for b in bookmarks], "meta": meta},
            last_synced_at=synced_at,
        )
        try:
            async with self._sessions() as session:
                async with session.begin():
                    await session.merge(row)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to write cache for {user_id}: {e}") from e

        logger.debug("Cached %d bookmarks for user %s", len(bookmarks), user_id)
        return CacheEntry(
            user_id=user_id,
            bookmarks=list(bookmarks),
            meta=meta,
            last_synced_at=synced_at,
        )

    async def clear(self, user_id: str) -> None:
        """Delete the user's snapshot. Missing snapshots are fine."""
        try:
            async with self._sessions() as session:
                async with session.begin():
                    await session.execute(
                        delete(BookmarkCacheRow).where(
                            BookmarkCacheRow.user_id == user_id
                        )
                    )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to clear cache for {user_id}: {e}") from e

    def is_fresh(self, last_synced_at: datetime) -> bool:
        return is_fresh(last_synced_at, self.clock())

    async def append_log(self, entry: SyncLogEntry) -> None:
        """Insert a sync log row. Never raises."""
        row = SyncLogRow(
            user_id=entry.user_id,
            sync_type=entry.sync_type,
            status=entry.status,
            bookmarks_added=entry.bookmarks_added,
            bookmarks_updated=entry.bookmarks_updated,
            error_message=entry.error_message,
            started_at=entry.started_at,
            completed_at=entry.completed_at,
            created_at=self.clock(),
        )
        try:
            async with self._sessions() as session:
                async with session.begin():
                    session.add(row)
        except SQLAlchemyError as e:
            logger.error("Error logging sync for user %s: %s", entry.user_id, e)

    async def recent_logs(self, user_id: str, limit: int = 20) -> list[SyncLogEntry]:
        """Return the user's latest sync log entries, newest first."""
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    select(SyncLogRow)
                    .where(SyncLogRow.user_id == user_id)
                    .order_by(SyncLogRow.id.desc())
                    .limit(limit)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read sync logs for {user_id}: {e}") from e

        return [
            SyncLogEntry(
                user_id=r.user_id,
                sync_type=r.sync_type,
                status=r.status,
                started_at=as_utc(r.started_at),
                bookmarks_added=r.bookmarks_added,
                bookmarks_updated=r.bookmarks_updated,
                error_message=r.error_message,
                completed_at=as_utc(r.completed_at) if r.completed_at else None,
            )
            for r in rows
        ]
