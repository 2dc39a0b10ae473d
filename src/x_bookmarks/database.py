"""Database engine, session factory and table definitions.

Two tables back the cache:
    bookmarks_cache  one row per user, the latest bookmark snapshot as JSON
    sync_logs        append-only audit trail of sync attempts
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///x_bookmarks.db"


class Base(DeclarativeBase):
    pass


class BookmarkCacheRow(Base):
    __tablename__ = "bookmarks_cache"

    user_id = Column(String(64), primary_key=True)
    data = Column(JSON, nullable=False)  # {"bookmarks": [...], "meta": {...}}
    last_synced_at = Column(DateTime(timezone=True), nullable=False)


class SyncLogRow(Base):
    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    sync_type = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False)
    bookmarks_added = Column(Integer, default=0, nullable=False)
    bookmarks_updated = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


def make_engine(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> AsyncEngine:
    engine = create_async_engine(url, echo=echo, future=True)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    return engine


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create tables if they do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
