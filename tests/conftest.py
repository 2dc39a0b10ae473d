"""Shared test fixtures and per-test fakes for the API client and store."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from x_bookmarks.errors import StoreError
from x_bookmarks.models import BookmarksPage, CacheEntry, UserInfo

FIXTURES_DIR = Path(__file__).parent / "fixtures"

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeXApiClient:
    """Stands in for XApiClient; records calls, raises configured errors."""

    def __init__(self, payload: dict | None = None, user: UserInfo | None = None):
        self.user = user or UserInfo(id="42", name="Test User", username="testuser")
        self.payload = payload if payload is not None else {"data": [], "meta": {}}
        self.errors: dict[str, Exception] = {}
        self.calls: list[tuple] = []
        self.bookmarked: set[str] = set()
        self.closed = False

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.errors:
            raise self.errors[name]

    def calls_to(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def get_current_user(self) -> UserInfo:
        self._record("get_current_user")
        return self.user

    async def get_bookmarks(
        self, user_id, max_results=10, pagination_token=None, **kwargs
    ) -> BookmarksPage:
        self._record("get_bookmarks", user_id, max_results, pagination_token)
        meta = self.payload.get("meta") or {}
        return BookmarksPage(
            payload=self.payload,
            next_token=meta.get("next_token"),
            result_count=int(meta.get("result_count") or 0),
            rate_limit_remaining=179,
        )

    async def add_bookmark(self, user_id, post_id) -> dict:
        self._record("add_bookmark", user_id, post_id)
        self.bookmarked.add(post_id)
        return {"data": {"bookmarked": True}}

    async def remove_bookmark(self, user_id, post_id) -> dict:
        self._record("remove_bookmark", user_id, post_id)
        self.bookmarked.discard(post_id)
        return {"data": {"bookmarked": False}}

    async def close(self) -> None:
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class MemoryStore:
    """In-memory CacheStore with switchable failures."""

    def __init__(self, clock):
        self.clock = clock
        self.entries: dict[str, CacheEntry] = {}
        self.logs: list = []
        self.fail_reads = False
        self.fail_writes = False
        self.fail_clears = False
        self.fail_logs = False

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def read(self, user_id):
        if self.fail_reads:
            raise StoreError("read failed")
        return self.entries.get(user_id)

    async def write(self, user_id, bookmarks, meta):
        if self.fail_writes:
            raise StoreError("write failed")
        entry = CacheEntry(
            user_id=user_id,
            bookmarks=list(bookmarks),
            meta=meta,
            last_synced_at=self.clock(),
        )
        self.entries[user_id] = entry
        return entry

    async def clear(self, user_id) -> None:
        if self.fail_clears:
            raise StoreError("clear failed")
        self.entries.pop(user_id, None)

    async def append_log(self, entry) -> None:
        if self.fail_logs:
            raise StoreError("log failed")
        self.logs.append(entry)

    async def recent_logs(self, user_id, limit=20):
        logs = [e for e in reversed(self.logs) if e.user_id == user_id]
        return logs[:limit]


@pytest.fixture
def bookmarks_response() -> dict:
    """Load the sample bookmarks page."""
    with open(FIXTURES_DIR / "bookmarks_response.json") as f:
        return json.load(f)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def fake_client(bookmarks_response) -> FakeXApiClient:
    return FakeXApiClient(bookmarks_response)


@pytest.fixture
def memory_store(clock) -> MemoryStore:
    return MemoryStore(clock)
