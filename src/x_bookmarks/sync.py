"""Bookmark synchronization: decide between cached and fresh data.

One ``BookmarkSync`` is built per request around that request's API client.
A GET walks these states, each logged once:

    RESOLVE_IDENTITY -> CHECK_CACHE -> SERVE_CACHED | FETCH_UPSTREAM
        FETCH_UPSTREAM -> NORMALIZE -> UPDATE_CACHE -> RESPOND
    any step -> ERROR

The cache is served only for a non-forced, first-page request whose snapshot
is younger than CACHE_TTL. Anything else goes upstream, and first-page results
replace the snapshot. Concurrent refreshes for one user are not coordinated;
the last write wins, which is fine because the platform stays the source of
truth.

Rate-limit and auth failures are never retried here. They are classified
into a ``SyncFailure`` for the caller to act on. Cache and log writes are
best-effort and never change the outcome of a sync.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from .cache import cache_age_minutes, is_fresh
from .client import clamp_page_size
from .clock import Clock, utc_now
from .errors import StoreError, SyncFailure, classify_error
from .models import Bookmark, SyncLogEntry, UserInfo
from .parser import category_counts, parse_bookmarks

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    bookmarks: list[Bookmark]
    meta: dict
    cached: bool
    last_synced_at: datetime
    user: UserInfo
    max_results: int
    rate_limit_remaining: int | None = None
    rate_limit_reset: datetime | None = None
    categories: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "bookmarks": [b.to_dict() for b in self.bookmarks],
            "meta": self.meta,
            "cached": self.cached,
            "lastSyncedAt": self.last_synced_at.isoformat(),
            "user": self.user.to_dict(),
            "rateLimitInfo": {
                "remaining": self.rate_limit_remaining,
                "reset": (
                    self.rate_limit_reset.isoformat() if self.rate_limit_reset else None
                ),
                "maxResults": self.max_results,
            },
            "categories": self.categories,
        }


class BookmarkSync:
    def __init__(
        self,
        client,
        store,
        clock: Clock = utc_now,
        session_user_id: str | None = None,
    ):
        self.client = client
        self.store = store
        self.clock = clock
        # X id carried by the session, used when identity lookup itself fails
        self.session_user_id = session_user_id

    async def get_bookmarks(
        self,
        max_results: int | None = None,
        pagination_token: str | None = None,
        force_refresh: bool = False,
        sync_type: str | None = None,
    ) -> SyncResult:
        """Return the user's bookmarks, from cache when it is fresh enough."""
        started_at = self.clock()
        sync_type = sync_type or ("manual" if force_refresh else "auto")
        page_size = clamp_page_size(max_results)
        first_page = not pagination_token
        user: UserInfo | None = None

        try:
            self._transition("RESOLVE_IDENTITY")
            user = await self.client.get_current_user()

            self._transition(
                "CHECK_CACHE", user=user.id, force=force_refresh, first_page=first_page
            )
            previous = await self._read_cache(user.id) if first_page else None

            if (
                previous is not None
                and not force_refresh
                and is_fresh(previous.last_synced_at, self.clock())
            ):
                self._transition(
                    "SERVE_CACHED", user=user.id, count=len(previous.bookmarks)
                )
                await self._log_sync(user.id, sync_type, "success", started_at)
                self._transition("RESPOND", user=user.id, cached=True)
                return SyncResult(
                    bookmarks=previous.bookmarks,
                    meta=previous.meta,
                    cached=True,
                    last_synced_at=previous.last_synced_at,
                    user=user,
                    max_results=page_size,
                    categories=category_counts(previous.bookmarks),
                )

            self._transition("FETCH_UPSTREAM", user=user.id, max_results=page_size)
            page = await self.client.get_bookmarks(
                user.id, max_results=page_size, pagination_token=pagination_token
            )

            self._transition("NORMALIZE", user=user.id, result_count=page.result_count)
            bookmarks = parse_bookmarks(page.payload, self.clock().isoformat())
            if previous is not None:
                _carry_forward_bookmarked_at(bookmarks, previous.bookmarks)

            last_synced_at = self.clock()
            if first_page:
                self._transition("UPDATE_CACHE", user=user.id, count=len(bookmarks))
                last_synced_at = await self._write_cache(
                    user.id, bookmarks, page.meta, last_synced_at
                )
                await self._log_sync(
                    user.id,
                    sync_type,
                    "success",
                    started_at,
                    bookmarks_added=len(bookmarks),
                )

            self._transition("RESPOND", user=user.id, cached=False, count=len(bookmarks))
            return SyncResult(
                bookmarks=bookmarks,
                meta=page.meta,
                cached=False,
                last_synced_at=last_synced_at,
                user=user,
                max_results=page_size,
                rate_limit_remaining=page.rate_limit_remaining,
                rate_limit_reset=page.rate_limit_reset,
                categories=category_counts(bookmarks),
            )
        except Exception as e:
            failure = self._fail(e, "Failed to fetch bookmarks")
            log_user_id = user.id if user is not None else self.session_user_id
            if log_user_id:
                await self._log_sync(
                    log_user_id, sync_type, "error", started_at, error_message=str(e)
                )
            raise failure from e

    async def add_bookmark(self, post_id: str) -> dict:
        """Bookmark a post upstream, then drop the user's snapshot."""
        return await self._mutate("add", post_id)

    async def remove_bookmark(self, post_id: str) -> dict:
        """Remove a bookmark upstream, then drop the user's snapshot."""
        return await self._mutate("remove", post_id)

    async def _mutate(self, action: str, post_id: str) -> dict:
        try:
            self._transition("RESOLVE_IDENTITY", action=action)
            user = await self.client.get_current_user()
            self._transition("FETCH_UPSTREAM", user=user.id, action=action, post=post_id)
            if action == "add":
                await self.client.add_bookmark(user.id, post_id)
            else:
                await self.client.remove_bookmark(user.id, post_id)
        except Exception as e:
            raise self._fail(e, f"Failed to {action} bookmark") from e

        self._transition("UPDATE_CACHE", user=user.id, action="invalidate")
        try:
            await self.store.clear(user.id)
        except StoreError as e:
            logger.warning("Cache invalidation failed for user %s: %s", user.id, e)
        self._transition("RESPOND", user=user.id, action=action)
        return {"success": True}

    async def cache_status(self) -> dict:
        """Report whether a snapshot exists, how old it is and its size."""
        try:
            user = await self.client.get_current_user()
            entry = await self.store.read(user.id)
        except Exception as e:
            raise self._fail(e, "Failed to get cache status") from e

        if entry is None:
            return {
                "hasCache": False,
                "lastSynced": None,
                "cacheAgeMinutes": None,
                "bookmarksCount": 0,
                "isFresh": False,
            }

        now = self.clock()
        return {
            "hasCache": True,
            "lastSynced": entry.last_synced_at.isoformat(),
            "cacheAgeMinutes": cache_age_minutes(entry.last_synced_at, now),
            "bookmarksCount": len(entry.bookmarks),
            "isFresh": is_fresh(entry.last_synced_at, now),
        }

    async def clear_cache(self, log_sync: bool = True) -> dict:
        """Drop the user's snapshot on request and record it as a manual sync."""
        started_at = self.clock()
        try:
            user = await self.client.get_current_user()
            self._transition("UPDATE_CACHE", user=user.id, action="clear")
            await self.store.clear(user.id)
        except Exception as e:
            raise self._fail(e, "Failed to clear cache") from e

        if log_sync:
            await self._log_sync(user.id, "manual", "success", started_at)
        return {"success": True, "message": "Cache cleared successfully"}

    async def refresh_cache(self) -> dict:
        """Drop the snapshot so the next read goes upstream."""
        try:
            user = await self.client.get_current_user()
            self._transition("UPDATE_CACHE", user=user.id, action="refresh")
            await self.store.clear(user.id)
        except Exception as e:
            raise self._fail(e, "Failed to perform cache action") from e
        return {
            "success": True,
            "message": "Cache cleared. Next bookmarks request will fetch fresh data.",
        }

    async def sync_history(self, limit: int = 20) -> list[SyncLogEntry]:
        """Return the user's most recent sync attempts, newest first."""
        try:
            user = await self.client.get_current_user()
            return await self.store.recent_logs(user.id, limit=limit)
        except Exception as e:
            raise self._fail(e, "Failed to read sync history") from e

    async def _read_cache(self, user_id: str):
        try:
            return await self.store.read(user_id)
        except StoreError as e:
            logger.warning("Cache read failed for user %s, treating as miss: %s", user_id, e)
            return None

    async def _write_cache(
        self, user_id: str, bookmarks: list[Bookmark], meta: dict, fallback: datetime
    ) -> datetime:
        try:
            entry = await self.store.write(user_id, bookmarks, meta)
        except StoreError as e:
            logger.warning("Cache write failed for user %s: %s", user_id, e)
            return fallback
        return entry.last_synced_at

    async def _log_sync(
        self,
        user_id: str,
        sync_type: str,
        status: str,
        started_at: datetime,
        bookmarks_added: int = 0,
        bookmarks_updated: int = 0,
        error_message: str | None = None,
    ) -> None:
        entry = SyncLogEntry(
            user_id=user_id,
            sync_type=sync_type,
            status=status,
            started_at=started_at,
            bookmarks_added=bookmarks_added,
            bookmarks_updated=bookmarks_updated,
            error_message=error_message,
            completed_at=self.clock() if status != "error" else None,
        )
        try:
            await self.store.append_log(entry)
        except Exception:
            # The audit trail must never fail the sync it describes
            logger.exception("Sync log write failed for user %s", user_id)

    def _fail(self, exc: Exception, fallback: str) -> SyncFailure:
        failure = classify_error(exc, fallback)
        self._transition("ERROR", kind=failure.kind, status=failure.status_code)
        if failure.kind == "internal":
            logger.exception("Unexpected error: %s", exc)
        else:
            logger.warning("%s: %s", fallback, exc)
        return failure

    @staticmethod
    def _transition(state: str, **fields) -> None:
        details = " ".join(f"{key}={value}" for key, value in fields.items())
        logger.info("sync state=%s %s", state, details)


def _carry_forward_bookmarked_at(
    bookmarks: list[Bookmark], previous: list[Bookmark]
) -> None:
    """Keep the first-seen timestamp for bookmarks already in the snapshot."""
    seen = {b.id: b.bookmarked_at for b in previous if b.bookmarked_at}
    for b in bookmarks:
        if b.id in seen:
            b.bookmarked_at = seen[b.id]
