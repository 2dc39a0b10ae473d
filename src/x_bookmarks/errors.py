"""Error taxonomy for upstream, store and sync failures."""

from datetime import datetime

RATE_LIMIT_WINDOW = "15 minutes"


class BookmarksError(Exception):
    """Base class for all errors raised by this package."""


class AuthError(BookmarksError):
    """Access token expired or invalid; the user must sign in again."""


class UpstreamPermissionError(BookmarksError):
    """The token lacks the OAuth scope required for the call."""


class RateLimitError(BookmarksError):
    """The upstream API throttled the request."""

    def __init__(self, message: str, reset_at: datetime | None = None):
        super().__init__(message)
        self.reset_at = reset_at


class NotFoundError(BookmarksError):
    """The referenced post or user does not exist upstream."""


class UpstreamError(BookmarksError):
    """Any other non-2xx response or transport failure."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StoreError(BookmarksError):
    """Cache or sync-log persistence failed."""


class SyncFailure(BookmarksError):
    """A classified failure ready to be shown to the caller."""

    def __init__(
        self,
        status_code: int,
        message: str,
        kind: str,
        retry_after: str | None = None,
        reset_at: datetime | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.kind = kind
        self.retry_after = retry_after
        self.reset_at = reset_at

    def to_dict(self) -> dict:
        data: dict = {"error": self.message, "kind": self.kind}
        if self.retry_after:
            data["retryAfter"] = self.retry_after
        if self.reset_at:
            data["resetAt"] = self.reset_at.isoformat()
        return data


def classify_error(exc: Exception, fallback: str = "Request failed") -> SyncFailure:
    """Map an exception to a stable status code and user-facing message.

    Rate-limit and auth errors carry actionable guidance. Everything else gets
    the generic ``fallback`` message; internal details stay in the logs.
    """
    if isinstance(exc, SyncFailure):
        return exc
    if isinstance(exc, RateLimitError):
        return SyncFailure(
            429,
            f"Rate limit exceeded. Please try again in {RATE_LIMIT_WINDOW}.",
            "rate_limit",
            retry_after=RATE_LIMIT_WINDOW,
            reset_at=exc.reset_at,
        )
    if isinstance(exc, AuthError):
        return SyncFailure(
            401, "Authentication expired. Please sign in again.", "auth"
        )
    if isinstance(exc, UpstreamPermissionError):
        return SyncFailure(
            403,
            "Insufficient permissions. Please check your X.com app settings.",
            "permission",
        )
    if isinstance(exc, NotFoundError):
        return SyncFailure(404, "Bookmark not found.", "not_found")
    if isinstance(exc, StoreError):
        return SyncFailure(500, fallback, "store")
    if isinstance(exc, UpstreamError):
        return SyncFailure(500, fallback, "upstream")
    return SyncFailure(500, fallback, "internal")
