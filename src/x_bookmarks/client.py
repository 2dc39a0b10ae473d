"""X API v2 client for reading and mutating a user's bookmarks.

Authentication is an OAuth 2.0 user-context bearer token obtained by the
sign-in flow. When a refresh token is held, ``refresh_access_token`` trades it
for a new pair. The client never retries on its own; callers decide what to do
with a rate limit or an expired token.

Override the API host with the X_API_BASE_URL environment variable (useful
for pointing at a local mock server).
"""

import logging
import os
from datetime import datetime, timezone

import httpx

from .errors import (
    AuthError,
    NotFoundError,
    RateLimitError,
    UpstreamError,
    UpstreamPermissionError,
)
from .models import BookmarksPage, UserInfo

logger = logging.getLogger(__name__)

API_BASE_URL = os.environ.get("X_API_BASE_URL", "https://api.twitter.com/2")

REQUEST_TIMEOUT = 10.0

# Upper bound on page size; keeps each sync well inside the rate limit
MAX_PAGE_SIZE = 20
DEFAULT_PAGE_SIZE = 10

DEFAULT_EXPANSIONS = ["author_id", "attachments.media_keys", "referenced_tweets.id"]
DEFAULT_TWEET_FIELDS = [
    "id",
    "text",
    "created_at",
    "public_metrics",
    "context_annotations",
    "entities",
    "attachments",
]
DEFAULT_USER_FIELDS = ["id", "name", "username", "profile_image_url", "verified"]
DEFAULT_MEDIA_FIELDS = [
    "url",
    "preview_image_url",
    "type",
    "width",
    "height",
    "alt_text",
]
ME_USER_FIELDS = [
    "id",
    "name",
    "username",
    "profile_image_url",
    "public_metrics",
    "verified",
    "description",
    "created_at",
]


def clamp_page_size(max_results: int | None) -> int:
    """Cap the requested page size at MAX_PAGE_SIZE (and at least 1)."""
    if max_results is None:
        return DEFAULT_PAGE_SIZE
    return max(1, min(int(max_results), MAX_PAGE_SIZE))


class XApiClient:
    """Async client for the X API v2 bookmark endpoints."""

    def __init__(
        self,
        access_token: str,
        refresh_token: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        base_url: str | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._base_url = (base_url or API_BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            headers={"content-type": "application/json"},
            timeout=timeout,
        )

    async def get_current_user(self) -> UserInfo:
        """Resolve the identity of the token holder."""
        data = await self._request(
            "GET", "/users/me", params={"user.fields": ",".join(ME_USER_FIELDS)}
        )
        user = data.get("data") or {}
        if not user.get("id"):
            raise UpstreamError("User lookup returned no id")
        return UserInfo(
            id=user["id"],
            name=user.get("name", ""),
            username=user.get("username", ""),
            avatar_url=user.get("profile_image_url"),
            verified=bool(user.get("verified", False)),
        )

    async def get_bookmarks(
        self,
        user_id: str,
        max_results: int | None = DEFAULT_PAGE_SIZE,
        pagination_token: str | None = None,
        expansions: list[str] | None = None,
        tweet_fields: list[str] | None = None,
        user_fields: list[str] | None = None,
        media_fields: list[str] | None = None,
    ) -> BookmarksPage:
        """Fetch a single page of bookmarks.

        ``max_results`` above MAX_PAGE_SIZE is silently capped. Pagination is
        left to the caller through the returned ``next_token``.
        """
        params = {
            "max_results": str(clamp_page_size(max_results)),
            "expansions": ",".join(expansions or DEFAULT_EXPANSIONS),
            "tweet.fields": ",".join(tweet_fields or DEFAULT_TWEET_FIELDS),
            "user.fields": ",".join(user_fields or DEFAULT_USER_FIELDS),
            "media.fields": ",".join(media_fields or DEFAULT_MEDIA_FIELDS),
        }
        if pagination_token:
            params["pagination_token"] = pagination_token

        response = await self._send(
            "GET", f"/users/{user_id}/bookmarks", params=params
        )
        data = self._json(response)
        meta = data.get("meta") or {}

        return BookmarksPage(
            payload=data,
            next_token=meta.get("next_token"),
            result_count=int(meta.get("result_count") or 0),
            rate_limit_remaining=_int_header(response, "x-rate-limit-remaining"),
            rate_limit_reset=_reset_time(response),
        )

    async def add_bookmark(self, user_id: str, post_id: str) -> dict:
        """Bookmark a post. The platform ignores duplicates."""
        return await self._request(
            "POST", f"/users/{user_id}/bookmarks", json={"tweet_id": post_id}
        )

    async def remove_bookmark(self, user_id: str, post_id: str) -> dict:
        """Remove a bookmark. Removing an absent bookmark is a no-op upstream."""
        return await self._request("DELETE", f"/users/{user_id}/bookmarks/{post_id}")

    async def refresh_access_token(self) -> dict:
        """Exchange the refresh token for a new access/refresh pair."""
        if not self.refresh_token:
            raise AuthError("No refresh token available")

        form = {"grant_type": "refresh_token", "refresh_token": self.refresh_token}
        if self._client_id:
            form["client_id"] = self._client_id
        auth = None
        if self._client_id and self._client_secret:
            auth = httpx.BasicAuth(self._client_id, self._client_secret)

        try:
            response = await self._client.post(
                f"{self._base_url}/oauth2/token",
                data=form,
                auth=auth,
                headers={"content-type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Token refresh failed: {e}") from e

        if response.status_code >= 400:
            raise AuthError(
                f"Failed to refresh access token ({response.status_code}"
                f" - {_error_detail(response)})"
            )

        data = self._json(response)
        if not data.get("access_token"):
            raise AuthError("Token refresh response had no access_token")
        self.access_token = data["access_token"]
        # Refresh tokens rotate; keep the old one only if none was returned
        self.refresh_token = data.get("refresh_token", self.refresh_token)
        logger.info("Access token refreshed")
        return data

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        response = await self._send(method, path, **kwargs)
        return self._json(response)

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Issue an authenticated call and translate failures to typed errors."""
        headers = {"authorization": f"Bearer {self.access_token}"}
        try:
            response = await self._client.request(
                method, f"{self._base_url}{path}", headers=headers, **kwargs
            )
        except httpx.TimeoutException as e:
            raise UpstreamError(f"X API timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"X API transport error: {e}") from e

        status = response.status_code
        if status < 400:
            return response

        detail = _error_detail(response)
        message = f"X API Error: {status} - {detail}"
        logger.debug("%s %s failed: %s", method, path, message)

        if status == 401:
            raise AuthError(message)
        if status == 403:
            raise UpstreamPermissionError(message)
        if status == 404:
            raise NotFoundError(message)
        if status == 429:
            reset_at = _reset_time(response)
            wait_msg = ""
            if reset_at:
                wait_seconds = int(
                    (reset_at - datetime.now(timezone.utc)).total_seconds()
                )
                if wait_seconds > 0:
                    wait_msg = f" Retry in {wait_seconds}s."
            raise RateLimitError(f"Rate limit exceeded. {message}.{wait_msg}", reset_at)
        raise UpstreamError(message, status_code=status)

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError("X API returned invalid JSON") from e
        if not isinstance(data, dict):
            raise UpstreamError("X API returned an unexpected payload")
        return data

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()


def _error_detail(response: httpx.Response) -> str:
    """Pull the most specific error text out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or "unknown error"
    if isinstance(body, dict):
        if body.get("detail"):
            return str(body["detail"])
        if body.get("title"):
            return str(body["title"])
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            return str(errors[0].get("message", "unknown error"))
        if body.get("error_description"):
            return str(body["error_description"])
    return response.reason_phrase or "unknown error"


def _int_header(response: httpx.Response, name: str) -> int | None:
    value = response.headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _reset_time(response: httpx.Response) -> datetime | None:
    """Parse x-rate-limit-reset (epoch seconds) into an aware datetime."""
    epoch = _int_header(response, "x-rate-limit-reset")
    if epoch is None:
        return None
    return datetime.fromtimestamp(epoch, tz=timezone.utc)
