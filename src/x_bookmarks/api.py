"""HTTP API consumed by the dashboard.

The sign-in flow lives in the front end; each request carries the user's
OAuth session:
    Authorization: Bearer <access token>     required
    X-Refresh-Token: <refresh token>         optional
    X-User-Id: <X user id>                   optional

The refresh token is only handed to the API client; no route exchanges it.
Renewing an expired access token is the sign-in flow's job, and a 401 tells
the dashboard to do so. X-User-Id is the id the sign-in flow already knows,
so a failed identity lookup can still be recorded in the sync log.

Routes:
    GET    /api/bookmarks   cached or fresh bookmarks
    POST   /api/bookmarks   add a bookmark, invalidates the cache
    DELETE /api/bookmarks   remove a bookmark, invalidates the cache
    GET    /api/cache       cache status
    DELETE /api/cache       clear the cache
    POST   /api/cache       {"action": "refresh"} clears the cache
"""

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .cache import CacheStore
from .client import DEFAULT_PAGE_SIZE, XApiClient
from .clock import Clock, utc_now
from .config import AppConfig
from .errors import SyncFailure
from .parser import filter_bookmarks
from .sync import BookmarkSync

logger = logging.getLogger(__name__)


@dataclass
class Session:
    access_token: str
    refresh_token: str | None = None
    user_id: str | None = None


class BookmarkAction(BaseModel):
    postId: str | None = None


def get_session(
    authorization: str | None = Header(default=None),
    x_refresh_token: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
) -> Session:
    """Read the bearer session from the request headers."""
    if not authorization:
        raise SyncFailure(401, "Unauthorized", "unauthenticated")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        raise SyncFailure(401, "Unauthorized", "unauthenticated")
    if not token.strip():
        raise SyncFailure(400, "No access token available", "missing_token")
    return Session(
        access_token=token.strip(),
        refresh_token=x_refresh_token,
        user_id=x_user_id or None,
    )


async def get_sync(request: Request, session: Session = Depends(get_session)):
    client = request.app.state.client_factory(session)
    try:
        yield BookmarkSync(
            client,
            request.app.state.store,
            clock=request.app.state.clock,
            session_user_id=session.user_id,
        )
    finally:
        await client.close()


router = APIRouter(prefix="/api")


@router.get("/bookmarks")
async def list_bookmarks(
    max_results: int = Query(DEFAULT_PAGE_SIZE, alias="maxResults"),
    pagination_token: str | None = Query(None, alias="paginationToken"),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    category: str | None = None,
    tag: str | None = None,
    q: str | None = None,
    sync: BookmarkSync = Depends(get_sync),
):
    result = await sync.get_bookmarks(
        max_results=max_results,
        pagination_token=pagination_token,
        force_refresh=force_refresh,
    )
    body = result.to_dict()
    if category or tag or q:
        filtered = filter_bookmarks(result.bookmarks, category=category, tag=tag, query=q)
        body["bookmarks"] = [b.to_dict() for b in filtered]
    return body


@router.post("/bookmarks")
async def add_bookmark(action: BookmarkAction, sync: BookmarkSync = Depends(get_sync)):
    if not action.postId:
        raise SyncFailure(400, "Post ID is required", "bad_request")
    return await sync.add_bookmark(action.postId)


@router.delete("/bookmarks")
async def remove_bookmark(
    post_id: str | None = Query(None, alias="postId"),
    sync: BookmarkSync = Depends(get_sync),
):
    if not post_id:
        raise SyncFailure(400, "Post ID is required", "bad_request")
    return await sync.remove_bookmark(post_id)


@router.get("/cache")
async def cache_status(sync: BookmarkSync = Depends(get_sync)):
    return await sync.cache_status()


@router.delete("/cache")
async def clear_cache(sync: BookmarkSync = Depends(get_sync)):
    return await sync.clear_cache()


@router.post("/cache")
async def cache_action(request: Request, sync: BookmarkSync = Depends(get_sync)):
    try:
        body = await request.json()
    except ValueError:
        body = None
    action = body.get("action") if isinstance(body, dict) else None
    if action != "refresh":
        raise SyncFailure(400, "Invalid action", "bad_request")
    return await sync.refresh_cache()


async def handle_sync_failure(request: Request, exc: SyncFailure) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(
    config: AppConfig | None = None,
    store=None,
    client_factory: Callable[[Session], object] | None = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """Build the app. Tests inject ``store`` and ``client_factory`` fakes."""
    config = config or AppConfig()
    if store is None:
        store = CacheStore(config.database_url, clock=clock)
    if client_factory is None:

        def client_factory(session: Session) -> XApiClient:
            return XApiClient(
                session.access_token,
                refresh_token=session.refresh_token,
                client_id=config.oauth.client_id,
                client_secret=config.oauth.client_secret,
            )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.init()
        logger.info("Bookmark API started")
        yield
        await store.close()

    app = FastAPI(title="x-bookmarks", lifespan=lifespan)
    app.state.store = store
    app.state.client_factory = client_factory
    app.state.clock = clock
    app.add_exception_handler(SyncFailure, handle_sync_failure)
    app.include_router(router)
    return app
