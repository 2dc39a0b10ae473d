"""Data models for normalized bookmarks and cache records."""

from dataclasses import dataclass, field
from datetime import datetime

PLACEHOLDER_AVATAR = "/placeholder.svg?height=40&width=40"

CATEGORIES = ("Tech", "Education", "Business", "Sports", "Entertainment", "General")

SYNC_TYPES = ("manual", "scheduled", "auto")
SYNC_STATUSES = ("success", "error", "partial")


@dataclass
class Author:
    id: str | None
    name: str = "Unknown"
    username: str = "unknown"  # handle without @
    avatar_url: str = PLACEHOLDER_AVATAR
    verified: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "avatarUrl": self.avatar_url,
            "verified": self.verified,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Author":
        return cls(
            id=data.get("id"),
            name=data.get("name", "Unknown"),
            username=data.get("username", "unknown"),
            avatar_url=data.get("avatarUrl", PLACEHOLDER_AVATAR),
            verified=bool(data.get("verified", False)),
        )


@dataclass
class MediaItem:
    type: str  # "photo", "video", "animated_gif"
    url: str
    width: int | None = None
    height: int | None = None

    def to_dict(self) -> dict:
        data: dict = {"type": self.type, "url": self.url}
        if self.width is not None:
            data["width"] = self.width
        if self.height is not None:
            data["height"] = self.height
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "MediaItem":
        return cls(
            type=data.get("type", "photo"),
            url=data.get("url", ""),
            width=data.get("width"),
            height=data.get("height"),
        )


@dataclass
class Metrics:
    likes: int = 0
    retweets: int = 0
    replies: int = 0
    quotes: int = 0

    def to_dict(self) -> dict:
        return {
            "likes": self.likes,
            "retweets": self.retweets,
            "replies": self.replies,
            "quotes": self.quotes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Metrics":
        return cls(
            likes=int(data.get("likes", 0)),
            retweets=int(data.get("retweets", 0)),
            replies=int(data.get("replies", 0)),
            quotes=int(data.get("quotes", 0)),
        )


@dataclass
class Bookmark:
    id: str
    text: str
    author: Author
    created_at: str | None  # ISO-8601 as delivered by the API
    bookmarked_at: str  # first time this system saw the bookmark
    metrics: Metrics = field(default_factory=Metrics)
    media: list[MediaItem] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    category: str = "General"
    entities: dict = field(default_factory=dict)
    context_annotations: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize to the camelCase shape the dashboard consumes."""
        return {
            "id": self.id,
            "text": self.text,
            "author": self.author.to_dict(),
            "createdAt": self.created_at,
            "bookmarkedAt": self.bookmarked_at,
            "metrics": self.metrics.to_dict(),
            "media": [m.to_dict() for m in self.media],
            "tags": list(self.tags),
            "category": self.category,
            "entities": self.entities,
            "contextAnnotations": self.context_annotations,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bookmark":
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            author=Author.from_dict(data.get("author") or {}),
            created_at=data.get("createdAt"),
            bookmarked_at=data.get("bookmarkedAt", ""),
            metrics=Metrics.from_dict(data.get("metrics") or {}),
            media=[MediaItem.from_dict(m) for m in data.get("media") or []],
            tags=list(data.get("tags") or []),
            category=data.get("category", "General"),
            entities=data.get("entities") or {},
            context_annotations=data.get("contextAnnotations") or [],
        )


@dataclass
class UserInfo:
    """Identity of the token holder, as returned by /users/me."""

    id: str
    name: str = ""
    username: str = ""
    avatar_url: str | None = None
    verified: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "avatarUrl": self.avatar_url,
            "verified": self.verified,
        }


@dataclass
class BookmarksPage:
    """A single page of raw bookmark results."""

    payload: dict = field(default_factory=dict)
    next_token: str | None = None
    result_count: int = 0
    rate_limit_remaining: int | None = None
    rate_limit_reset: datetime | None = None

    @property
    def meta(self) -> dict:
        return self.payload.get("meta") or {}


@dataclass
class CacheEntry:
    user_id: str
    bookmarks: list[Bookmark]
    meta: dict
    last_synced_at: datetime


@dataclass
class SyncLogEntry:
    user_id: str
    sync_type: str  # one of SYNC_TYPES
    status: str  # one of SYNC_STATUSES
    started_at: datetime
    bookmarks_added: int = 0
    bookmarks_updated: int = 0
    error_message: str | None = None
    completed_at: datetime | None = None
