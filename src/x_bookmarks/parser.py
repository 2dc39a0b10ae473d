"""Normalize X API v2 bookmark pages into Bookmark model objects.

A page looks like:
    {"data": [post, ...],
     "includes": {"users": [...], "media": [...]},
     "meta": {"result_count": N, "next_token": "..."}}

Posts reference their author by ``author_id`` and their media by
``attachments.media_keys``; both are resolved against the ``includes`` side
tables. Everything here is pure: same input, same output.
"""

import logging
import re

from .models import PLACEHOLDER_AVATAR, Author, Bookmark, MediaItem, Metrics

logger = logging.getLogger(__name__)

HASHTAG_RE = re.compile(r"#(\w+)")

# Context-annotation domain names, checked in category order
DOMAIN_CATEGORIES = [
    ("Tech", {"technology", "software"}),
    ("Education", {"education", "science"}),
    ("Business", {"business", "finance"}),
    ("Sports", {"sports"}),
    ("Entertainment", {"entertainment"}),
]

KEYWORD_CATEGORIES = [
    ("Tech", ["code", "programming", "api", "development", "tech", "software"]),
    ("Education", ["learn", "tutorial", "guide", "education", "study", "course"]),
    ("Business", ["startup", "business", "marketing", "sales", "entrepreneur"]),
]


def parse_bookmarks(payload: dict, bookmarked_at: str) -> list[Bookmark]:
    """Parse a raw bookmarks page into Bookmark objects.

    ``bookmarked_at`` is stamped on every record; the API does not say when a
    post was bookmarked.
    """
    includes = payload.get("includes") or {}
    users = includes.get("users") or []
    media = includes.get("media") or []

    bookmarks = []
    for post in payload.get("data") or []:
        if not isinstance(post, dict) or not post.get("id"):
            logger.warning("Skipping malformed post: %r", post)
            continue
        bookmarks.append(_parse_single_post(post, users, media, bookmarked_at))
    return bookmarks


def _parse_single_post(
    post: dict, users: list[dict], media: list[dict], bookmarked_at: str
) -> Bookmark:
    text = post.get("text") or ""
    annotations = post.get("context_annotations") or []
    public_metrics = post.get("public_metrics") or {}

    return Bookmark(
        id=str(post["id"]),
        text=text,
        author=_resolve_author(post.get("author_id"), users),
        created_at=post.get("created_at"),
        bookmarked_at=bookmarked_at,
        metrics=Metrics(
            likes=public_metrics.get("like_count") or 0,
            retweets=public_metrics.get("retweet_count") or 0,
            replies=public_metrics.get("reply_count") or 0,
            quotes=public_metrics.get("quote_count") or 0,
        ),
        media=_resolve_media(post, media),
        tags=extract_hashtags(text),
        category=categorize(text, annotations),
        entities=post.get("entities") or {},
        context_annotations=annotations,
    )


def _resolve_author(author_id: str | None, users: list[dict]) -> Author:
    """Look up the author in includes.users; fall back to a stand-in."""
    if author_id is not None:
        for user in users:
            if user.get("id") == author_id:
                return Author(
                    id=user.get("id"),
                    name=user.get("name") or "Unknown",
                    username=user.get("username") or "unknown",
                    avatar_url=user.get("profile_image_url") or PLACEHOLDER_AVATAR,
                    verified=bool(user.get("verified", False)),
                )
    return Author(id=None)


def _resolve_media(post: dict, media: list[dict]) -> list[MediaItem]:
    """Resolve media keys in reference order, dropping unknown keys."""
    by_key: dict[str, dict] = {}
    for m in media:
        key = m.get("media_key")
        if key and key not in by_key:
            by_key[key] = m

    items = []
    keys = (post.get("attachments") or {}).get("media_keys") or []
    for key in keys:
        m = by_key.get(key)
        if m is None:
            continue
        items.append(
            MediaItem(
                type=m.get("type", "photo"),
                url=m.get("url") or m.get("preview_image_url") or "",
                width=m.get("width"),
                height=m.get("height"),
            )
        )
    return items


def extract_hashtags(text: str) -> list[str]:
    """Return lowercased hashtags without '#', first occurrence order."""
    tags: list[str] = []
    for match in HASHTAG_RE.findall(text or ""):
        tag = match.lower()
        if tag not in tags:
            tags.append(tag)
    return tags


def categorize(text: str, context_annotations: list[dict] | None = None) -> str:
    """Pick a single category; annotations beat keywords, first match wins."""
    domains = set()
    for annotation in context_annotations or []:
        name = ((annotation or {}).get("domain") or {}).get("name")
        if name:
            domains.add(name.lower())

    for category, names in DOMAIN_CATEGORIES:
        if domains & names:
            return category

    lower_text = (text or "").lower()
    for category, keywords in KEYWORD_CATEGORIES:
        if any(keyword in lower_text for keyword in keywords):
            return category

    return "General"


def category_counts(bookmarks: list[Bookmark]) -> dict[str, int]:
    """Count bookmarks per category, for the dashboard's stats panel."""
    counts: dict[str, int] = {}
    for b in bookmarks:
        counts[b.category] = counts.get(b.category, 0) + 1
    return counts


def filter_bookmarks(
    bookmarks: list[Bookmark],
    category: str | None = None,
    tag: str | None = None,
    query: str | None = None,
) -> list[Bookmark]:
    """Filter by category (case-insensitive), hashtag and free-text query."""
    result = bookmarks
    if category and category.lower() != "all":
        result = [b for b in result if b.category.lower() == category.lower()]
    if tag:
        wanted = tag.lstrip("#").lower()
        result = [b for b in result if wanted in b.tags]
    if query:
        needle = query.lower()
        result = [
            b
            for b in result
            if needle in b.text.lower()
            or needle in b.author.username.lower()
            or needle in b.author.name.lower()
        ]
    return result
