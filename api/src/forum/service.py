"""Forum read-side service.

Listing, search, community stats and title suggestions over the posts held
by the ThreadStore, plus the per-user write rate limit applied by the router
before any comment or reply is created.
"""

import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from src.core.redis import check_rate_limit, rate_limit_key

from .exceptions import RateLimitExceeded
from .models import Category, Post


if TYPE_CHECKING:
    from redis.asyncio import Redis

    from .store import ThreadStore


logger = structlog.get_logger(__name__)


SORT_RECENT = "recent"
SORT_POPULAR = "popular"


@dataclass
class PostPage:
    posts: list[Post]
    total: int
    has_more: bool


@dataclass
class ForumStats:
    active_members: int
    daily_posts: int
    events_this_week: int
    trending: list[tuple[Post, int]]


def _contains(needle: str | None) -> re.Pattern[str] | None:
    needle = (needle or "").strip()
    if not needle:
        return None
    return re.compile(re.escape(needle), re.IGNORECASE)


def _interactions(post: Post) -> int:
    return len(post.likes) + len(post.comments)


def _participants(post: Post) -> set[str]:
    ids = {post.author.id}
    for comment in post.comments:
        ids.add(comment.author.id)
        ids.update(reply.author.id for reply in comment.replies)
    return ids


class ForumService:
    """Queries over the forum and the write rate limit."""

    def __init__(
        self,
        store: "ThreadStore",
        redis: "Redis | None" = None,
        comments_per_minute: int = 20,
        page_size: int = 10,
        page_size_max: int = 50,
        suggestions_limit: int = 5,
        trending_limit: int = 3,
    ):
        self.store = store
        self.redis = redis
        self.comments_per_minute = comments_per_minute
        self.page_size = page_size
        self.page_size_max = page_size_max
        self.suggestions_limit = suggestions_limit
        self.trending_limit = trending_limit

    # ==========================================================================
    # Listing
    # ==========================================================================

    async def list_posts(
        self,
        category: str | None = None,
        city: str | None = None,
        neighborhood: str | None = None,
        search: str | None = None,
        sort: str = SORT_RECENT,
        limit: int | None = None,
        skip: int = 0,
    ) -> PostPage:
        """Filter, sort and page posts.

        ``category`` "All" (or None) means no filter and "Reported" selects
        posts with a report anywhere in their thread. City, neighborhood and
        the search term match case-insensitively; the search term is looked
        up in both title and content. Pinned posts always come first.
        """
        limit = min(max(limit or self.page_size, 1), self.page_size_max)
        skip = max(skip, 0)

        city_re = _contains(city)
        neighborhood_re = _contains(neighborhood)
        search_re = _contains(search)

        def matches(post: Post) -> bool:
            if category == Category.REPORTED.value:
                if not post.has_any_report():
                    return False
            elif category and category != "All" and post.category.value != category:
                return False
            if city_re and not city_re.search(post.location.city):
                return False
            if neighborhood_re and not neighborhood_re.search(post.location.neighborhood):
                return False
            return not search_re or bool(
                search_re.search(post.title) or search_re.search(post.content)
            )

        posts = [post for post in await self.store.list_posts() if matches(post)]

        # Stable sorts: least significant key first
        posts.sort(key=lambda p: p.created_at, reverse=True)
        if sort == SORT_POPULAR:
            posts.sort(key=lambda p: len(p.likes), reverse=True)
        posts.sort(key=lambda p: p.is_pinned, reverse=True)

        page = posts[skip : skip + limit]
        return PostPage(
            posts=page,
            total=len(posts),
            has_more=len(posts) > skip + len(page),
        )

    async def view_post(self, post_id: str) -> Post:
        """Fetch a post for display, counting the view."""
        return await self.store.record_view(post_id)

    async def suggestions(self, query: str) -> list[Post]:
        pattern = _contains(query)
        if pattern is None:
            return []
        posts = await self.store.list_posts()
        posts.sort(key=lambda p: p.created_at, reverse=True)
        return [p for p in posts if pattern.search(p.title)][: self.suggestions_limit]

    async def stats(self, now: datetime | None = None) -> ForumStats:
        now = now or datetime.now(UTC)
        posts = await self.store.list_posts()

        day_ago = now - timedelta(days=1)
        week_ago = now - timedelta(days=7)

        members: set[str] = set()
        for post in posts:
            members |= _participants(post)

        ranked = sorted(posts, key=_interactions, reverse=True)[: self.trending_limit]
        return ForumStats(
            active_members=len(members),
            daily_posts=sum(1 for p in posts if p.created_at >= day_ago),
            events_this_week=sum(
                1
                for p in posts
                if p.category == Category.EVENTS and p.created_at >= week_ago
            ),
            trending=[(post, _interactions(post)) for post in ranked],
        )

    # ==========================================================================
    # Rate limiting
    # ==========================================================================

    async def check_write_rate(self, user_id: str) -> None:
        """Count one comment/reply write for ``user_id``.

        Raises:
            RateLimitExceeded: more than ``comments_per_minute`` writes this minute
        """
        allowed, _ = await check_rate_limit(
            self.redis,
            rate_limit_key("write", user_id),
            self.comments_per_minute,
        )
        if not allowed:
            raise RateLimitExceeded(
                f"Limit of {self.comments_per_minute} comments per minute reached"
            )
