"""Domain models for the community forum.

A Post owns its whole discussion: Comments attached directly to the post,
and each Comment owns a flat list of Replies whose tree shape is carried by
``parent_reply_id`` (None for replies answering the comment itself).

Architecture: one JSON document per Post
- the comment/reply tree lives inside the post document
- every mutation (including cascading deletes) is a single document write
- reactions are user-id sets, reports accumulate and are never removed
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from .exceptions import InvalidContent
from .reactions import ReactionKind, ReactionState, toggle
from .tree import ReplyTree


class Category(str, Enum):
    """Post categories. ``Reported`` is a listing filter, never stored."""

    GENERAL = "General"
    NEIGHBORHOOD = "Neighborhood"
    EVENTS = "Events"
    SAFETY = "Safety"
    MARKETPLACE = "Marketplace"
    REPORTED = "Reported"


def postable_category(value: Category | str) -> Category:
    """Category a post may be filed under; raises InvalidContent otherwise."""
    try:
        category = Category(value)
    except ValueError as e:
        raise InvalidContent(f"Unknown category: {value}") from e
    if category is Category.REPORTED:
        raise InvalidContent("Posts cannot be filed under Reported")
    return category


DEFAULT_REPORT_REASON = "Spam/Inappropriate"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# One row per post, whole thread serialized as JSON
FORUM_POSTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.forum_posts (
    id TEXT PRIMARY KEY,
    document TEXT,
    updated_at TIMESTAMP
)
"""

FORUM_TABLES_CQL = [
    FORUM_POSTS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


def _ts(value: datetime) -> str:
    return value.isoformat()


def _parse_ts(value: str | None) -> datetime:
    if not value:
        return datetime.now(UTC)
    return datetime.fromisoformat(value)


@dataclass
class AuthorRef:
    id: str
    name: str = ""
    avatar: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "avatar": self.avatar}

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "AuthorRef":
        return cls(id=doc["id"], name=doc.get("name") or "", avatar=doc.get("avatar"))


@dataclass
class Location:
    city: str = ""
    neighborhood: str = ""

    def to_document(self) -> dict[str, Any]:
        return {"city": self.city, "neighborhood": self.neighborhood}

    @classmethod
    def from_document(cls, doc: dict[str, Any] | None) -> "Location":
        doc = doc or {}
        return cls(city=doc.get("city") or "", neighborhood=doc.get("neighborhood") or "")


@dataclass
class Report:
    reporter_id: str
    reason: str
    created_at: datetime

    def to_document(self) -> dict[str, Any]:
        return {
            "reporter_id": self.reporter_id,
            "reason": self.reason,
            "created_at": _ts(self.created_at),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Report":
        return cls(
            reporter_id=doc["reporter_id"],
            reason=doc.get("reason") or DEFAULT_REPORT_REASON,
            created_at=_parse_ts(doc.get("created_at")),
        )


class Interactive:
    """Shared behaviour of posts, comments and replies.

    Subclasses are dataclasses providing ``author``, ``content``, ``likes``,
    ``dislikes``, ``reports``, ``is_edited`` and ``updated_at``.
    """

    author: AuthorRef
    content: str
    likes: set[str]
    dislikes: set[str]
    reports: list[Report]
    mentions: list[str]
    is_edited: bool
    updated_at: datetime

    def reaction_state(self) -> ReactionState:
        return ReactionState(likes=frozenset(self.likes), dislikes=frozenset(self.dislikes))

    def toggle_reaction(self, user_id: str, kind: ReactionKind | str) -> ReactionState:
        state = toggle(self.likes, self.dislikes, user_id, kind)
        self.likes = set(state.likes)
        self.dislikes = set(state.dislikes)
        return state

    def has_reported(self, user_id: str) -> bool:
        return any(report.reporter_id == user_id for report in self.reports)

    def replace_content(
        self, content: str, mentions: list[str], now: datetime | None = None
    ) -> None:
        # is_edited never goes back to False
        self.content = content
        self.mentions = mentions
        self.is_edited = True
        self.updated_at = now or datetime.now(UTC)

    def _interactive_document(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "author": self.author.to_document(),
            "likes": sorted(self.likes),
            "dislikes": sorted(self.dislikes),
            "reports": [report.to_document() for report in self.reports],
            "mentions": list(self.mentions),
            "is_edited": self.is_edited,
        }


def _interactive_fields(doc: dict[str, Any]) -> dict[str, Any]:
    return {
        "content": doc.get("content") or "",
        "author": AuthorRef.from_document(doc["author"]),
        "likes": set(doc.get("likes") or []),
        "dislikes": set(doc.get("dislikes") or []),
        "reports": [Report.from_document(r) for r in doc.get("reports") or []],
        "mentions": list(doc.get("mentions") or []),
        "is_edited": bool(doc.get("is_edited")),
        "created_at": _parse_ts(doc.get("created_at")),
        "updated_at": _parse_ts(doc.get("updated_at") or doc.get("created_at")),
    }


@dataclass
class Reply(Interactive):
    """Reply inside a comment, optionally nested under another reply."""

    id: str
    comment_id: str
    parent_reply_id: str | None
    content: str
    author: AuthorRef
    created_at: datetime
    updated_at: datetime
    reply_to_user: str | None = None
    likes: set[str] = field(default_factory=set)
    dislikes: set[str] = field(default_factory=set)
    reports: list[Report] = field(default_factory=list)
    mentions: list[str] = field(default_factory=list)
    is_edited: bool = False

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "comment_id": self.comment_id,
            "parent_reply_id": self.parent_reply_id,
            "reply_to_user": self.reply_to_user,
            **self._interactive_document(),
            "created_at": _ts(self.created_at),
            "updated_at": _ts(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Reply":
        return cls(
            id=doc["id"],
            comment_id=doc["comment_id"],
            parent_reply_id=doc.get("parent_reply_id"),
            reply_to_user=doc.get("reply_to_user"),
            **_interactive_fields(doc),
        )


@dataclass
class Comment(Interactive):
    """First-level response on a post, owning a reply tree."""

    id: str
    post_id: str
    content: str
    author: AuthorRef
    created_at: datetime
    updated_at: datetime
    replies: list[Reply] = field(default_factory=list)
    likes: set[str] = field(default_factory=set)
    dislikes: set[str] = field(default_factory=set)
    reports: list[Report] = field(default_factory=list)
    mentions: list[str] = field(default_factory=list)
    is_edited: bool = False
    _tree: ReplyTree | None = field(default=None, repr=False, compare=False)

    def thread(self) -> ReplyTree:
        """Adjacency index over this comment's replies, rebuilt per mutation."""
        if self._tree is None:
            self._tree = ReplyTree(self.replies)
        return self._tree

    def find_reply(self, reply_id: str) -> Reply | None:
        return self.thread().get(reply_id)

    def add_reply(self, reply: Reply) -> None:
        self.replies.append(reply)
        self._tree = None

    def remove_replies(self, reply_ids: set[str]) -> None:
        self.replies = [r for r in self.replies if r.id not in reply_ids]
        self._tree = None

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "post_id": self.post_id,
            **self._interactive_document(),
            "replies": [reply.to_document() for reply in self.replies],
            "created_at": _ts(self.created_at),
            "updated_at": _ts(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Comment":
        return cls(
            id=doc["id"],
            post_id=doc["post_id"],
            replies=[Reply.from_document(r) for r in doc.get("replies") or []],
            **_interactive_fields(doc),
        )


@dataclass
class Post(Interactive):
    """Top-level discussion topic and the aggregate root of its thread."""

    id: str
    title: str
    content: str
    category: Category
    author: AuthorRef
    created_at: datetime
    updated_at: datetime
    location: Location = field(default_factory=Location)
    images: list[str] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    likes: set[str] = field(default_factory=set)
    dislikes: set[str] = field(default_factory=set)
    reports: list[Report] = field(default_factory=list)
    mentions: list[str] = field(default_factory=list)
    is_pinned: bool = False
    is_locked: bool = False
    is_edited: bool = False
    view_count: int = 0

    def find_comment(self, comment_id: str) -> Comment | None:
        return next((c for c in self.comments if c.id == comment_id), None)

    def has_any_report(self) -> bool:
        """True if the post, any comment, or any reply has been reported."""
        if self.reports:
            return True
        return any(
            comment.reports or any(reply.reports for reply in comment.replies)
            for comment in self.comments
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category.value,
            "location": self.location.to_document(),
            "images": list(self.images),
            **self._interactive_document(),
            "comments": [comment.to_document() for comment in self.comments],
            "is_pinned": self.is_pinned,
            "is_locked": self.is_locked,
            "view_count": self.view_count,
            "created_at": _ts(self.created_at),
            "updated_at": _ts(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Post":
        return cls(
            id=doc["id"],
            title=doc.get("title") or "",
            category=Category(doc.get("category") or Category.GENERAL.value),
            location=Location.from_document(doc.get("location")),
            images=list(doc.get("images") or []),
            comments=[Comment.from_document(c) for c in doc.get("comments") or []],
            is_pinned=bool(doc.get("is_pinned")),
            is_locked=bool(doc.get("is_locked")),
            view_count=int(doc.get("view_count") or 0),
            **_interactive_fields(doc),
        )


# ==============================================================================
# Factory Functions
# ==============================================================================


def new_id() -> str:
    return str(uuid4())


def create_post(
    title: str,
    content: str,
    author: AuthorRef,
    category: Category = Category.GENERAL,
    location: Location | None = None,
    images: list[str] | None = None,
    mentions: list[str] | None = None,
) -> Post:
    """Create a new post with default values."""
    now = datetime.now(UTC)
    return Post(
        id=new_id(),
        title=title,
        content=content,
        category=category,
        author=author,
        location=location or Location(),
        images=images or [],
        mentions=mentions or [],
        created_at=now,
        updated_at=now,
    )


def create_comment(
    post_id: str, content: str, author: AuthorRef, mentions: list[str] | None = None
) -> Comment:
    now = datetime.now(UTC)
    return Comment(
        id=new_id(),
        post_id=post_id,
        content=content,
        author=author,
        mentions=mentions or [],
        created_at=now,
        updated_at=now,
    )


def create_reply(
    comment_id: str,
    content: str,
    author: AuthorRef,
    parent_reply_id: str | None = None,
    reply_to_user: str | None = None,
    mentions: list[str] | None = None,
) -> Reply:
    now = datetime.now(UTC)
    return Reply(
        id=new_id(),
        comment_id=comment_id,
        parent_reply_id=parent_reply_id,
        reply_to_user=reply_to_user,
        content=content,
        author=author,
        mentions=mentions or [],
        created_at=now,
        updated_at=now,
    )


def create_report(reporter_id: str, reason: str | None = None) -> Report:
    return Report(
        reporter_id=reporter_id,
        reason=(reason or "").strip() or DEFAULT_REPORT_REASON,
        created_at=datetime.now(UTC),
    )
