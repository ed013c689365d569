"""Pydantic schemas for the forum API.

Request/Response models with validation for:
- Post, comment and reply CRUD
- Reactions and reports
- Listing, stats and title suggestions
"""

from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .models import Category, Comment, Location, Post, Reply
from .reactions import ReactionState
from .tree import ThreadNode


CONTENT_MAX_LENGTH = 10000
TITLE_MAX_LENGTH = 200

# ==============================================================================
# Request Schemas
# ==============================================================================


def _strip_required(v: str) -> str:
    v = v.strip()
    if not v:
        msg = "Value cannot be empty"
        raise ValueError(msg)
    return v


class LocationSchema(BaseModel):
    city: str = Field(default="", max_length=100)
    neighborhood: str = Field(default="", max_length=100)

    def to_location(self) -> Location:
        return Location(city=self.city.strip(), neighborhood=self.neighborhood.strip())


class ClientRefMixin(BaseModel):
    """Local id the client used for its optimistic copy, echoed in events."""

    client_ref: str | None = Field(
        default=None,
        max_length=100,
        validation_alias=AliasChoices("client_ref", "clientRef"),
    )


class CreatePostRequest(ClientRefMixin):
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    content: str = Field(..., min_length=1, max_length=CONTENT_MAX_LENGTH)
    category: Category = Category.GENERAL
    location: LocationSchema | None = None
    images: list[str] = Field(default_factory=list, max_length=10)

    @field_validator("title", "content")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip_required(v)


class UpdatePostRequest(BaseModel):
    """Any subset of a post's editable fields."""

    title: str | None = Field(None, min_length=1, max_length=TITLE_MAX_LENGTH)
    content: str | None = Field(None, min_length=1, max_length=CONTENT_MAX_LENGTH)
    category: Category | None = None
    location: LocationSchema | None = None
    images: list[str] | None = Field(None, max_length=10)


class CreateCommentRequest(ClientRefMixin):
    content: str = Field(..., min_length=1, max_length=CONTENT_MAX_LENGTH)

    @field_validator("content")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip_required(v)


class UpdateContentRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=CONTENT_MAX_LENGTH)

    @field_validator("content")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip_required(v)


class CreateReplyRequest(ClientRefMixin):
    content: str = Field(..., min_length=1, max_length=CONTENT_MAX_LENGTH)
    parent_reply_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("parent_reply_id", "parentReplyId"),
    )
    reply_to_user: str | None = Field(
        default=None,
        validation_alias=AliasChoices("reply_to_user", "replyToUser"),
    )

    @field_validator("content")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip_required(v)


class ReportRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


# ==============================================================================
# Response Schemas
# ==============================================================================


class AuthorResponse(BaseModel):
    id: str
    name: str
    avatar: str | None = None


class ReactionResponse(BaseModel):
    likes: list[str]
    dislikes: list[str]
    like_count: int
    dislike_count: int

    @classmethod
    def from_state(cls, state: ReactionState) -> "ReactionResponse":
        return cls(
            likes=sorted(state.likes),
            dislikes=sorted(state.dislikes),
            like_count=state.like_count,
            dislike_count=state.dislike_count,
        )


class _EntityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    content: str
    author: AuthorResponse
    likes: list[str]
    dislikes: list[str]
    report_count: int = 0
    mentions: list[str] = Field(default_factory=list)
    is_edited: bool = False
    created_at: datetime
    updated_at: datetime


def _entity_fields(entity: Post | Comment | Reply) -> dict:
    return {
        "id": entity.id,
        "content": entity.content,
        "author": AuthorResponse(
            id=entity.author.id, name=entity.author.name, avatar=entity.author.avatar
        ),
        "likes": sorted(entity.likes),
        "dislikes": sorted(entity.dislikes),
        "report_count": len(entity.reports),
        "mentions": list(entity.mentions),
        "is_edited": entity.is_edited,
        "created_at": entity.created_at,
        "updated_at": entity.updated_at,
    }


class ReplyResponse(_EntityResponse):
    comment_id: str
    parent_reply_id: str | None = None
    reply_to_user: str | None = None

    @classmethod
    def from_reply(cls, reply: Reply) -> "ReplyResponse":
        return cls(
            **_entity_fields(reply),
            comment_id=reply.comment_id,
            parent_reply_id=reply.parent_reply_id,
            reply_to_user=reply.reply_to_user,
        )


class CommentResponse(_EntityResponse):
    post_id: str
    replies: list[ReplyResponse] = Field(default_factory=list)

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentResponse":
        return cls(
            **_entity_fields(comment),
            post_id=comment.post_id,
            replies=[ReplyResponse.from_reply(r) for r in comment.replies],
        )


class PostResponse(_EntityResponse):
    title: str
    category: Category
    location: LocationSchema
    images: list[str] = Field(default_factory=list)
    is_pinned: bool = False
    is_locked: bool = False
    view_count: int = 0
    comment_count: int = 0
    comments: list[CommentResponse] = Field(default_factory=list)

    @classmethod
    def from_post(cls, post: Post, include_comments: bool = True) -> "PostResponse":
        return cls(
            **_entity_fields(post),
            title=post.title,
            category=post.category,
            location=LocationSchema(
                city=post.location.city, neighborhood=post.location.neighborhood
            ),
            images=list(post.images),
            is_pinned=post.is_pinned,
            is_locked=post.is_locked,
            view_count=post.view_count,
            comment_count=len(post.comments),
            comments=(
                [CommentResponse.from_comment(c) for c in post.comments]
                if include_comments
                else []
            ),
        )


class ThreadNodeResponse(BaseModel):
    reply: ReplyResponse
    children: list["ThreadNodeResponse"] = Field(default_factory=list)

    @classmethod
    def from_node(cls, node: ThreadNode) -> "ThreadNodeResponse":
        # Depth is bounded by the configured maximum reply depth
        return cls(
            reply=ReplyResponse.from_reply(node.reply),
            children=[cls.from_node(child) for child in node.children],
        )


class ThreadResponse(BaseModel):
    post_id: str
    comment_id: str
    total: int
    nodes: list[ThreadNodeResponse]


class PostListResponse(BaseModel):
    posts: list[PostResponse]
    total: int
    has_more: bool


class TrendingTopic(BaseModel):
    id: str
    title: str
    interactions: int


class ForumStatsResponse(BaseModel):
    active_members: int
    daily_posts: int
    events_this_week: int
    trending_topics: list[TrendingTopic]


class SuggestionResponse(BaseModel):
    id: str
    title: str


class FlagResponse(BaseModel):
    post_id: str
    flag: Literal["is_pinned", "is_locked"]
    value: bool


class ReportResponse(BaseModel):
    report_count: int
    message: str = "Report submitted"


class MessageResponse(BaseModel):
    message: str
    success: bool = True
