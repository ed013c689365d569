"""Forum API endpoints.

Provides routes for:
- Post CRUD, listing, stats and title suggestions
- Comments and nested replies
- Reactions (like / dislike) and reports at every level
- Moderator pin / lock toggles
"""

from typing import Literal

from fastapi import APIRouter, Query, status

from src.auth.dependencies import CurrentUser, ModeratorUser
from src.auth.schemas import Actor

from .dependencies import ForumServiceDep, ThreadStoreDep, handle_forum_error
from .exceptions import ForumError, NotFound
from .models import Comment
from .reactions import ReactionKind
from .schemas import (
    CommentResponse,
    CreateCommentRequest,
    CreatePostRequest,
    CreateReplyRequest,
    FlagResponse,
    ForumStatsResponse,
    MessageResponse,
    PostListResponse,
    PostResponse,
    ReactionResponse,
    ReplyResponse,
    ReportRequest,
    ReportResponse,
    SuggestionResponse,
    ThreadNodeResponse,
    ThreadResponse,
    TrendingTopic,
    UpdateContentRequest,
    UpdatePostRequest,
)
from .store import EntityRef, ThreadStore


router = APIRouter(prefix="/forum", tags=["forum"])

ReactionPath = Literal["like", "dislike"]


# ==============================================================================
# Posts: static paths first so they are not captured by /{post_id}
# ==============================================================================


@router.get("", response_model=PostListResponse, summary="List posts")
async def list_posts(
    forum_service: ForumServiceDep,
    category: str | None = Query(None, description="Category, 'All' or 'Reported'"),
    search_term: str | None = Query(None, alias="searchTerm"),
    city: str | None = Query(None),
    neighborhood: str | None = Query(None),
    sort: Literal["recent", "popular"] = Query("recent"),
    limit: int = Query(10, ge=1, le=50),
    skip: int = Query(0, ge=0),
) -> PostListResponse:
    """List posts with filters. Pinned posts come first."""
    page = await forum_service.list_posts(
        category=category,
        city=city,
        neighborhood=neighborhood,
        search=search_term,
        sort=sort,
        limit=limit,
        skip=skip,
    )
    return PostListResponse(
        posts=[PostResponse.from_post(p, include_comments=False) for p in page.posts],
        total=page.total,
        has_more=page.has_more,
    )


@router.get("/stats", response_model=ForumStatsResponse, summary="Community stats")
async def community_stats(forum_service: ForumServiceDep) -> ForumStatsResponse:
    stats = await forum_service.stats()
    return ForumStatsResponse(
        active_members=stats.active_members,
        daily_posts=stats.daily_posts,
        events_this_week=stats.events_this_week,
        trending_topics=[
            TrendingTopic(id=post.id, title=post.title, interactions=count)
            for post, count in stats.trending
        ],
    )


@router.get(
    "/search/suggestions",
    response_model=list[SuggestionResponse],
    summary="Title suggestions",
)
async def search_suggestions(
    forum_service: ForumServiceDep,
    q: str = Query("", max_length=200),
) -> list[SuggestionResponse]:
    posts = await forum_service.suggestions(q)
    return [SuggestionResponse(id=p.id, title=p.title) for p in posts]


@router.post(
    "/create",
    response_model=PostResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create post",
)
async def create_post(
    data: CreatePostRequest,
    store: ThreadStoreDep,
    user: CurrentUser,
) -> PostResponse:
    try:
        post = await store.create_post(
            user,
            title=data.title,
            content=data.content,
            category=data.category,
            location=data.location.to_location() if data.location else None,
            images=data.images,
            client_ref=data.client_ref,
        )
    except ForumError as e:
        raise handle_forum_error(e) from e
    return PostResponse.from_post(post)


@router.put("/pin/{post_id}", response_model=FlagResponse, summary="Toggle pin")
async def toggle_pin(
    post_id: str, store: ThreadStoreDep, user: ModeratorUser
) -> FlagResponse:
    try:
        value = await store.toggle_pin(user, post_id)
    except ForumError as e:
        raise handle_forum_error(e) from e
    return FlagResponse(post_id=post_id, flag="is_pinned", value=value)


@router.put("/lock/{post_id}", response_model=FlagResponse, summary="Toggle lock")
async def toggle_lock(
    post_id: str, store: ThreadStoreDep, user: ModeratorUser
) -> FlagResponse:
    """Lock or unlock a post. Locked posts reject new comments and replies
    from non-moderators."""
    try:
        value = await store.toggle_lock(user, post_id)
    except ForumError as e:
        raise handle_forum_error(e) from e
    return FlagResponse(post_id=post_id, flag="is_locked", value=value)


async def _react(
    store: ThreadStore, user: Actor, ref: EntityRef, reaction: str
) -> ReactionResponse:
    try:
        state = await store.toggle_reaction(user, ref, ReactionKind(reaction))
    except ForumError as e:
        raise handle_forum_error(e) from e
    return ReactionResponse.from_state(state)


async def _report(
    store: ThreadStore, user: Actor, ref: EntityRef, data: ReportRequest
) -> ReportResponse:
    try:
        count = await store.report(user, ref, data.reason)
    except ForumError as e:
        raise handle_forum_error(e) from e
    return ReportResponse(report_count=count)


@router.put("/like/{post_id}", response_model=ReactionResponse, summary="Like post")
async def like_post(
    post_id: str, store: ThreadStoreDep, user: CurrentUser
) -> ReactionResponse:
    return await _react(store, user, EntityRef(post_id), "like")


@router.put(
    "/dislike/{post_id}", response_model=ReactionResponse, summary="Dislike post"
)
async def dislike_post(
    post_id: str, store: ThreadStoreDep, user: CurrentUser
) -> ReactionResponse:
    return await _react(store, user, EntityRef(post_id), "dislike")


@router.post(
    "/report/{post_id}",
    response_model=ReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report post",
)
async def report_post(
    post_id: str,
    store: ThreadStoreDep,
    user: CurrentUser,
    data: ReportRequest | None = None,
) -> ReportResponse:
    return await _report(store, user, EntityRef(post_id), data or ReportRequest())


@router.get("/{post_id}", response_model=PostResponse, summary="Get post")
async def get_post(post_id: str, forum_service: ForumServiceDep) -> PostResponse:
    """Get a post with its whole comment tree. Counts one view."""
    try:
        post = await forum_service.view_post(post_id)
    except ForumError as e:
        raise handle_forum_error(e) from e
    return PostResponse.from_post(post)


@router.put("/{post_id}", response_model=PostResponse, summary="Update post")
async def update_post(
    post_id: str,
    data: UpdatePostRequest,
    store: ThreadStoreDep,
    user: CurrentUser,
) -> PostResponse:
    try:
        post = await store.edit_post(
            user,
            post_id,
            title=data.title,
            content=data.content,
            category=data.category,
            location=data.location.to_location() if data.location else None,
            images=data.images,
        )
    except ForumError as e:
        raise handle_forum_error(e) from e
    return PostResponse.from_post(post)


@router.delete("/{post_id}", response_model=MessageResponse, summary="Delete post")
async def delete_post(
    post_id: str, store: ThreadStoreDep, user: CurrentUser
) -> MessageResponse:
    """Delete a post with all its comments and replies.

    Deleting a post that is already gone succeeds without doing anything.
    """
    try:
        deleted = await store.delete(user, EntityRef(post_id))
    except ForumError as e:
        raise handle_forum_error(e) from e
    return MessageResponse(message="Post deleted" if deleted else "Post already deleted")


# ==============================================================================
# Comments
# ==============================================================================


@router.post(
    "/comment/{post_id}",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add comment",
)
async def create_comment(
    post_id: str,
    data: CreateCommentRequest,
    store: ThreadStoreDep,
    forum_service: ForumServiceDep,
    user: CurrentUser,
) -> CommentResponse:
    try:
        await forum_service.check_write_rate(user.id)
        comment = await store.create_comment(
            user, post_id, data.content, client_ref=data.client_ref
        )
    except ForumError as e:
        raise handle_forum_error(e) from e
    return CommentResponse.from_comment(comment)


@router.put(
    "/comment/{post_id}/{comment_id}",
    response_model=CommentResponse,
    summary="Edit comment",
)
async def update_comment(
    post_id: str,
    comment_id: str,
    data: UpdateContentRequest,
    store: ThreadStoreDep,
    user: CurrentUser,
) -> CommentResponse:
    try:
        comment = await store.edit(user, EntityRef(post_id, comment_id), data.content)
    except ForumError as e:
        raise handle_forum_error(e) from e
    return CommentResponse.from_comment(comment)


@router.delete(
    "/comment/{post_id}/{comment_id}",
    response_model=MessageResponse,
    summary="Delete comment",
)
async def delete_comment(
    post_id: str, comment_id: str, store: ThreadStoreDep, user: CurrentUser
) -> MessageResponse:
    try:
        deleted = await store.delete(user, EntityRef(post_id, comment_id))
    except ForumError as e:
        raise handle_forum_error(e) from e
    return MessageResponse(
        message="Comment deleted" if deleted else "Comment already deleted"
    )


@router.put(
    "/comment/{post_id}/{comment_id}/{reaction}",
    response_model=ReactionResponse,
    summary="React to comment",
)
async def react_comment(
    post_id: str,
    comment_id: str,
    reaction: ReactionPath,
    store: ThreadStoreDep,
    user: CurrentUser,
) -> ReactionResponse:
    return await _react(store, user, EntityRef(post_id, comment_id), reaction)


@router.post(
    "/comment/{post_id}/{comment_id}/report",
    response_model=ReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report comment",
)
async def report_comment(
    post_id: str,
    comment_id: str,
    store: ThreadStoreDep,
    user: CurrentUser,
    data: ReportRequest | None = None,
) -> ReportResponse:
    return await _report(
        store, user, EntityRef(post_id, comment_id), data or ReportRequest()
    )


@router.get(
    "/comment/{post_id}/{comment_id}/thread",
    response_model=ThreadResponse,
    summary="Reply tree of a comment",
)
async def comment_thread(
    post_id: str,
    comment_id: str,
    store: ThreadStoreDep,
    root: str | None = Query(None, description="Only replies below this reply"),
) -> ThreadResponse:
    comment = await store.find(EntityRef(post_id, comment_id))
    if not isinstance(comment, Comment):
        raise handle_forum_error(NotFound("Comment not found"))

    tree = comment.thread()
    if root is not None and root not in tree:
        raise handle_forum_error(NotFound("Reply not found"))
    return ThreadResponse(
        post_id=post_id,
        comment_id=comment_id,
        total=len(tree),
        nodes=[ThreadNodeResponse.from_node(n) for n in tree.materialize(root)],
    )


# ==============================================================================
# Replies
# ==============================================================================


@router.post(
    "/comment/{post_id}/{comment_id}/reply",
    response_model=ReplyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add reply",
)
async def create_reply(
    post_id: str,
    comment_id: str,
    data: CreateReplyRequest,
    store: ThreadStoreDep,
    forum_service: ForumServiceDep,
    user: CurrentUser,
) -> ReplyResponse:
    """Reply to a comment, or to another reply when ``parent_reply_id`` is set."""
    try:
        await forum_service.check_write_rate(user.id)
        reply = await store.create_reply(
            user,
            post_id,
            comment_id,
            data.content,
            parent_reply_id=data.parent_reply_id,
            reply_to_user=data.reply_to_user,
            client_ref=data.client_ref,
        )
    except ForumError as e:
        raise handle_forum_error(e) from e
    return ReplyResponse.from_reply(reply)


@router.put(
    "/comment/{post_id}/{comment_id}/reply/{reply_id}",
    response_model=ReplyResponse,
    summary="Edit reply",
)
async def update_reply(
    post_id: str,
    comment_id: str,
    reply_id: str,
    data: UpdateContentRequest,
    store: ThreadStoreDep,
    user: CurrentUser,
) -> ReplyResponse:
    try:
        reply = await store.edit(
            user, EntityRef(post_id, comment_id, reply_id), data.content
        )
    except ForumError as e:
        raise handle_forum_error(e) from e
    return ReplyResponse.from_reply(reply)


@router.delete(
    "/comment/{post_id}/{comment_id}/reply/{reply_id}",
    response_model=MessageResponse,
    summary="Delete reply",
)
async def delete_reply(
    post_id: str,
    comment_id: str,
    reply_id: str,
    store: ThreadStoreDep,
    user: CurrentUser,
) -> MessageResponse:
    """Delete a reply and every reply nested under it."""
    try:
        deleted = await store.delete(user, EntityRef(post_id, comment_id, reply_id))
    except ForumError as e:
        raise handle_forum_error(e) from e
    return MessageResponse(message="Reply deleted" if deleted else "Reply already deleted")


@router.put(
    "/comment/{post_id}/{comment_id}/reply/{reply_id}/{reaction}",
    response_model=ReactionResponse,
    summary="React to reply",
)
async def react_reply(
    post_id: str,
    comment_id: str,
    reply_id: str,
    reaction: ReactionPath,
    store: ThreadStoreDep,
    user: CurrentUser,
) -> ReactionResponse:
    return await _react(store, user, EntityRef(post_id, comment_id, reply_id), reaction)


@router.post(
    "/comment/{post_id}/{comment_id}/reply/{reply_id}/report",
    response_model=ReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report reply",
)
async def report_reply(
    post_id: str,
    comment_id: str,
    reply_id: str,
    store: ThreadStoreDep,
    user: CurrentUser,
    data: ReportRequest | None = None,
) -> ReportResponse:
    return await _report(
        store, user, EntityRef(post_id, comment_id, reply_id), data or ReportRequest()
    )
