"""Thread store: the single writer for posts, comments and replies.

Every read-modify-write of a post's thread happens while holding that post's
lock, against a fresh copy loaded from the repository, and ends with one
document write. A fan-out event is published after each successful write;
publishing never blocks or fails the mutation.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from src.core.context import get_session_id
from src.core.locks import KeyedLock
from src.moderation.guards import POST_LOCK_GUARD
from src.realtime.events import (
    EntityPath,
    EventPublisher,
    EventType,
    ForumEvent,
    NullPublisher,
)

from .exceptions import (
    AlreadyReported,
    Forbidden,
    InvalidContent,
    InvalidParent,
    NotFound,
)
from .mentions import extract_mentions
from .models import (
    AuthorRef,
    Category,
    Comment,
    Location,
    Post,
    Reply,
    create_comment,
    create_post,
    create_reply,
    create_report,
    postable_category,
)
from .reactions import ReactionKind, ReactionState


if TYPE_CHECKING:
    from src.auth.schemas import Actor
    from src.core.repository import AggregateRepository


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EntityRef:
    """Locates a post, a comment of a post, or a reply of a comment."""

    post_id: str
    comment_id: str | None = None
    reply_id: str | None = None

    def __post_init__(self) -> None:
        if self.reply_id and not self.comment_id:
            raise ValueError("A reply reference needs its comment_id")

    @property
    def kind(self) -> str:
        if self.reply_id:
            return "reply"
        if self.comment_id:
            return "comment"
        return "post"

    def path(self) -> EntityPath:
        return EntityPath(self.post_id, self.comment_id, self.reply_id)


Entity = Post | Comment | Reply


def _author_of(actor: "Actor") -> AuthorRef:
    return AuthorRef(id=actor.id, name=actor.name, avatar=actor.avatar)


def _can_modify(actor: "Actor", entity: Entity) -> bool:
    return actor.is_moderator or entity.author.id == actor.id


def _post_summary(post: Post) -> dict:
    document = post.to_document()
    document.pop("comments", None)
    document["comment_count"] = len(post.comments)
    return document


class ThreadStore:
    """Owns Post -> Comment -> Reply trees and their invariants."""

    def __init__(
        self,
        posts: "AggregateRepository[Post]",
        publisher: EventPublisher | None = None,
        max_reply_depth: int = 64,
        content_max_length: int = 10000,
        title_max_length: int = 200,
    ):
        self.posts = posts
        self.publisher = publisher or NullPublisher()
        self.max_reply_depth = max_reply_depth
        self.content_max_length = content_max_length
        self.title_max_length = title_max_length
        self._locks = KeyedLock()

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _clean_text(self, value: str | None, field: str, max_length: int) -> str:
        text = (value or "").strip()
        if not text:
            raise InvalidContent(f"{field} cannot be empty")
        if len(text) > max_length:
            raise InvalidContent(f"{field} exceeds {max_length} characters")
        return text

    def _clean_content(self, content: str | None) -> str:
        return self._clean_text(content, "Content", self.content_max_length)

    async def _load(self, post_id: str) -> Post:
        post = await self.posts.get(post_id)
        if post is None:
            raise NotFound("Post not found")
        return post

    @staticmethod
    def _locate(post: Post, ref: EntityRef) -> Entity | None:
        if ref.comment_id is None:
            return post
        comment = post.find_comment(ref.comment_id)
        if comment is None or ref.reply_id is None:
            return comment
        return comment.find_reply(ref.reply_id)

    def _emit(
        self,
        event_type: EventType,
        post: Post,
        path: EntityPath,
        data: dict | None = None,
        client_ref: str | None = None,
    ) -> None:
        event = ForumEvent(
            type=event_type,
            path=path,
            category=post.category.value,
            data=data or {},
            origin=get_session_id(),
            client_ref=client_ref,
        )
        if not self.publisher.publish(event):
            logger.debug("forum_event_not_published", event_type=event_type.value)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_post(self, post_id: str) -> Post:
        return await self._load(post_id)

    async def find(self, ref: EntityRef) -> Entity | None:
        """Return the referenced entity, or None if any part of the path is gone."""
        post = await self.posts.get(ref.post_id)
        if post is None:
            return None
        return self._locate(post, ref)

    async def list_posts(self) -> list[Post]:
        return await self.posts.list_all()

    async def record_view(self, post_id: str) -> Post:
        async with self._locks.hold(post_id):
            post = await self._load(post_id)
            post.view_count += 1
            await self.posts.save(post)
        return post

    # ==========================================================================
    # Creation
    # ==========================================================================

    async def create_post(
        self,
        actor: "Actor",
        title: str,
        content: str,
        category: Category | str = Category.GENERAL,
        location: Location | None = None,
        images: list[str] | None = None,
        client_ref: str | None = None,
    ) -> Post:
        content = self._clean_content(content)
        post = create_post(
            title=self._clean_text(title, "Title", self.title_max_length),
            content=content,
            author=_author_of(actor),
            category=postable_category(category),
            location=location,
            images=images,
            mentions=extract_mentions(content),
        )
        async with self._locks.hold(post.id):
            await self.posts.save(post)

        logger.info("post_created", post_id=post.id, category=post.category.value)
        self._emit(
            EventType.POST_CREATED,
            post,
            EntityPath(post.id),
            {"post": _post_summary(post)},
            client_ref,
        )
        return post

    async def create_comment(
        self,
        actor: "Actor",
        post_id: str,
        content: str,
        client_ref: str | None = None,
    ) -> Comment:
        """Add a comment to a post.

        Raises:
            NotFound: post does not exist
            LockedOrClosed: post is locked and actor is not a moderator
        """
        content = self._clean_content(content)
        async with self._locks.hold(post_id):
            post = await self._load(post_id)
            POST_LOCK_GUARD.check(post, actor.is_moderator)

            comment = create_comment(
                post_id=post.id,
                content=content,
                author=_author_of(actor),
                mentions=extract_mentions(content),
            )
            post.comments.append(comment)
            await self.posts.save(post)

        logger.info("comment_created", post_id=post_id, comment_id=comment.id)
        self._emit(
            EventType.COMMENT_ADDED,
            post,
            EntityPath(post_id, comment.id),
            {"comment": comment.to_document()},
            client_ref,
        )
        return comment

    async def create_reply(
        self,
        actor: "Actor",
        post_id: str,
        comment_id: str,
        content: str,
        parent_reply_id: str | None = None,
        reply_to_user: str | None = None,
        client_ref: str | None = None,
    ) -> Reply:
        """Add a reply to a comment, optionally nested under another reply.

        Raises:
            NotFound: post or comment does not exist
            LockedOrClosed: post is locked and actor is not a moderator
            InvalidParent: parent reply is not in this comment, or the
                chain would exceed the maximum depth
        """
        content = self._clean_content(content)
        async with self._locks.hold(post_id):
            post = await self._load(post_id)
            POST_LOCK_GUARD.check(post, actor.is_moderator)

            comment = post.find_comment(comment_id)
            if comment is None:
                raise NotFound("Comment not found")

            if parent_reply_id is not None:
                thread = comment.thread()
                parent = thread.get(parent_reply_id)
                if parent is None:
                    raise InvalidParent()
                if thread.depth(parent.id) + 1 > self.max_reply_depth:
                    raise InvalidParent(
                        f"Replies cannot be nested deeper than {self.max_reply_depth}"
                    )
                reply_to_user = reply_to_user or parent.author.id
            else:
                reply_to_user = reply_to_user or comment.author.id

            reply = create_reply(
                comment_id=comment.id,
                content=content,
                author=_author_of(actor),
                parent_reply_id=parent_reply_id,
                reply_to_user=reply_to_user,
                mentions=extract_mentions(content),
            )
            comment.add_reply(reply)
            await self.posts.save(post)

        logger.info(
            "reply_created",
            post_id=post_id,
            comment_id=comment_id,
            reply_id=reply.id,
            parent_reply_id=parent_reply_id,
        )
        self._emit(
            EventType.REPLY_ADDED,
            post,
            EntityPath(post_id, comment_id, reply.id),
            {"reply": reply.to_document()},
            client_ref,
        )
        return reply

    # ==========================================================================
    # Edits
    # ==========================================================================

    async def edit(self, actor: "Actor", ref: EntityRef, content: str) -> Entity:
        """Replace the content of a post, comment or reply.

        Raises:
            NotFound: entity does not exist
            Forbidden: actor is neither the author nor a moderator
        """
        content = self._clean_content(content)
        async with self._locks.hold(ref.post_id):
            post = await self._load(ref.post_id)
            entity = self._locate(post, ref)
            if entity is None:
                raise NotFound(f"{ref.kind.capitalize()} not found")
            if not _can_modify(actor, entity):
                raise Forbidden(f"You can only edit your own {ref.kind}")

            entity.replace_content(content, extract_mentions(content))
            await self.posts.save(post)

        logger.info("forum_content_edited", kind=ref.kind, entity_id=entity.id)
        self._emit_updated(post, ref, entity)
        return entity

    async def edit_post(
        self,
        actor: "Actor",
        post_id: str,
        title: str | None = None,
        content: str | None = None,
        category: Category | str | None = None,
        location: Location | None = None,
        images: list[str] | None = None,
    ) -> Post:
        """Update any subset of a post's editable fields."""
        if category is not None:
            category = postable_category(category)

        async with self._locks.hold(post_id):
            post = await self._load(post_id)
            if not _can_modify(actor, post):
                raise Forbidden("You can only edit your own post")

            if title is not None:
                post.title = self._clean_text(title, "Title", self.title_max_length)
            if category is not None:
                post.category = category
            if location is not None:
                post.location = location
            if images is not None:
                post.images = list(images)
            if content is not None:
                content = self._clean_content(content)
                post.replace_content(content, extract_mentions(content))
            elif title is not None:
                post.is_edited = True
            await self.posts.save(post)

        logger.info("post_edited", post_id=post_id)
        self._emit_updated(post, EntityRef(post_id), post)
        return post

    def _emit_updated(self, post: Post, ref: EntityRef, entity: Entity) -> None:
        if isinstance(entity, Post):
            self._emit(
                EventType.POST_UPDATED, post, ref.path(), {"post": _post_summary(post)}
            )
        elif isinstance(entity, Comment):
            self._emit(
                EventType.COMMENT_UPDATED,
                post,
                ref.path(),
                {"comment": entity.to_document()},
            )
        else:
            self._emit(
                EventType.REPLY_UPDATED, post, ref.path(), {"reply": entity.to_document()}
            )

    # ==========================================================================
    # Deletes
    # ==========================================================================

    async def delete(self, actor: "Actor", ref: EntityRef) -> bool:
        """Delete an entity and everything beneath it in one write.

        Returns False, without raising, when the entity is already gone.

        Raises:
            Forbidden: actor is neither the author nor a moderator
        """
        async with self._locks.hold(ref.post_id):
            post = await self.posts.get(ref.post_id)
            entity = self._locate(post, ref) if post is not None else None
            if entity is None:
                logger.debug("forum_delete_noop", kind=ref.kind, ref=str(ref))
                return False
            if not _can_modify(actor, entity):
                raise Forbidden(f"You can only delete your own {ref.kind}")

            if isinstance(entity, Post):
                await self.posts.delete(post.id)
                removed = [post.id]
                event_type = EventType.POST_DELETED
            elif isinstance(entity, Comment):
                post.comments = [c for c in post.comments if c.id != entity.id]
                await self.posts.save(post)
                removed = [entity.id, *(reply.id for reply in entity.replies)]
                event_type = EventType.COMMENT_DELETED
            else:
                comment = post.find_comment(ref.comment_id)
                subtree = comment.thread().subtree_ids(entity.id)
                comment.remove_replies(subtree)
                await self.posts.save(post)
                removed = sorted(subtree)
                event_type = EventType.REPLY_DELETED

        logger.info(
            "forum_entity_deleted",
            kind=ref.kind,
            entity_id=entity.id,
            removed_count=len(removed),
            by_moderator=actor.is_moderator and entity.author.id != actor.id,
        )
        self._emit(event_type, post, ref.path(), {"removed_ids": removed})
        return True

    # ==========================================================================
    # Reactions & reports
    # ==========================================================================

    async def toggle_reaction(
        self,
        actor: "Actor",
        ref: EntityRef,
        kind: ReactionKind | str,
    ) -> ReactionState:
        """Toggle like/dislike; see ``reactions.toggle`` for the rules."""
        async with self._locks.hold(ref.post_id):
            post = await self._load(ref.post_id)
            entity = self._locate(post, ref)
            if entity is None:
                raise NotFound(f"{ref.kind.capitalize()} not found")

            state = entity.toggle_reaction(actor.id, kind)
            await self.posts.save(post)

        self._emit(
            EventType.REACTION_CHANGED,
            post,
            ref.path(),
            {
                "target": ref.kind,
                "likes": sorted(state.likes),
                "dislikes": sorted(state.dislikes),
            },
        )
        return state

    async def report(
        self, actor: "Actor", ref: EntityRef, reason: str | None = None
    ) -> int:
        """Append a report. Returns the number of reports on the entity.

        Raises:
            NotFound: entity does not exist
            AlreadyReported: actor already reported this entity
        """
        async with self._locks.hold(ref.post_id):
            post = await self._load(ref.post_id)
            entity = self._locate(post, ref)
            if entity is None:
                raise NotFound(f"{ref.kind.capitalize()} not found")
            if entity.has_reported(actor.id):
                raise AlreadyReported()

            entity.reports.append(create_report(actor.id, reason))
            await self.posts.save(post)

        logger.warning(
            "forum_content_reported",
            kind=ref.kind,
            entity_id=entity.id,
            report_count=len(entity.reports),
        )
        return len(entity.reports)

    # ==========================================================================
    # Moderator flags
    # ==========================================================================

    async def toggle_pin(self, actor: "Actor", post_id: str) -> bool:
        return await self._toggle_flag(actor, post_id, "is_pinned")

    async def toggle_lock(self, actor: "Actor", post_id: str) -> bool:
        return await self._toggle_flag(actor, post_id, "is_locked")

    async def _toggle_flag(self, actor: "Actor", post_id: str, flag: str) -> bool:
        if not actor.is_moderator:
            raise Forbidden("Only moderators can change this setting")

        async with self._locks.hold(post_id):
            post = await self._load(post_id)
            value = not getattr(post, flag)
            setattr(post, flag, value)
            await self.posts.save(post)

        logger.info("post_flag_toggled", post_id=post_id, flag=flag, value=value)
        self._emit(
            EventType.POST_UPDATED,
            post,
            EntityPath(post_id),
            {"post": _post_summary(post)},
        )
        return value
