"""Optimistic writes over a ForumReplica.

Every write is validated against the replica first, so the errors the server
would return for a locked post or a missing parent are raised before anything
is shown. The change is then projected locally, sent, and either confirmed in
place or rolled back. A failed write raises its domain error and triggers
exactly one ``on_error`` notification.

The echo of our own write arrives through the fan-out as well; the replica
recognises it by server id or by ``client_ref`` and does not apply it twice.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol
from uuid import uuid4

import structlog

from src.forum.exceptions import (
    ForumError,
    InvalidContent,
    InvalidParent,
    NetworkFailure,
    NotFound,
)
from src.forum.mentions import extract_mentions
from src.forum.models import (
    AuthorRef,
    Category,
    Comment,
    Location,
    Post,
    Reply,
    postable_category,
)
from src.forum.reactions import ReactionKind, ReactionState
from src.moderation.guards import POST_LOCK_GUARD

from .events import EntityPath, EventType, ForumEvent
from .replica import Confirmed, ForumReplica, Pending


if TYPE_CHECKING:
    from src.auth.schemas import Actor


logger = structlog.get_logger(__name__)

LOCAL_ID_PREFIX = "local-"

ErrorCallback = Callable[[ForumError], None]


class ForumTransport(Protocol):
    """Server calls used by the optimistic session."""

    async def create_post(
        self,
        title: str,
        content: str,
        category: str,
        location: Location | None,
        client_ref: str,
    ) -> Post: ...

    async def create_comment(
        self, post_id: str, content: str, client_ref: str
    ) -> Comment: ...

    async def create_reply(
        self,
        post_id: str,
        comment_id: str,
        content: str,
        parent_reply_id: str | None,
        client_ref: str,
    ) -> Reply: ...

    async def edit(self, path: EntityPath, content: str) -> None: ...

    async def delete(self, path: EntityPath) -> None: ...

    async def toggle_reaction(
        self, path: EntityPath, kind: ReactionKind
    ) -> ReactionState: ...


def new_local_id() -> str:
    return f"{LOCAL_ID_PREFIX}{uuid4()}"


class OptimisticSession:
    """One client's speculative view of the forum.

    Usage:
        session = OptimisticSession(replica, transport, actor, on_error=toast)
        comment = await session.create_comment(post_id, "Hello")
        # incoming websocket messages:
        session.receive(ForumEvent.from_message(message))
    """

    def __init__(
        self,
        replica: ForumReplica,
        transport: ForumTransport,
        actor: "Actor",
        session_id: str | None = None,
        on_error: ErrorCallback | None = None,
        content_max_length: int = 10000,
    ):
        self.replica = replica
        self.transport = transport
        self.actor = actor
        self.session_id = session_id or str(uuid4())
        self.on_error = on_error
        self.content_max_length = content_max_length
        # Entities with a reaction toggle in flight, keyed by entity id
        self._reacting: dict[str, int] = {}

    # ==========================================================================
    # Incoming events
    # ==========================================================================

    def receive(self, event: ForumEvent) -> bool:
        """Apply a fan-out event to the replica.

        Reaction echoes of our own in-flight toggles are skipped; the
        transport response settles those.
        """
        if (
            event.type == EventType.REACTION_CHANGED
            and event.origin == self.session_id
            and event.path.entity_id in self._reacting
        ):
            return False
        return self.replica.apply(event)

    # ==========================================================================
    # Validation
    # ==========================================================================

    def _author(self) -> AuthorRef:
        return AuthorRef(id=self.actor.id, name=self.actor.name, avatar=self.actor.avatar)

    def _clean(self, content: str) -> str:
        text = (content or "").strip()
        if not text:
            raise InvalidContent("Content cannot be empty")
        if len(text) > self.content_max_length:
            raise InvalidContent(f"Content exceeds {self.content_max_length} characters")
        return text

    def _writable_post(self, post_id: str) -> Post:
        post = self.replica.posts.get(post_id)
        if post is None:
            raise NotFound("Post not found")
        if self.replica.is_pending(post_id):
            raise NotFound("Post is still being created")
        POST_LOCK_GUARD.check(post, self.actor.is_moderator)
        return post

    def _fail(self, error: ForumError, operation: str) -> None:
        logger.info(
            "optimistic_write_rolled_back",
            operation=operation,
            code=error.code,
            error=error.message,
        )
        if self.on_error is not None:
            self.on_error(error)

    @contextmanager
    def _rollback_on_failure(
        self, operation: str, undo: Callable[[], object]
    ) -> Iterator[None]:
        """Undo the projection whenever the server call does not complete.

        Domain errors are re-raised as they are; any other failure becomes a
        ``NetworkFailure``. Cancellation undoes the projection without
        notifying, since nobody is waiting for the result.
        """
        try:
            yield
        except ForumError as e:
            undo()
            self._fail(e, operation)
            raise
        except Exception as e:
            undo()
            failure = NetworkFailure(f"Could not complete {operation}: {e}")
            self._fail(failure, operation)
            raise failure from e
        except BaseException:
            undo()
            raise

    # ==========================================================================
    # Creation
    # ==========================================================================

    async def create_post(
        self,
        title: str,
        content: str,
        category: Category | str = Category.GENERAL,
        location: Location | None = None,
    ) -> Post:
        content = self._clean(content)
        title = (title or "").strip()
        if not title:
            raise InvalidContent("Title cannot be empty")

        now = datetime.now(UTC)
        local = Post(
            id=new_local_id(),
            title=title,
            content=content,
            category=postable_category(category),
            author=self._author(),
            location=location or Location(),
            mentions=extract_mentions(content),
            created_at=now,
            updated_at=now,
        )
        self.replica.add_post(local, Pending(local.id))
        path = EntityPath(local.id)

        with self._rollback_on_failure(
            "create_post", lambda: self.replica.remove(path)
        ):
            server = await self.transport.create_post(
                title, content, local.category.value, location, client_ref=local.id
            )

        self.replica.confirm(path, server)
        return self.replica.posts.get(server.id, server)

    async def create_comment(self, post_id: str, content: str) -> Comment:
        """Raises LockedOrClosed before projecting if the post is locked."""
        content = self._clean(content)
        self._writable_post(post_id)

        now = datetime.now(UTC)
        local = Comment(
            id=new_local_id(),
            post_id=post_id,
            content=content,
            author=self._author(),
            mentions=extract_mentions(content),
            created_at=now,
            updated_at=now,
        )
        self.replica.add_comment(local, Pending(local.id))
        path = EntityPath(post_id, local.id)

        with self._rollback_on_failure(
            "create_comment", lambda: self.replica.remove(path)
        ):
            server = await self.transport.create_comment(
                post_id, content, client_ref=local.id
            )

        self.replica.confirm(path, server)
        return server

    async def create_reply(
        self,
        post_id: str,
        comment_id: str,
        content: str,
        parent_reply_id: str | None = None,
    ) -> Reply:
        """Raises LockedOrClosed or InvalidParent before projecting."""
        content = self._clean(content)
        post = self._writable_post(post_id)
        comment = post.find_comment(comment_id)
        if comment is None or self.replica.is_pending(comment_id):
            raise NotFound("Comment not found")

        if parent_reply_id is not None:
            parent = comment.find_reply(parent_reply_id)
            if parent is None or self.replica.is_pending(parent_reply_id):
                raise InvalidParent()
            reply_to_user = parent.author.id
        else:
            reply_to_user = comment.author.id

        now = datetime.now(UTC)
        local = Reply(
            id=new_local_id(),
            comment_id=comment_id,
            parent_reply_id=parent_reply_id,
            reply_to_user=reply_to_user,
            content=content,
            author=self._author(),
            mentions=extract_mentions(content),
            created_at=now,
            updated_at=now,
        )
        self.replica.add_reply(post_id, local, Pending(local.id))
        path = EntityPath(post_id, comment_id, local.id)

        with self._rollback_on_failure(
            "create_reply", lambda: self.replica.remove(path)
        ):
            server = await self.transport.create_reply(
                post_id, comment_id, content, parent_reply_id, client_ref=local.id
            )

        self.replica.confirm(path, server)
        return server

    # ==========================================================================
    # Edits & deletes
    # ==========================================================================

    async def edit(self, path: EntityPath, content: str) -> None:
        content = self._clean(content)
        entity = self.replica.get(path)
        if entity is None or self.replica.is_pending(path.entity_id):
            raise NotFound(f"{path.target.capitalize()} not found")

        previous = (entity.content, list(entity.mentions), entity.is_edited, entity.updated_at)
        entity.replace_content(content, extract_mentions(content))

        def restore() -> None:
            current = self.replica.get(path)
            if current is not None:
                (
                    current.content,
                    current.mentions,
                    current.is_edited,
                    current.updated_at,
                ) = previous

        with self._rollback_on_failure("edit", restore):
            await self.transport.edit(path, content)

    async def delete(self, path: EntityPath) -> None:
        """Remove locally at once; restore in the same position on failure."""
        if self.replica.get(path) is None:
            return
        snapshot = self._snapshot(path)
        self.replica.remove(path)

        with self._rollback_on_failure(
            "delete", lambda: self._restore(path, snapshot)
        ):
            await self.transport.delete(path)

    def _snapshot(self, path: EntityPath) -> tuple[int, list]:
        post = self.replica.posts[path.post_id]
        if path.comment_id is None:
            return list(self.replica.posts).index(post.id), [post]
        comment = post.find_comment(path.comment_id)
        if path.reply_id is None:
            return post.comments.index(comment), [comment]
        subtree = comment.thread().subtree_ids(path.reply_id)
        return 0, [(i, r) for i, r in enumerate(comment.replies) if r.id in subtree]

    def _restore(self, path: EntityPath, snapshot: tuple[int, list]) -> None:
        index, items = snapshot
        if path.comment_id is None:
            (post,) = items
            ordered = list(self.replica.posts.items())
            ordered.insert(index, (post.id, post))
            self.replica.posts = dict(ordered)
            return

        post = self.replica.posts.get(path.post_id)
        if post is None:
            return
        if path.reply_id is None:
            (comment,) = items
            post.comments.insert(min(index, len(post.comments)), comment)
            return

        comment = post.find_comment(path.comment_id)
        if comment is None:
            return
        replies = list(comment.replies)
        for position, reply in items:
            replies.insert(min(position, len(replies)), reply)
        comment.replies = replies
        comment._tree = None

    # ==========================================================================
    # Reactions
    # ==========================================================================

    async def toggle_reaction(
        self, path: EntityPath, kind: ReactionKind | str
    ) -> ReactionState:
        """Toggle with the same pure rule the server applies; roll back on failure."""
        entity = self.replica.get(path)
        if entity is None or self.replica.is_pending(path.entity_id):
            raise NotFound(f"{path.target.capitalize()} not found")

        kind = ReactionKind(kind)
        prior = entity.reaction_state()
        projected = entity.toggle_reaction(self.actor.id, kind)

        def restore() -> None:
            current = self.replica.get(path)
            if current is not None:
                current.likes = set(prior.likes)
                current.dislikes = set(prior.dislikes)

        key = path.entity_id
        self._reacting[key] = self._reacting.get(key, 0) + 1
        try:
            with self._rollback_on_failure("toggle_reaction", restore):
                confirmed = await self.transport.toggle_reaction(path, kind)
        finally:
            self._reacting[key] -= 1
            if not self._reacting[key]:
                del self._reacting[key]

        current = self.replica.get(path)
        if current is not None and key not in self._reacting:
            current.likes = set(confirmed.likes)
            current.dislikes = set(confirmed.dislikes)
        if confirmed != projected:
            logger.debug("optimistic_reaction_corrected", entity_id=key)
        return confirmed

    def tag_of(self, entity_id: str) -> Pending | Confirmed:
        return self.replica.tag_of(entity_id)
