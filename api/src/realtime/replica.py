"""Client-local copy of the forum kept in sync by fan-out events.

``ForumReplica.apply`` is idempotent: a duplicated ``*Added`` event, an update
for something no longer present and a delete of an unknown id all leave the
replica unchanged. Entities created optimistically live here under a local id
until the server confirms them, at which point they are re-keyed in place so
their position in the list never changes.
"""

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from src.forum.models import Comment, Post, Reply

from .events import EntityPath, EventType, ForumEvent


logger = structlog.get_logger(__name__)

Entity = Post | Comment | Reply

# Event ids remembered for duplicate detection
SEEN_EVENTS_LIMIT = 1024


@dataclass(frozen=True)
class Pending:
    """Optimistic entity still waiting for the server; ``local_id`` is client-made."""

    local_id: str


@dataclass(frozen=True)
class Confirmed:
    server_id: str


EntityTag = Pending | Confirmed


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class ForumReplica:
    """Posts with their comment trees, as seen by one client."""

    def __init__(self, categories: Iterable[str] | None = None):
        self.posts: dict[str, Post] = {}
        self.categories: frozenset[str] = frozenset(categories or ())
        self._tags: dict[str, EntityTag] = {}
        self._seen: deque[str] = deque(maxlen=SEEN_EVENTS_LIMIT)

    # ==========================================================================
    # Snapshot & lookup
    # ==========================================================================

    def load(self, posts: Iterable[Post]) -> None:
        """Replace the whole replica with a fresh server snapshot."""
        self.posts = {post.id: post for post in posts}
        self._tags = {}
        self._seen.clear()

    def tag_of(self, entity_id: str) -> EntityTag:
        return self._tags.get(entity_id) or Confirmed(entity_id)

    def is_pending(self, entity_id: str) -> bool:
        return isinstance(self._tags.get(entity_id), Pending)

    def get(self, path: EntityPath) -> Entity | None:
        post = self.posts.get(path.post_id)
        if post is None or path.comment_id is None:
            return post
        comment = post.find_comment(path.comment_id)
        if comment is None or path.reply_id is None:
            return comment
        return comment.find_reply(path.reply_id)

    def _comment(self, path: EntityPath) -> Comment | None:
        post = self.posts.get(path.post_id)
        if post is None or path.comment_id is None:
            return None
        return post.find_comment(path.comment_id)

    # ==========================================================================
    # Local mutations (used by the optimistic session)
    # ==========================================================================

    def add_post(self, post: Post, tag: EntityTag | None = None) -> bool:
        if post.id in self.posts:
            return False
        self.posts[post.id] = post
        if tag is not None:
            self._tags[post.id] = tag
        return True

    def add_comment(self, comment: Comment, tag: EntityTag | None = None) -> bool:
        post = self.posts.get(comment.post_id)
        if post is None or post.find_comment(comment.id) is not None:
            return False
        post.comments.append(comment)
        if tag is not None:
            self._tags[comment.id] = tag
        return True

    def add_reply(
        self, post_id: str, reply: Reply, tag: EntityTag | None = None
    ) -> bool:
        comment = self._comment(EntityPath(post_id, reply.comment_id))
        if comment is None or reply.id in comment.thread():
            return False
        comment.add_reply(reply)
        if tag is not None:
            self._tags[reply.id] = tag
        return True

    def remove(self, path: EntityPath, removed_ids: Iterable[str] = ()) -> list[str]:
        """Remove an entity and everything under it. Unknown paths are no-ops.

        ``removed_ids`` (from a server event) is honoured for replies so the
        replica drops exactly what the server dropped.
        """
        post = self.posts.get(path.post_id)
        if post is None:
            return []

        if path.comment_id is None:
            del self.posts[post.id]
            removed = [post.id]
            for comment in post.comments:
                removed.append(comment.id)
                removed.extend(reply.id for reply in comment.replies)
        elif path.reply_id is None:
            comment = post.find_comment(path.comment_id)
            if comment is None:
                return []
            post.comments = [c for c in post.comments if c.id != comment.id]
            removed = [comment.id, *(reply.id for reply in comment.replies)]
        else:
            comment = post.find_comment(path.comment_id)
            if comment is None:
                return []
            subtree = comment.thread().subtree_ids(path.reply_id)
            subtree.update(rid for rid in removed_ids if rid in comment.thread())
            if not subtree:
                return []
            comment.remove_replies(subtree)
            removed = sorted(subtree)

        for entity_id in removed:
            self._tags.pop(entity_id, None)
        return removed

    def confirm(self, path: EntityPath, server: Entity) -> bool:
        """Swap a pending entity for the server's copy in the same position.

        Returns False if the local entity is gone (removed, or already
        confirmed by an echo).
        """
        local_id = path.entity_id
        if not self.is_pending(local_id):
            return False

        post = self.posts.get(path.post_id)
        if isinstance(server, Post):
            if post is None:
                return False
            server.comments = post.comments
            for comment in server.comments:
                comment.post_id = server.id
            self.posts = {
                (server.id if key == local_id else key): (
                    server if key == local_id else value
                )
                for key, value in self.posts.items()
            }
        elif isinstance(server, Comment):
            if post is None:
                return False
            local = post.find_comment(local_id)
            if local is None:
                return False
            server.replies = local.replies
            server._tree = None
            for reply in server.replies:
                reply.comment_id = server.id
            post.comments = [server if c.id == local_id else c for c in post.comments]
        else:
            comment = self._comment(path)
            if comment is None or local_id not in comment.thread():
                return False
            replies = []
            for reply in comment.replies:
                if reply.id == local_id:
                    replies.append(server)
                elif reply.parent_reply_id == local_id:
                    reply.parent_reply_id = server.id
                    replies.append(reply)
                else:
                    replies.append(reply)
            comment.replies = replies
            comment._tree = None

        del self._tags[local_id]
        logger.debug("replica_entity_confirmed", local_id=local_id, server_id=server.id)
        return True

    # ==========================================================================
    # Event application
    # ==========================================================================

    def accepts(self, event: ForumEvent) -> bool:
        return not self.categories or event.category in self.categories

    def apply(self, event: ForumEvent) -> bool:
        """Apply one fan-out event. Returns True if the replica changed."""
        if not self.accepts(event):
            return False
        if event.event_id in self._seen:
            return False
        self._seen.append(event.event_id)

        handler = _HANDLERS[event.type]
        changed = handler(self, event)
        if changed:
            logger.debug(
                "replica_event_applied",
                event_type=event.type.value,
                entity_id=event.path.entity_id,
            )
        return changed

    def _adopt_echo(self, event: ForumEvent, server: Entity) -> bool | None:
        """Match the echo of our own optimistic create by ``client_ref``.

        Returns None when the event is not such an echo.
        """
        if not event.client_ref or not self.is_pending(event.client_ref):
            return None
        path = event.path
        if path.reply_id:
            local_path = EntityPath(path.post_id, path.comment_id, event.client_ref)
        elif path.comment_id:
            local_path = EntityPath(path.post_id, event.client_ref)
        else:
            local_path = EntityPath(event.client_ref)
        return self.confirm(local_path, server)

    def _on_post_created(self, event: ForumEvent) -> bool:
        document = event.data.get("post")
        if not document:
            return False
        post = Post.from_document({**document, "comments": []})
        adopted = self._adopt_echo(event, post)
        if adopted is not None:
            return adopted
        return self.add_post(post)

    def _on_post_updated(self, event: ForumEvent) -> bool:
        current = self.posts.get(event.path.post_id)
        document = event.data.get("post")
        if current is None or not document:
            return False
        updated = Post.from_document({**document, "comments": []})
        # Comments are not part of the event body
        updated.comments = current.comments
        self.posts[current.id] = updated
        return True

    def _on_added(self, event: ForumEvent) -> bool:
        if event.type == EventType.COMMENT_ADDED:
            document = event.data.get("comment")
            if not document:
                return False
            comment = Comment.from_document(document)
            adopted = self._adopt_echo(event, comment)
            if adopted is not None:
                return adopted
            return self.add_comment(comment)

        document = event.data.get("reply")
        if not document:
            return False
        reply = Reply.from_document(document)
        adopted = self._adopt_echo(event, reply)
        if adopted is not None:
            return adopted
        return self.add_reply(event.path.post_id, reply)

    def _on_content_updated(self, event: ForumEvent) -> bool:
        entity = self.get(event.path)
        document: dict[str, Any] | None = event.data.get(event.path.target)
        if entity is None or not document:
            return False
        entity.content = document.get("content") or entity.content
        entity.mentions = list(document.get("mentions") or [])
        entity.is_edited = entity.is_edited or bool(document.get("is_edited"))
        entity.updated_at = _parse_ts(document.get("updated_at")) or entity.updated_at
        return True

    def _on_deleted(self, event: ForumEvent) -> bool:
        return bool(self.remove(event.path, event.data.get("removed_ids") or ()))

    def _on_reaction(self, event: ForumEvent) -> bool:
        entity = self.get(event.path)
        if entity is None:
            return False
        likes = set(event.data.get("likes") or [])
        dislikes = set(event.data.get("dislikes") or [])
        if entity.likes == likes and entity.dislikes == dislikes:
            return False
        entity.likes = likes
        entity.dislikes = dislikes
        return True


_HANDLERS = {
    EventType.POST_CREATED: ForumReplica._on_post_created,
    EventType.POST_UPDATED: ForumReplica._on_post_updated,
    EventType.POST_DELETED: ForumReplica._on_deleted,
    EventType.COMMENT_ADDED: ForumReplica._on_added,
    EventType.COMMENT_UPDATED: ForumReplica._on_content_updated,
    EventType.COMMENT_DELETED: ForumReplica._on_deleted,
    EventType.REPLY_ADDED: ForumReplica._on_added,
    EventType.REPLY_UPDATED: ForumReplica._on_content_updated,
    EventType.REPLY_DELETED: ForumReplica._on_deleted,
    EventType.REACTION_CHANGED: ForumReplica._on_reaction,
}
