"""Forum fan-out event catalogue and wire envelope.

One event is published per successful mutation. Every event carries the
minimal path locating the mutated node (post, comment, reply ids) so a
consumer can apply it to its local tree without refetching.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4


class EventType(str, Enum):
    POST_CREATED = "postCreated"
    POST_UPDATED = "postUpdated"
    POST_DELETED = "postDeleted"
    COMMENT_ADDED = "commentAdded"
    COMMENT_UPDATED = "commentUpdated"
    COMMENT_DELETED = "commentDeleted"
    REPLY_ADDED = "replyAdded"
    REPLY_UPDATED = "replyUpdated"
    REPLY_DELETED = "replyDeleted"
    REACTION_CHANGED = "reactionChanged"


@dataclass(frozen=True)
class EntityPath:
    post_id: str
    comment_id: str | None = None
    reply_id: str | None = None

    @property
    def target(self) -> str:
        if self.reply_id:
            return "reply"
        if self.comment_id:
            return "comment"
        return "post"

    @property
    def entity_id(self) -> str:
        return self.reply_id or self.comment_id or self.post_id


@dataclass(frozen=True)
class ForumEvent:
    """A single mutation notification.

    ``origin`` is the client session that issued the mutation and
    ``client_ref`` the local id it used for its optimistic projection, so the
    originating session can recognise the echo of its own write.
    """

    type: EventType
    path: EntityPath
    category: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    origin: str | None = None
    client_ref: str | None = None
    event_id: str = field(default_factory=lambda: str(uuid4()))
    emitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_message(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "event_id": self.event_id,
            "category": self.category,
            "origin": self.origin,
            "client_ref": self.client_ref,
            "emitted_at": self.emitted_at.isoformat(),
            "payload": {
                "post_id": self.path.post_id,
                "comment_id": self.path.comment_id,
                "reply_id": self.path.reply_id,
                **self.data,
            },
        }

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "ForumEvent":
        payload = dict(message.get("payload") or {})
        path = EntityPath(
            post_id=payload.pop("post_id"),
            comment_id=payload.pop("comment_id", None),
            reply_id=payload.pop("reply_id", None),
        )
        emitted_at = message.get("emitted_at")
        return cls(
            type=EventType(message["type"]),
            path=path,
            category=message.get("category"),
            data=payload,
            origin=message.get("origin"),
            client_ref=message.get("client_ref"),
            event_id=message.get("event_id") or str(uuid4()),
            emitted_at=(
                datetime.fromisoformat(emitted_at) if emitted_at else datetime.now(UTC)
            ),
        )


class EventPublisher(Protocol):
    def publish(self, event: ForumEvent) -> bool: ...


class NullPublisher:
    """Publisher for contexts without real-time delivery (scripts, tests)."""

    def publish(self, event: ForumEvent) -> bool:
        return False

