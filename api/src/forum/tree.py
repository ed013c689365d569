"""Reply tree indexing and traversal.

Replies are stored flat with a ``parent_reply_id`` pointer. ``ReplyTree``
builds a single parent -> children index in one pass and answers every tree
question (children, ordered traversal, subtree for cascades, depth, nested
materialization) from it without recursion.
"""

from collections import defaultdict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from .models import Reply


@dataclass
class ThreadNode:
    reply: "Reply"
    children: list["ThreadNode"] = field(default_factory=list)


class ReplyTree:
    """Immutable index over one comment's replies.

    Children keep their insertion order, which is creation order for stored
    comments.
    """

    def __init__(self, replies: Iterable["Reply"]):
        self._by_id: dict[str, Reply] = {}
        self._children: dict[str | None, list[Reply]] = defaultdict(list)
        for reply in replies:
            self._by_id[reply.id] = reply
            self._children[reply.parent_reply_id].append(reply)

    def __contains__(self, reply_id: object) -> bool:
        return reply_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, reply_id: str) -> "Reply | None":
        return self._by_id.get(reply_id)

    def children_of(self, parent_id: str | None) -> list["Reply"]:
        """Direct children; ``None`` means replies answering the comment itself."""
        return list(self._children.get(parent_id, ()))

    def walk(self, root_id: str | None = None) -> Iterator["Reply"]:
        """Depth-first pre-order below ``root_id`` (the root itself excluded).

        Every reachable reply is yielded exactly once and always after its
        parent.
        """
        seen: set[str] = set()
        stack = list(reversed(self._children.get(root_id, ())))
        while stack:
            reply = stack.pop()
            if reply.id in seen:
                continue
            seen.add(reply.id)
            yield reply
            stack.extend(reversed(self._children.get(reply.id, ())))

    def subtree_ids(self, reply_id: str) -> set[str]:
        """``reply_id`` plus every reply nested under it."""
        if reply_id not in self._by_id:
            return set()
        return {reply_id, *(reply.id for reply in self.walk(reply_id))}

    def depth(self, reply_id: str) -> int:
        """Nesting level: 1 for a reply to the comment, 2 for a reply to that..."""
        level = 0
        current = self._by_id.get(reply_id)
        seen: set[str] = set()
        while current is not None and current.id not in seen:
            seen.add(current.id)
            level += 1
            if current.parent_reply_id is None:
                break
            current = self._by_id.get(current.parent_reply_id)
        return level

    def materialize(self, root_id: str | None = None) -> list[ThreadNode]:
        """Nested nodes below ``root_id`` for rendering."""
        roots: list[ThreadNode] = []
        nodes: dict[str, ThreadNode] = {}
        for reply in self.walk(root_id):
            node = ThreadNode(reply)
            nodes[reply.id] = node
            parent = nodes.get(reply.parent_reply_id) if reply.parent_reply_id else None
            if parent is None:
                roots.append(node)
            else:
                parent.children.append(node)
        return roots
