"""Reaction ledger: mutually exclusive like/dislike sets.

``toggle`` is pure so that the server (under the post serializer) and the
client optimistic path compute exactly the same next state.
"""

from dataclasses import dataclass
from enum import Enum


class ReactionKind(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"


@dataclass(frozen=True)
class ReactionState:
    likes: frozenset[str]
    dislikes: frozenset[str]

    @property
    def like_count(self) -> int:
        return len(self.likes)

    @property
    def dislike_count(self) -> int:
        return len(self.dislikes)

    def reaction_of(self, user_id: str) -> ReactionKind | None:
        if user_id in self.likes:
            return ReactionKind.LIKE
        if user_id in self.dislikes:
            return ReactionKind.DISLIKE
        return None


def toggle(
    likes: frozenset[str] | set[str],
    dislikes: frozenset[str] | set[str],
    user_id: str,
    kind: ReactionKind | str,
) -> ReactionState:
    """Apply one like/dislike toggle for ``user_id``.

    Pressing the reaction already held removes it. Pressing the other one adds
    it and removes the user from the opposite set, so a user is never in both.
    """
    kind = ReactionKind(kind)
    same, opposite = (
        (set(likes), set(dislikes))
        if kind is ReactionKind.LIKE
        else (set(dislikes), set(likes))
    )

    if user_id in same:
        same.discard(user_id)
    else:
        same.add(user_id)
        opposite.discard(user_id)

    if kind is ReactionKind.LIKE:
        return ReactionState(likes=frozenset(same), dislikes=frozenset(opposite))
    return ReactionState(likes=frozenset(opposite), dislikes=frozenset(same))
