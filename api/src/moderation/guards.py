"""Mutation guards.

A guard answers one question: may this actor add to this target right now?
Posts and disputes both gate new content on their state (a locked post, a
resolved or closed dispute); they differ only in the predicate and in whether
moderators bypass it.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

import structlog

from src.forum.exceptions import LockedOrClosed


if TYPE_CHECKING:
    from src.disputes.models import Dispute
    from src.forum.models import Post


logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class MutationGuard(Generic[T]):
    name: str
    is_closed: Callable[[T], bool]
    moderator_bypass: bool
    message: str

    def allows(self, target: T, actor_is_moderator: bool = False) -> bool:
        if not self.is_closed(target):
            return True
        return self.moderator_bypass and actor_is_moderator

    def check(self, target: T, actor_is_moderator: bool = False) -> None:
        """Raise LockedOrClosed if the guard blocks this actor."""
        if not self.allows(target, actor_is_moderator):
            logger.info("mutation_blocked", guard=self.name)
            raise LockedOrClosed(self.message)


def _post_is_locked(post: "Post") -> bool:
    return post.is_locked


POST_LOCK_GUARD: MutationGuard["Post"] = MutationGuard(
    name="post_lock",
    is_closed=_post_is_locked,
    moderator_bypass=True,
    message="This post is locked. Only moderators can comment.",
)


def _dispute_is_final(dispute: "Dispute") -> bool:
    return dispute.is_final


DISPUTE_CLOSED_GUARD: MutationGuard["Dispute"] = MutationGuard(
    name="dispute_closed",
    is_closed=_dispute_is_final,
    moderator_bypass=False,
    message="This dispute is resolved or closed and no longer accepts changes.",
)
