"""Linear status workflows with guarded transitions."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Generic, TypeVar

from src.forum.exceptions import InvalidTransition


S = TypeVar("S")


@dataclass(frozen=True)
class StatusWorkflow(Generic[S]):
    """Allowed ``current -> next`` moves; statuses without moves are terminal."""

    name: str
    transitions: Mapping[S, frozenset[S]]

    def targets(self, current: S) -> frozenset[S]:
        return self.transitions.get(current, frozenset())

    def is_terminal(self, status: S) -> bool:
        return not self.targets(status)

    def can_transition(self, current: S, target: S) -> bool:
        return target in self.targets(current)

    def check(self, current: S, target: S) -> None:
        if not self.can_transition(current, target):
            raise InvalidTransition(
                f"Cannot move {self.name} from {_label(current)} to {_label(target)}"
            )


def _label(status: object) -> str:
    return str(getattr(status, "value", status))
