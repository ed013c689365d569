"""Tests for mutation guards and status workflows."""

from dataclasses import dataclass
from enum import Enum

import pytest

from src.disputes.models import DISPUTE_WORKFLOW, DisputeStatus
from src.forum.exceptions import InvalidTransition, LockedOrClosed
from src.moderation import DISPUTE_CLOSED_GUARD, MutationGuard, StatusWorkflow


@dataclass
class Door:
    shut: bool


@dataclass
class FakeDispute:
    status: DisputeStatus

    @property
    def is_final(self) -> bool:
        return self.status in (DisputeStatus.RESOLVED, DisputeStatus.CLOSED)


class TestMutationGuard:
    def test_open_target_allows_everyone(self):
        guard = MutationGuard("door", lambda d: d.shut, True, "Shut")
        assert guard.allows(Door(shut=False))
        guard.check(Door(shut=False))

    def test_moderator_bypass(self):
        guard = MutationGuard("door", lambda d: d.shut, True, "Shut")
        assert guard.allows(Door(shut=True), actor_is_moderator=True)
        assert not guard.allows(Door(shut=True))
        with pytest.raises(LockedOrClosed, match="Shut"):
            guard.check(Door(shut=True))

    def test_dispute_guard_has_no_bypass(self):
        closed = FakeDispute(DisputeStatus.CLOSED)
        assert not DISPUTE_CLOSED_GUARD.allows(closed, actor_is_moderator=True)
        with pytest.raises(LockedOrClosed):
            DISPUTE_CLOSED_GUARD.check(closed, actor_is_moderator=True)
        DISPUTE_CLOSED_GUARD.check(FakeDispute(DisputeStatus.ESCALATED))


class Light(str, Enum):
    RED = "red"
    GREEN = "green"
    OFF = "off"


class TestStatusWorkflow:
    def test_transitions(self):
        workflow = StatusWorkflow(
            "light",
            {Light.RED: frozenset({Light.GREEN, Light.OFF}), Light.GREEN: frozenset({Light.OFF})},
        )
        assert workflow.can_transition(Light.RED, Light.GREEN)
        assert not workflow.can_transition(Light.GREEN, Light.RED)
        assert workflow.is_terminal(Light.OFF)
        with pytest.raises(InvalidTransition, match="from green to red"):
            workflow.check(Light.GREEN, Light.RED)

    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            (DisputeStatus.OPEN, DisputeStatus.RESOLVED, True),
            (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW, True),
            (DisputeStatus.UNDER_REVIEW, DisputeStatus.OPEN, False),
            (DisputeStatus.ESCALATED, DisputeStatus.UNDER_REVIEW, False),
            (DisputeStatus.ESCALATED, DisputeStatus.CLOSED, True),
            (DisputeStatus.RESOLVED, DisputeStatus.CLOSED, False),
            (DisputeStatus.CLOSED, DisputeStatus.OPEN, False),
        ],
    )
    def test_dispute_workflow(self, current, target, allowed):
        assert DISPUTE_WORKFLOW.can_transition(current, target) is allowed

    def test_final_statuses_are_terminal(self):
        assert DISPUTE_WORKFLOW.is_terminal(DisputeStatus.RESOLVED)
        assert DISPUTE_WORKFLOW.is_terminal(DisputeStatus.CLOSED)
        assert not DISPUTE_WORKFLOW.is_terminal(DisputeStatus.ESCALATED)
