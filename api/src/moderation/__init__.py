"""Moderation: flag/status guards and status workflows."""

from src.moderation.guards import DISPUTE_CLOSED_GUARD, POST_LOCK_GUARD, MutationGuard
from src.moderation.workflow import StatusWorkflow


__all__ = ["DISPUTE_CLOSED_GUARD", "POST_LOCK_GUARD", "MutationGuard", "StatusWorkflow"]
