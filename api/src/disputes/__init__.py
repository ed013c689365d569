"""Rental disputes: a flat discussion gated by a moderator status workflow."""

from src.disputes.models import (
    DISPUTE_WORKFLOW,
    DISPUTES_TABLES_CQL,
    Dispute,
    DisputePriority,
    DisputeStatus,
)


__all__ = [
    "DISPUTES_TABLES_CQL",
    "DISPUTE_WORKFLOW",
    "Dispute",
    "DisputePriority",
    "DisputeStatus",
]
