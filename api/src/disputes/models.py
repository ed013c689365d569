"""Domain models for rental disputes.

A Dispute is a flat discussion between two parties of a contract (messages,
evidence) plus a moderator-driven status workflow. Like forum posts, each
dispute is stored as one JSON document.
"""

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from src.moderation.workflow import StatusWorkflow


class DisputeStatus(str, Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    CLOSED = "closed"
    ESCALATED = "escalated"


class DisputePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class DisputeCategory(str, Enum):
    PAYMENT_ISSUE = "payment_issue"
    PROPERTY_MAINTENANCE = "property_maintenance"
    BEHAVIOR = "behavior"
    CONTRACT_VIOLATION = "contract_violation"
    DAMAGE_ASSESSMENT = "damage_assessment"
    EARLY_TERMINATION = "early_termination"
    OTHER = "other"


class EvidenceType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    TEXT = "text"
    PAYMENT_RECEIPT = "payment_receipt"


class ActionTaken(str, Enum):
    REFUND = "refund"
    PENALTY = "penalty"
    WARNING = "warning"
    TERMINATION = "termination"
    NO_ACTION = "no_action"
    PARTIAL_REFUND = "partial_refund"


# Moderators may act on an open dispute directly, as the admin panel does
DISPUTE_WORKFLOW: StatusWorkflow[DisputeStatus] = StatusWorkflow(
    name="dispute",
    transitions={
        DisputeStatus.OPEN: frozenset(
            {
                DisputeStatus.UNDER_REVIEW,
                DisputeStatus.ESCALATED,
                DisputeStatus.RESOLVED,
                DisputeStatus.CLOSED,
            }
        ),
        DisputeStatus.UNDER_REVIEW: frozenset(
            {DisputeStatus.ESCALATED, DisputeStatus.RESOLVED, DisputeStatus.CLOSED}
        ),
        DisputeStatus.ESCALATED: frozenset(
            {DisputeStatus.RESOLVED, DisputeStatus.CLOSED}
        ),
    },
)

FINAL_STATUSES = frozenset({DisputeStatus.RESOLVED, DisputeStatus.CLOSED})


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

DISPUTES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.disputes (
    id TEXT PRIMARY KEY,
    document TEXT,
    updated_at TIMESTAMP
)
"""

DISPUTES_TABLES_CQL = [
    DISPUTES_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Evidence:
    type: EvidenceType
    url: str
    uploaded_by: str
    uploaded_at: datetime
    description: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "url": self.url,
            "description": self.description,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": _ts(self.uploaded_at),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Evidence":
        return cls(
            type=EvidenceType(doc["type"]),
            url=doc["url"],
            description=doc.get("description"),
            uploaded_by=doc["uploaded_by"],
            uploaded_at=_parse_ts(doc.get("uploaded_at")) or datetime.now(UTC),
        )


@dataclass
class DisputeMessage:
    id: str
    sender: str
    message: str
    timestamp: datetime
    attachments: list[str] = field(default_factory=list)
    read_by: set[str] = field(default_factory=set)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sender": self.sender,
            "message": self.message,
            "timestamp": _ts(self.timestamp),
            "attachments": list(self.attachments),
            "read_by": sorted(self.read_by),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "DisputeMessage":
        return cls(
            id=doc["id"],
            sender=doc["sender"],
            message=doc["message"],
            timestamp=_parse_ts(doc.get("timestamp")) or datetime.now(UTC),
            attachments=list(doc.get("attachments") or []),
            read_by=set(doc.get("read_by") or []),
        )


@dataclass
class Resolution:
    decided_by: str
    decision: str
    notes: str
    resolution_date: datetime
    action_taken: ActionTaken | None = None
    amount: float = 0
    document_url: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "decided_by": self.decided_by,
            "decision": self.decision,
            "notes": self.notes,
            "resolution_date": _ts(self.resolution_date),
            "action_taken": self.action_taken.value if self.action_taken else None,
            "amount": self.amount,
            "document_url": self.document_url,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Resolution":
        action = doc.get("action_taken")
        return cls(
            decided_by=doc["decided_by"],
            decision=doc.get("decision") or "",
            notes=doc.get("notes") or "",
            resolution_date=_parse_ts(doc.get("resolution_date")) or datetime.now(UTC),
            action_taken=ActionTaken(action) if action else None,
            amount=float(doc.get("amount") or 0),
            document_url=doc.get("document_url"),
        )


@dataclass
class Escalation:
    escalated_by: str
    escalated_at: datetime
    reason: str

    def to_document(self) -> dict[str, Any]:
        return {
            "escalated_by": self.escalated_by,
            "escalated_at": _ts(self.escalated_at),
            "reason": self.reason,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Escalation":
        return cls(
            escalated_by=doc["escalated_by"],
            escalated_at=_parse_ts(doc.get("escalated_at")) or datetime.now(UTC),
            reason=doc.get("reason") or "",
        )


@dataclass
class Dispute:
    """Dispute between the two parties of a contract."""

    id: str
    dispute_code: str
    contract_id: str
    raised_by: str
    raised_against: str
    category: DisputeCategory
    title: str
    description: str
    created_at: datetime
    updated_at: datetime
    status: DisputeStatus = DisputeStatus.OPEN
    priority: DisputePriority = DisputePriority.MEDIUM
    evidence: list[Evidence] = field(default_factory=list)
    messages: list[DisputeMessage] = field(default_factory=list)
    resolution: Resolution | None = None
    escalation: Escalation | None = None
    closed_at: datetime | None = None

    @property
    def is_final(self) -> bool:
        """Resolved and closed disputes accept no new messages or evidence."""
        return self.status in FINAL_STATUSES

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.raised_by, self.raised_against)

    def add_message(
        self, sender: str, message: str, attachments: list[str] | None = None
    ) -> DisputeMessage:
        now = datetime.now(UTC)
        entry = DisputeMessage(
            id=str(uuid4()),
            sender=sender,
            message=message,
            timestamp=now,
            attachments=list(attachments or []),
            # Sender has read their own message
            read_by={sender},
        )
        self.messages.append(entry)
        self.updated_at = now
        return entry

    def mark_read(self, user_id: str) -> int:
        """Mark every message read by ``user_id``. Returns how many changed."""
        changed = 0
        for message in self.messages:
            if user_id not in message.read_by:
                message.read_by.add(user_id)
                changed += 1
        if changed:
            self.updated_at = datetime.now(UTC)
        return changed

    def unread_count(self, user_id: str) -> int:
        return sum(
            1
            for message in self.messages
            if user_id not in message.read_by and message.sender != user_id
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "dispute_code": self.dispute_code,
            "contract_id": self.contract_id,
            "raised_by": self.raised_by,
            "raised_against": self.raised_against,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "evidence": [e.to_document() for e in self.evidence],
            "messages": [m.to_document() for m in self.messages],
            "resolution": self.resolution.to_document() if self.resolution else None,
            "escalation": self.escalation.to_document() if self.escalation else None,
            "created_at": _ts(self.created_at),
            "updated_at": _ts(self.updated_at),
            "closed_at": _ts(self.closed_at),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Dispute":
        created_at = _parse_ts(doc.get("created_at")) or datetime.now(UTC)
        return cls(
            id=doc["id"],
            dispute_code=doc.get("dispute_code") or generate_dispute_code(),
            contract_id=doc["contract_id"],
            raised_by=doc["raised_by"],
            raised_against=doc["raised_against"],
            category=DisputeCategory(doc.get("category") or DisputeCategory.OTHER.value),
            title=doc.get("title") or "",
            description=doc.get("description") or "",
            status=DisputeStatus(doc.get("status") or DisputeStatus.OPEN.value),
            priority=DisputePriority(doc.get("priority") or DisputePriority.MEDIUM.value),
            evidence=[Evidence.from_document(e) for e in doc.get("evidence") or []],
            messages=[DisputeMessage.from_document(m) for m in doc.get("messages") or []],
            resolution=(
                Resolution.from_document(doc["resolution"])
                if doc.get("resolution")
                else None
            ),
            escalation=(
                Escalation.from_document(doc["escalation"])
                if doc.get("escalation")
                else None
            ),
            created_at=created_at,
            updated_at=_parse_ts(doc.get("updated_at")) or created_at,
            closed_at=_parse_ts(doc.get("closed_at")),
        )


# ==============================================================================
# Factory Functions
# ==============================================================================

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_dispute_code() -> str:
    """Human-facing code: ``DISPUTE-<epoch ms>-<7 random chars>``."""
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(7))
    return f"DISPUTE-{int(time.time() * 1000)}-{suffix}"


def create_dispute(
    contract_id: str,
    raised_by: str,
    raised_against: str,
    category: DisputeCategory,
    title: str,
    description: str,
    priority: DisputePriority = DisputePriority.MEDIUM,
    evidence: list[Evidence] | None = None,
) -> Dispute:
    now = datetime.now(UTC)
    return Dispute(
        id=str(uuid4()),
        dispute_code=generate_dispute_code(),
        contract_id=contract_id,
        raised_by=raised_by,
        raised_against=raised_against,
        category=category,
        title=title,
        description=description,
        priority=priority,
        evidence=evidence or [],
        created_at=now,
        updated_at=now,
    )
