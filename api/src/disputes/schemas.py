"""Pydantic schemas for the disputes API."""

from datetime import datetime

from pydantic import BaseModel, Field

from .models import (
    ActionTaken,
    Dispute,
    DisputeCategory,
    DisputeMessage,
    DisputePriority,
    DisputeStatus,
    Evidence,
    EvidenceType,
)


# ==============================================================================
# Request Schemas
# ==============================================================================


class EvidenceRequest(BaseModel):
    type: EvidenceType
    url: str = Field(..., min_length=1, max_length=2000)
    description: str | None = Field(None, max_length=1000)


class CreateDisputeRequest(BaseModel):
    contract_id: str = Field(..., min_length=1)
    raised_against: str = Field(..., min_length=1)
    category: DisputeCategory
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    priority: DisputePriority = DisputePriority.MEDIUM
    evidence: list[EvidenceRequest] = Field(default_factory=list, max_length=20)


class DisputeMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=5000)
    attachments: list[str] = Field(default_factory=list, max_length=10)


class EscalateRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class ResolveRequest(BaseModel):
    decision: str = Field(..., min_length=1, max_length=2000)
    notes: str = Field(..., min_length=1, max_length=5000)
    action_taken: ActionTaken | None = None
    amount: float = Field(default=0, ge=0)
    document_url: str | None = None


class PriorityRequest(BaseModel):
    priority: DisputePriority


# ==============================================================================
# Response Schemas
# ==============================================================================


class EvidenceResponse(BaseModel):
    type: EvidenceType
    url: str
    description: str | None = None
    uploaded_by: str
    uploaded_at: datetime

    @classmethod
    def from_evidence(cls, evidence: Evidence) -> "EvidenceResponse":
        return cls(
            type=evidence.type,
            url=evidence.url,
            description=evidence.description,
            uploaded_by=evidence.uploaded_by,
            uploaded_at=evidence.uploaded_at,
        )


class DisputeMessageResponse(BaseModel):
    id: str
    sender: str
    message: str
    timestamp: datetime
    attachments: list[str]
    read_by: list[str]

    @classmethod
    def from_message(cls, message: DisputeMessage) -> "DisputeMessageResponse":
        return cls(
            id=message.id,
            sender=message.sender,
            message=message.message,
            timestamp=message.timestamp,
            attachments=list(message.attachments),
            read_by=sorted(message.read_by),
        )


class ResolutionResponse(BaseModel):
    decided_by: str
    decision: str
    notes: str
    resolution_date: datetime
    action_taken: ActionTaken | None = None
    amount: float = 0
    document_url: str | None = None


class EscalationResponse(BaseModel):
    escalated_by: str
    escalated_at: datetime
    reason: str


class DisputeResponse(BaseModel):
    id: str
    dispute_code: str
    contract_id: str
    raised_by: str
    raised_against: str
    category: DisputeCategory
    title: str
    description: str
    status: DisputeStatus
    priority: DisputePriority
    evidence: list[EvidenceResponse]
    messages: list[DisputeMessageResponse]
    resolution: ResolutionResponse | None = None
    escalation: EscalationResponse | None = None
    unread_count: int = 0
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None = None

    @classmethod
    def from_dispute(cls, dispute: Dispute, viewer_id: str) -> "DisputeResponse":
        resolution = dispute.resolution
        escalation = dispute.escalation
        return cls(
            id=dispute.id,
            dispute_code=dispute.dispute_code,
            contract_id=dispute.contract_id,
            raised_by=dispute.raised_by,
            raised_against=dispute.raised_against,
            category=dispute.category,
            title=dispute.title,
            description=dispute.description,
            status=dispute.status,
            priority=dispute.priority,
            evidence=[EvidenceResponse.from_evidence(e) for e in dispute.evidence],
            messages=[DisputeMessageResponse.from_message(m) for m in dispute.messages],
            resolution=(
                ResolutionResponse(
                    decided_by=resolution.decided_by,
                    decision=resolution.decision,
                    notes=resolution.notes,
                    resolution_date=resolution.resolution_date,
                    action_taken=resolution.action_taken,
                    amount=resolution.amount,
                    document_url=resolution.document_url,
                )
                if resolution
                else None
            ),
            escalation=(
                EscalationResponse(
                    escalated_by=escalation.escalated_by,
                    escalated_at=escalation.escalated_at,
                    reason=escalation.reason,
                )
                if escalation
                else None
            ),
            unread_count=dispute.unread_count(viewer_id),
            created_at=dispute.created_at,
            updated_at=dispute.updated_at,
            closed_at=dispute.closed_at,
        )


class DisputeListResponse(BaseModel):
    disputes: list[DisputeResponse]
    total: int
