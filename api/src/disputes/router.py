"""Dispute API endpoints.

Provides routes for:
- Raising and reading disputes (parties and moderators)
- Messages, evidence and read receipts
- Moderator workflow: review, escalate, resolve, close, priority
"""

from fastapi import APIRouter, Query, status

from src.auth.dependencies import CurrentUser, ModeratorUser
from src.forum.dependencies import handle_forum_error
from src.forum.exceptions import ForumError

from .dependencies import DisputeServiceDep
from .models import DisputeCategory, DisputePriority, DisputeStatus
from .schemas import (
    CreateDisputeRequest,
    DisputeListResponse,
    DisputeMessageRequest,
    DisputeMessageResponse,
    DisputeResponse,
    EscalateRequest,
    EvidenceRequest,
    EvidenceResponse,
    PriorityRequest,
    ResolveRequest,
)


router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.post(
    "",
    response_model=DisputeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Raise dispute",
)
async def create_dispute(
    data: CreateDisputeRequest,
    service: DisputeServiceDep,
    user: CurrentUser,
) -> DisputeResponse:
    try:
        dispute = await service.create(
            user,
            contract_id=data.contract_id,
            raised_against=data.raised_against,
            category=data.category,
            title=data.title,
            description=data.description,
            priority=data.priority,
            evidence=[(e.type, e.url, e.description) for e in data.evidence],
        )
    except ForumError as e:
        raise handle_forum_error(e) from e
    return DisputeResponse.from_dispute(dispute, user.id)


@router.get("", response_model=DisputeListResponse, summary="List disputes")
async def list_disputes(
    service: DisputeServiceDep,
    user: CurrentUser,
    status_filter: DisputeStatus | None = Query(None, alias="status"),
    category: DisputeCategory | None = Query(None),
    priority: DisputePriority | None = Query(None),
) -> DisputeListResponse:
    """Own disputes; moderators see all of them."""
    disputes = await service.list_for(
        user, status=status_filter, category=category, priority=priority
    )
    return DisputeListResponse(
        disputes=[DisputeResponse.from_dispute(d, user.id) for d in disputes],
        total=len(disputes),
    )


@router.get("/{dispute_id}", response_model=DisputeResponse, summary="Get dispute")
async def get_dispute(
    dispute_id: str, service: DisputeServiceDep, user: CurrentUser
) -> DisputeResponse:
    try:
        dispute = await service.get(user, dispute_id)
    except ForumError as e:
        raise handle_forum_error(e) from e
    return DisputeResponse.from_dispute(dispute, user.id)


@router.post(
    "/{dispute_id}/messages",
    response_model=DisputeMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send message",
)
async def add_message(
    dispute_id: str,
    data: DisputeMessageRequest,
    service: DisputeServiceDep,
    user: CurrentUser,
) -> DisputeMessageResponse:
    """Resolved or closed disputes reject new messages from everyone."""
    try:
        message = await service.add_message(
            user, dispute_id, data.message, data.attachments
        )
    except ForumError as e:
        raise handle_forum_error(e) from e
    return DisputeMessageResponse.from_message(message)


@router.post(
    "/{dispute_id}/evidence",
    response_model=EvidenceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add evidence",
)
async def add_evidence(
    dispute_id: str,
    data: EvidenceRequest,
    service: DisputeServiceDep,
    user: CurrentUser,
) -> EvidenceResponse:
    try:
        evidence = await service.add_evidence(
            user, dispute_id, data.type, data.url, data.description
        )
    except ForumError as e:
        raise handle_forum_error(e) from e
    return EvidenceResponse.from_evidence(evidence)


@router.put("/{dispute_id}/read", response_model=DisputeResponse, summary="Mark read")
async def mark_read(
    dispute_id: str, service: DisputeServiceDep, user: CurrentUser
) -> DisputeResponse:
    try:
        dispute = await service.mark_read(user, dispute_id)
    except ForumError as e:
        raise handle_forum_error(e) from e
    return DisputeResponse.from_dispute(dispute, user.id)


# ==============================================================================
# Moderator workflow
# ==============================================================================


@router.put(
    "/{dispute_id}/review", response_model=DisputeResponse, summary="Start review"
)
async def review_dispute(
    dispute_id: str, service: DisputeServiceDep, user: ModeratorUser
) -> DisputeResponse:
    try:
        dispute = await service.review(user, dispute_id)
    except ForumError as e:
        raise handle_forum_error(e) from e
    return DisputeResponse.from_dispute(dispute, user.id)


@router.put("/{dispute_id}/escalate", response_model=DisputeResponse, summary="Escalate")
async def escalate_dispute(
    dispute_id: str,
    data: EscalateRequest,
    service: DisputeServiceDep,
    user: ModeratorUser,
) -> DisputeResponse:
    try:
        dispute = await service.escalate(user, dispute_id, data.reason)
    except ForumError as e:
        raise handle_forum_error(e) from e
    return DisputeResponse.from_dispute(dispute, user.id)


@router.put("/{dispute_id}/resolve", response_model=DisputeResponse, summary="Resolve")
async def resolve_dispute(
    dispute_id: str,
    data: ResolveRequest,
    service: DisputeServiceDep,
    user: ModeratorUser,
) -> DisputeResponse:
    try:
        dispute = await service.resolve(
            user,
            dispute_id,
            decision=data.decision,
            notes=data.notes,
            action_taken=data.action_taken,
            amount=data.amount,
            document_url=data.document_url,
        )
    except ForumError as e:
        raise handle_forum_error(e) from e
    return DisputeResponse.from_dispute(dispute, user.id)


@router.put("/{dispute_id}/close", response_model=DisputeResponse, summary="Close")
async def close_dispute(
    dispute_id: str, service: DisputeServiceDep, user: ModeratorUser
) -> DisputeResponse:
    try:
        dispute = await service.close(user, dispute_id)
    except ForumError as e:
        raise handle_forum_error(e) from e
    return DisputeResponse.from_dispute(dispute, user.id)


@router.put(
    "/{dispute_id}/priority", response_model=DisputeResponse, summary="Set priority"
)
async def set_priority(
    dispute_id: str,
    data: PriorityRequest,
    service: DisputeServiceDep,
    user: ModeratorUser,
) -> DisputeResponse:
    try:
        dispute = await service.set_priority(user, dispute_id, data.priority)
    except ForumError as e:
        raise handle_forum_error(e) from e
    return DisputeResponse.from_dispute(dispute, user.id)
