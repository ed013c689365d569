"""Dispute service.

Parties (the user who raised the dispute and the one it is raised against)
exchange messages and evidence; moderators drive the status workflow.
Every change runs under the dispute's lock and ends with one document write.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from src.core.locks import KeyedLock
from src.forum.exceptions import Forbidden, InvalidContent, NotFound
from src.moderation.guards import DISPUTE_CLOSED_GUARD

from .models import (
    DISPUTE_WORKFLOW,
    ActionTaken,
    Dispute,
    DisputeCategory,
    DisputeMessage,
    DisputePriority,
    DisputeStatus,
    Escalation,
    Evidence,
    EvidenceType,
    Resolution,
    create_dispute,
)


if TYPE_CHECKING:
    from src.auth.schemas import Actor
    from src.core.repository import AggregateRepository


logger = structlog.get_logger(__name__)


def _required(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidContent(f"{field} is required")
    return text


class DisputeService:
    """Dispute lifecycle, messages and evidence."""

    def __init__(self, disputes: "AggregateRepository[Dispute]"):
        self.disputes = disputes
        self._locks = KeyedLock()

    async def _load(self, dispute_id: str) -> Dispute:
        dispute = await self.disputes.get(dispute_id)
        if dispute is None:
            raise NotFound("Dispute not found")
        return dispute

    @staticmethod
    def _check_access(actor: "Actor", dispute: Dispute) -> None:
        if not (actor.is_moderator or dispute.is_party(actor.id)):
            raise Forbidden("You are not a party to this dispute")

    # ==========================================================================
    # Parties
    # ==========================================================================

    async def create(
        self,
        actor: "Actor",
        contract_id: str,
        raised_against: str,
        category: DisputeCategory,
        title: str,
        description: str,
        priority: DisputePriority = DisputePriority.MEDIUM,
        evidence: list[tuple[EvidenceType, str, str | None]] | None = None,
    ) -> Dispute:
        if raised_against == actor.id:
            raise InvalidContent("You cannot raise a dispute against yourself")

        now = datetime.now(UTC)
        dispute = create_dispute(
            contract_id=contract_id,
            raised_by=actor.id,
            raised_against=raised_against,
            category=category,
            title=_required(title, "Title"),
            description=_required(description, "Description"),
            priority=priority,
            evidence=[
                Evidence(
                    type=kind,
                    url=url,
                    description=note,
                    uploaded_by=actor.id,
                    uploaded_at=now,
                )
                for kind, url, note in evidence or []
            ],
        )
        async with self._locks.hold(dispute.id):
            await self.disputes.save(dispute)

        logger.info(
            "dispute_created",
            dispute_id=dispute.id,
            dispute_code=dispute.dispute_code,
            category=dispute.category.value,
        )
        return dispute

    async def get(self, actor: "Actor", dispute_id: str) -> Dispute:
        dispute = await self._load(dispute_id)
        self._check_access(actor, dispute)
        return dispute

    async def list_for(
        self,
        actor: "Actor",
        status: DisputeStatus | None = None,
        category: DisputeCategory | None = None,
        priority: DisputePriority | None = None,
    ) -> list[Dispute]:
        """Disputes visible to ``actor``, newest first.

        Moderators see every dispute; other users only those they are party to.
        """
        disputes = [
            d
            for d in await self.disputes.list_all()
            if (actor.is_moderator or d.is_party(actor.id))
            and (status is None or d.status == status)
            and (category is None or d.category == category)
            and (priority is None or d.priority == priority)
        ]
        disputes.sort(key=lambda d: d.created_at, reverse=True)
        return disputes

    async def add_message(
        self,
        actor: "Actor",
        dispute_id: str,
        message: str,
        attachments: list[str] | None = None,
    ) -> DisputeMessage:
        """Append a message.

        Raises:
            LockedOrClosed: dispute is resolved or closed, for every actor
        """
        message = _required(message, "Message")
        async with self._locks.hold(dispute_id):
            dispute = await self._load(dispute_id)
            self._check_access(actor, dispute)
            DISPUTE_CLOSED_GUARD.check(dispute, actor.is_moderator)

            entry = dispute.add_message(actor.id, message, attachments)
            await self.disputes.save(dispute)

        logger.info("dispute_message_added", dispute_id=dispute_id, message_id=entry.id)
        return entry

    async def add_evidence(
        self,
        actor: "Actor",
        dispute_id: str,
        kind: EvidenceType,
        url: str,
        description: str | None = None,
    ) -> Evidence:
        async with self._locks.hold(dispute_id):
            dispute = await self._load(dispute_id)
            self._check_access(actor, dispute)
            DISPUTE_CLOSED_GUARD.check(dispute, actor.is_moderator)

            now = datetime.now(UTC)
            evidence = Evidence(
                type=kind,
                url=_required(url, "Evidence URL"),
                description=description,
                uploaded_by=actor.id,
                uploaded_at=now,
            )
            dispute.evidence.append(evidence)
            dispute.updated_at = now
            await self.disputes.save(dispute)

        logger.info("dispute_evidence_added", dispute_id=dispute_id, type=kind.value)
        return evidence

    async def mark_read(self, actor: "Actor", dispute_id: str) -> Dispute:
        async with self._locks.hold(dispute_id):
            dispute = await self._load(dispute_id)
            self._check_access(actor, dispute)
            if dispute.mark_read(actor.id):
                await self.disputes.save(dispute)
        return dispute

    # ==========================================================================
    # Moderator workflow
    # ==========================================================================

    async def _transition(
        self,
        actor: "Actor",
        dispute_id: str,
        target: DisputeStatus,
        apply: Callable[[Dispute, datetime], None] | None = None,
    ) -> Dispute:
        if not actor.is_moderator:
            raise Forbidden("Only moderators can change dispute status")

        async with self._locks.hold(dispute_id):
            dispute = await self._load(dispute_id)
            previous = dispute.status
            DISPUTE_WORKFLOW.check(previous, target)

            now = datetime.now(UTC)
            if apply is not None:
                apply(dispute, now)
            dispute.status = target
            dispute.updated_at = now
            if target in (DisputeStatus.RESOLVED, DisputeStatus.CLOSED):
                dispute.closed_at = now
            await self.disputes.save(dispute)

        logger.info(
            "dispute_status_changed",
            dispute_id=dispute_id,
            from_status=previous.value,
            to_status=target.value,
            moderator_id=actor.id,
        )
        return dispute

    async def review(self, actor: "Actor", dispute_id: str) -> Dispute:
        return await self._transition(actor, dispute_id, DisputeStatus.UNDER_REVIEW)

    async def escalate(self, actor: "Actor", dispute_id: str, reason: str) -> Dispute:
        reason = _required(reason, "Escalation reason")

        def apply(dispute: Dispute, now: datetime) -> None:
            dispute.escalation = Escalation(
                escalated_by=actor.id, escalated_at=now, reason=reason
            )

        return await self._transition(
            actor, dispute_id, DisputeStatus.ESCALATED, apply
        )

    async def resolve(
        self,
        actor: "Actor",
        dispute_id: str,
        decision: str,
        notes: str,
        action_taken: ActionTaken | None = None,
        amount: float = 0,
        document_url: str | None = None,
    ) -> Dispute:
        decision = _required(decision, "Decision")
        notes = _required(notes, "Resolution notes")
        if amount < 0:
            raise InvalidContent("Amount cannot be negative")

        def apply(dispute: Dispute, now: datetime) -> None:
            dispute.resolution = Resolution(
                decided_by=actor.id,
                decision=decision,
                notes=notes,
                resolution_date=now,
                action_taken=action_taken,
                amount=amount,
                document_url=document_url,
            )

        return await self._transition(actor, dispute_id, DisputeStatus.RESOLVED, apply)

    async def close(self, actor: "Actor", dispute_id: str) -> Dispute:
        return await self._transition(actor, dispute_id, DisputeStatus.CLOSED)

    async def set_priority(
        self, actor: "Actor", dispute_id: str, priority: DisputePriority
    ) -> Dispute:
        if not actor.is_moderator:
            raise Forbidden("Only moderators can change dispute priority")

        async with self._locks.hold(dispute_id):
            dispute = await self._load(dispute_id)
            DISPUTE_CLOSED_GUARD.check(dispute)
            dispute.priority = priority
            dispute.updated_at = datetime.now(UTC)
            await self.disputes.save(dispute)

        logger.info(
            "dispute_priority_changed", dispute_id=dispute_id, priority=priority.value
        )
        return dispute
