"""Dispute lifecycle service: creation, seller/buyer actions, escalation, reads."""

from __future__ import annotations

import functools
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from src.config import settings
from src.exceptions import (
    AppException,
    ForbiddenException,
    InternalErrorException,
    NotFoundException,
    ValidationException,
)
from src.models.dispute import Dispute
from src.models.dispute_evidence import DisputeEvidence
from src.models.enums import (
    ActorType,
    DisputeReason,
    DisputeStatus,
    PriorityLevel,
    SellerResponseType,
)
from src.modules.dispute.constants import (
    DEFAULT_ACCEPTED_RESOLUTION,
    DISPUTABLE_ORDER_STATUSES,
    EVENT_BUYER_ACCEPTED,
    EVENT_BUYER_REJECTED,
    EVENT_CLOSED,
    EVENT_DISPUTE_CREATED,
    EVENT_DISPUTE_VIEWED,
    EVENT_ESCALATED,
    EVENT_EVIDENCE_ADDED,
    EVENT_SELLER_RESPONDED,
    EVIDENCE_LOCKED_STATUSES,
    ORDER_EXCEPTION_DISPUTE_FILED,
    RESOLVED_BY_BUYER,
    RESOLVED_BY_SELLER,
    RESPONDABLE_STATUSES,
)
from src.modules.dispute.events import (
    BuyerAcceptedMetadata,
    DisputeCreatedMetadata,
    DisputeEventLog,
    EvidenceAddedMetadata,
    ReasonMetadata,
    SellerRespondedMetadata,
)
from src.modules.dispute.guards import (
    require_buyer,
    require_party,
    require_seller,
    require_visible,
)
from src.modules.dispute.numbering import DisputeNumberGenerator
from src.modules.dispute.priority import (
    calculate_priority,
    calculate_resolution_deadline,
    calculate_response_deadline,
    is_within_dispute_window,
)
from src.modules.dispute.repository import DisputeRepository
from src.modules.dispute.results import DisputePage, DisputeResult
from src.modules.dispute.schemas import DisputeFilters, EvidenceItem
from src.modules.dispute.stats import DisputeStats, summarize_disputes
from src.modules.dispute.transitions import assert_path, assert_transition

logger = logging.getLogger(__name__)

ACTIVE_DISPUTE_EXISTS = "An active dispute already exists for this order"
_ACTIVE_ORDER_CONSTRAINT_MARKERS = (
    "uq_marketplace_disputes_active_order",
    "marketplace_disputes.order_id",
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


_FLUSHED_KEY = "dispute_service.flushed"


@event.listens_for(Session, "after_flush")
def _remember_flush(session: Session, flush_context) -> None:
    session.info[_FLUSHED_KEY] = True


def _has_uncommitted_writes(db: AsyncSession) -> bool:
    """True when this operation wrote anything or left the transaction unusable."""
    flushed = db.info.pop(_FLUSHED_KEY, False)
    return flushed or bool(db.new or db.dirty or db.deleted) or not db.is_active


def _unit_of_work(
    failure_message: str, *, mutating: bool = True
) -> Callable[[Callable[..., Awaitable[object]]], Callable[..., Awaitable[DisputeResult]]]:
    """Run a lifecycle operation and fold its outcome into a DisputeResult.

    Mutating operations commit on success. A refusal rolls the session back
    only when the operation already wrote something, so no event or
    half-applied transition survives and disputes loaded by earlier calls
    stay usable. Business-rule exceptions are returned as-is; infrastructure
    errors are logged, rolled back and replaced by a generic
    InternalErrorException.
    """

    def decorator(method):
        @functools.wraps(method)
        async def wrapper(self: DisputeService, *args, **kwargs) -> DisputeResult:
            self.db.info.pop(_FLUSHED_KEY, None)
            try:
                outcome = await method(self, *args, **kwargs)
                if mutating:
                    await self.db.commit()
            except AppException as exc:
                if _has_uncommitted_writes(self.db):
                    await self.db.rollback()
                return DisputeResult.failure(exc)
            except SQLAlchemyError:
                ids = [str(a) for a in (*args, *kwargs.values()) if isinstance(a, uuid.UUID)]
                logger.exception("%s (%s ids=%s)", failure_message, method.__name__, ids)
                await self.db.rollback()
                return DisputeResult.failure(InternalErrorException(failure_message))
            if isinstance(outcome, DisputeResult):
                return outcome
            return DisputeResult.ok(outcome)

        return wrapper

    return decorator


class DisputeService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = DisputeRepository(db)
        self.events = DisputeEventLog(db)
        self.numbers = DisputeNumberGenerator(db)

    async def _load(self, dispute_id: uuid.UUID) -> Dispute:
        dispute = await self.repo.get_dispute(dispute_id)
        if dispute is None:
            raise NotFoundException("Dispute not found")
        return dispute

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @_unit_of_work("Failed to create dispute")
    async def create_dispute(
        self,
        order_id: uuid.UUID,
        buyer_id: uuid.UUID,
        reason: DisputeReason,
        description: str,
        requested_resolution: str | None = None,
        requested_amount: Decimal | None = None,
        evidence: list[EvidenceItem] | None = None,
    ) -> Dispute:
        """Open a dispute on a delivered order owned by ``buyer_id``."""
        order = await self.repo.get_order(order_id)
        if order is None:
            raise NotFoundException("Order not found")

        if order.buyer_id != buyer_id:
            raise ForbiddenException("You can only open disputes on your own orders")

        if order.status not in DISPUTABLE_ORDER_STATUSES:
            raise ValidationException("Disputes can only be opened on delivered orders")

        if await self.repo.find_active_dispute_for_order(order.id) is not None:
            raise ValidationException(ACTIVE_DISPUTE_EXISTS)

        now = _utcnow()
        if not is_within_dispute_window(order.delivered_at, now):
            raise ValidationException(
                f"Dispute window has expired ({settings.dispute_window_days} days after delivery)"
            )

        invoice = await self.repo.get_invoice_for_order(order.id)
        dispute_number = await self.numbers.next_number(now.year)

        dispute = Dispute(
            dispute_number=dispute_number,
            order_id=order.id,
            order_number=order.order_number,
            invoice_id=invoice.id if invoice else None,
            invoice_number=invoice.invoice_number if invoice else None,
            buyer_id=order.buyer_id,
            seller_id=order.seller_id,
            buyer_name=order.buyer_name or "",
            buyer_email=order.buyer_email,
            buyer_company=order.buyer_company,
            seller_name=(invoice.seller_name if invoice else None) or "",
            seller_company=invoice.seller_company if invoice else None,
            item_id=order.item_id,
            item_name=order.item_name,
            item_sku=order.item_sku,
            quantity=order.quantity,
            unit_price=order.unit_price,
            total_price=order.total_price,
            currency=order.currency,
            reason=reason,
            description=description,
            requested_resolution=requested_resolution,
            requested_amount=requested_amount,
            evidence=[
                DisputeEvidence(
                    id=item.id,
                    name=item.name,
                    type=item.type,
                    url=item.url,
                    uploaded_at=item.uploaded_at,
                )
                for item in evidence or []
            ],
            status=DisputeStatus.OPEN,
            priority_level=calculate_priority(order.total_price, reason),
            response_deadline=calculate_response_deadline(now),
            resolution_deadline=calculate_resolution_deadline(now),
            is_escalated=False,
            created_at=now,
            updated_at=now,
        )
        try:
            await self.repo.add_dispute(dispute)
        except IntegrityError as exc:
            if any(marker in str(exc) for marker in _ACTIVE_ORDER_CONSTRAINT_MARKERS):
                raise ValidationException(ACTIVE_DISPUTE_EXISTS) from exc
            raise
        # A new dispute has no return request yet
        set_committed_value(dispute, "return_request", None)

        await self.events.append(
            dispute_id=dispute.id,
            event_type=EVENT_DISPUTE_CREATED,
            actor_id=buyer_id,
            actor_type=ActorType.BUYER,
            to_status=DisputeStatus.OPEN,
            metadata=DisputeCreatedMetadata(
                reason=reason,
                requested_resolution=requested_resolution,
                requested_amount=requested_amount,
            ),
        )
        await self.repo.flag_order_exception(order.id, ORDER_EXCEPTION_DISPUTE_FILED)

        logger.info(
            "Created dispute %s (%s) on order %s with priority %s",
            dispute.id,
            dispute_number,
            order.id,
            dispute.priority_level.value,
        )
        return dispute

    # ------------------------------------------------------------------
    # Seller actions
    # ------------------------------------------------------------------

    @_unit_of_work("Failed to update dispute")
    async def mark_as_under_review(
        self, dispute_id: uuid.UUID, seller_id: uuid.UUID
    ) -> Dispute:
        dispute = await self._load(dispute_id)
        require_seller(dispute, seller_id)

        old_status = dispute.status
        assert_transition(old_status, DisputeStatus.UNDER_REVIEW)
        dispute.status = DisputeStatus.UNDER_REVIEW
        await self.repo.save()

        await self.events.append(
            dispute_id=dispute.id,
            event_type=EVENT_DISPUTE_VIEWED,
            actor_id=seller_id,
            actor_type=ActorType.SELLER,
            from_status=old_status,
            to_status=DisputeStatus.UNDER_REVIEW,
        )
        logger.info("Dispute %s moved %s -> under_review", dispute.id, old_status.value)
        return dispute

    @_unit_of_work("Failed to submit response")
    async def seller_respond(
        self,
        dispute_id: uuid.UUID,
        seller_id: uuid.UUID,
        response_type: SellerResponseType,
        response: str,
        proposed_resolution: str | None = None,
        proposed_amount: Decimal | None = None,
    ) -> Dispute:
        """Record the seller's answer.

        ``accept_responsibility`` skips the buyer's accept step and resolves
        the dispute immediately; every other response leaves it in
        ``seller_responded`` for the buyer to act on.
        """
        dispute = await self._load(dispute_id)
        require_seller(dispute, seller_id)

        old_status = dispute.status
        if old_status not in RESPONDABLE_STATUSES:
            raise ValidationException("Dispute is not in a respondable state")

        steps: list[DisputeStatus] = []
        if old_status == DisputeStatus.OPEN:
            steps.append(DisputeStatus.UNDER_REVIEW)
        steps.append(DisputeStatus.SELLER_RESPONDED)
        if response_type == SellerResponseType.ACCEPT_RESPONSIBILITY:
            steps.append(DisputeStatus.RESOLVED)
        new_status = assert_path(old_status, *steps)

        now = _utcnow()
        dispute.status = new_status
        dispute.seller_response_type = response_type
        dispute.seller_response = response
        dispute.responded_at = now

        if response_type == SellerResponseType.PROPOSE_RESOLUTION:
            dispute.seller_proposed_resolution = proposed_resolution
            dispute.seller_proposed_amount = proposed_amount

        if response_type == SellerResponseType.ACCEPT_RESPONSIBILITY:
            dispute.resolution = proposed_resolution or DEFAULT_ACCEPTED_RESOLUTION
            dispute.resolution_amount = proposed_amount
            dispute.resolved_by = RESOLVED_BY_SELLER
            dispute.closed_at = now

        await self.repo.save()

        await self.events.append(
            dispute_id=dispute.id,
            event_type=EVENT_SELLER_RESPONDED,
            actor_id=seller_id,
            actor_type=ActorType.SELLER,
            from_status=old_status,
            to_status=new_status,
            metadata=SellerRespondedMetadata(
                response_type=response_type,
                proposed_resolution=proposed_resolution,
                proposed_amount=proposed_amount,
            ),
        )
        logger.info(
            "Seller responded to dispute %s (%s): %s -> %s",
            dispute.id,
            response_type.value,
            old_status.value,
            new_status.value,
        )
        return dispute

    # ------------------------------------------------------------------
    # Buyer actions
    # ------------------------------------------------------------------

    @_unit_of_work("Failed to accept resolution")
    async def buyer_accept_resolution(
        self, dispute_id: uuid.UUID, buyer_id: uuid.UUID
    ) -> Dispute:
        dispute = await self._load(dispute_id)
        require_buyer(dispute, buyer_id)

        if dispute.status != DisputeStatus.SELLER_RESPONDED:
            raise ValidationException("No pending resolution to accept")

        if dispute.seller_response_type != SellerResponseType.PROPOSE_RESOLUTION:
            raise ValidationException("Seller did not propose a resolution")

        old_status = dispute.status
        assert_transition(old_status, DisputeStatus.RESOLVED)

        dispute.status = DisputeStatus.RESOLVED
        dispute.resolution = dispute.seller_proposed_resolution
        dispute.resolution_amount = dispute.seller_proposed_amount
        dispute.resolved_by = RESOLVED_BY_BUYER
        dispute.closed_at = _utcnow()
        await self.repo.save()

        await self.events.append(
            dispute_id=dispute.id,
            event_type=EVENT_BUYER_ACCEPTED,
            actor_id=buyer_id,
            actor_type=ActorType.BUYER,
            from_status=old_status,
            to_status=DisputeStatus.RESOLVED,
            metadata=BuyerAcceptedMetadata(
                resolution=dispute.seller_proposed_resolution,
                amount=dispute.seller_proposed_amount,
            ),
        )
        logger.info("Buyer accepted resolution on dispute %s", dispute.id)
        return dispute

    @_unit_of_work("Failed to reject resolution")
    async def buyer_reject_resolution(
        self, dispute_id: uuid.UUID, buyer_id: uuid.UUID, reason: str
    ) -> Dispute:
        """Reject the seller's response. ``reason`` lives only on the audit event."""
        dispute = await self._load(dispute_id)
        require_buyer(dispute, buyer_id)

        if dispute.status != DisputeStatus.SELLER_RESPONDED:
            raise ValidationException("No pending resolution to reject")

        old_status = dispute.status
        assert_transition(old_status, DisputeStatus.REJECTED)
        dispute.status = DisputeStatus.REJECTED
        await self.repo.save()

        await self.events.append(
            dispute_id=dispute.id,
            event_type=EVENT_BUYER_REJECTED,
            actor_id=buyer_id,
            actor_type=ActorType.BUYER,
            from_status=old_status,
            to_status=DisputeStatus.REJECTED,
            metadata=ReasonMetadata(reason=reason),
        )
        logger.info("Buyer rejected resolution on dispute %s", dispute.id)
        return dispute

    @_unit_of_work("Failed to add evidence")
    async def add_evidence(
        self, dispute_id: uuid.UUID, buyer_id: uuid.UUID, items: list[EvidenceItem]
    ) -> Dispute:
        dispute = await self._load(dispute_id)
        require_buyer(dispute, buyer_id, message="Only the buyer can add evidence")

        if dispute.status in EVIDENCE_LOCKED_STATUSES:
            raise ValidationException("Cannot add evidence to a closed dispute")

        await self.repo.append_evidence(dispute, items)

        await self.events.append(
            dispute_id=dispute.id,
            event_type=EVENT_EVIDENCE_ADDED,
            actor_id=buyer_id,
            actor_type=ActorType.BUYER,
            metadata=EvidenceAddedMetadata(count=len(items)),
        )
        logger.info("Added %d evidence item(s) to dispute %s", len(items), dispute.id)
        return dispute

    # ------------------------------------------------------------------
    # Either party
    # ------------------------------------------------------------------

    @_unit_of_work("Failed to escalate dispute")
    async def escalate_dispute(
        self, dispute_id: uuid.UUID, actor_id: uuid.UUID, reason: str
    ) -> Dispute:
        """Hand the dispute to the platform; priority is forced to urgent."""
        dispute = await self._load(dispute_id)
        actor_type = require_party(dispute, actor_id)

        old_status = dispute.status
        assert_transition(old_status, DisputeStatus.ESCALATED)

        dispute.status = DisputeStatus.ESCALATED
        dispute.is_escalated = True
        dispute.escalated_at = _utcnow()
        dispute.escalation_reason = reason
        dispute.priority_level = PriorityLevel.URGENT
        await self.repo.save()

        await self.events.append(
            dispute_id=dispute.id,
            event_type=EVENT_ESCALATED,
            actor_id=actor_id,
            actor_type=actor_type,
            from_status=old_status,
            to_status=DisputeStatus.ESCALATED,
            metadata=ReasonMetadata(reason=reason),
        )
        logger.info("Dispute %s escalated by %s %s", dispute.id, actor_type.value, actor_id)
        return dispute

    @_unit_of_work("Failed to close dispute")
    async def close_dispute(self, dispute_id: uuid.UUID, actor_id: uuid.UUID) -> Dispute:
        dispute = await self._load(dispute_id)
        actor_type = require_party(dispute, actor_id)

        old_status = dispute.status
        assert_transition(old_status, DisputeStatus.CLOSED)

        dispute.status = DisputeStatus.CLOSED
        dispute.closed_at = _utcnow()
        await self.repo.save()

        await self.events.append(
            dispute_id=dispute.id,
            event_type=EVENT_CLOSED,
            actor_id=actor_id,
            actor_type=actor_type,
            from_status=old_status,
            to_status=DisputeStatus.CLOSED,
        )
        logger.info("Dispute %s closed by %s (was %s)", dispute.id, actor_type.value, old_status.value)
        return dispute

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @_unit_of_work("Failed to fetch dispute", mutating=False)
    async def get_dispute(self, dispute_id: uuid.UUID, user_id: uuid.UUID) -> DisputeResult:
        """Dispute plus its latest events, visible to the buyer and seller only."""
        dispute = require_visible(await self.repo.get_dispute(dispute_id), user_id)
        events = await self.events.list_for_dispute(
            dispute.id, limit=settings.dispute_events_limit
        )
        return DisputeResult.ok(dispute, events)

    @_unit_of_work("Failed to fetch dispute history", mutating=False)
    async def get_dispute_history(
        self, dispute_id: uuid.UUID, user_id: uuid.UUID
    ) -> DisputeResult:
        dispute = require_visible(await self.repo.get_dispute(dispute_id), user_id)
        events = await self.events.list_for_dispute(dispute.id)
        return DisputeResult.ok(dispute, events)

    @_unit_of_work("Failed to fetch dispute", mutating=False)
    async def get_dispute_by_order(
        self, order_id: uuid.UUID, user_id: uuid.UUID
    ) -> Dispute:
        return require_visible(await self.repo.get_dispute_for_order(order_id), user_id)

    @_unit_of_work("Failed to fetch disputes", mutating=False)
    async def get_buyer_disputes(
        self, buyer_id: uuid.UUID, filters: DisputeFilters | None = None
    ) -> DisputeResult:
        return DisputeResult.of_page(
            await self._list(ActorType.BUYER, buyer_id, filters or DisputeFilters())
        )

    @_unit_of_work("Failed to fetch disputes", mutating=False)
    async def get_seller_disputes(
        self, seller_id: uuid.UUID, filters: DisputeFilters | None = None
    ) -> DisputeResult:
        """Seller inbox: most urgent first, then nearest response deadline."""
        return DisputeResult.of_page(
            await self._list(ActorType.SELLER, seller_id, filters or DisputeFilters())
        )

    @_unit_of_work("Failed to fetch dispute statistics", mutating=False)
    async def get_buyer_dispute_stats(self, buyer_id: uuid.UUID) -> DisputeResult:
        return DisputeResult.of_stats(await self._stats(ActorType.BUYER, buyer_id))

    @_unit_of_work("Failed to fetch dispute statistics", mutating=False)
    async def get_seller_dispute_stats(self, seller_id: uuid.UUID) -> DisputeResult:
        return DisputeResult.of_stats(await self._stats(ActorType.SELLER, seller_id))

    async def _list(
        self, party: ActorType, party_id: uuid.UUID, filters: DisputeFilters
    ) -> DisputePage:
        items, total = await self.repo.list_disputes(party, party_id, filters)
        return DisputePage(items=items, total=total, page=filters.page, limit=filters.limit)

    async def _stats(self, party: ActorType, party_id: uuid.UUID) -> DisputeStats:
        counts = await self.repo.status_counts(party, party_id)
        spans = await self.repo.resolution_spans(party, party_id)
        return summarize_disputes(counts, spans)
