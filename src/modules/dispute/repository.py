"""SQLAlchemy persistence for the dispute workflow."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.dispute import Dispute
from src.models.dispute_evidence import DisputeEvidence
from src.models.enums import ActorType, DisputeStatus
from src.models.invoice import MarketplaceInvoice
from src.models.order import MarketplaceOrder
from src.modules.dispute.constants import ACTIVE_STATUSES, PRIORITY_RANK, SETTLED_STATUSES
from src.modules.dispute.schemas import DisputeFilters, EvidenceItem


class DisputeRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Orders / invoices
    # ------------------------------------------------------------------

    async def get_order(self, order_id: uuid.UUID) -> MarketplaceOrder | None:
        result = await self.db.execute(
            select(MarketplaceOrder).where(MarketplaceOrder.id == order_id)
        )
        return result.scalar_one_or_none()

    async def get_invoice_for_order(self, order_id: uuid.UUID) -> MarketplaceInvoice | None:
        result = await self.db.execute(
            select(MarketplaceInvoice).where(MarketplaceInvoice.order_id == order_id)
        )
        return result.scalar_one_or_none()

    async def flag_order_exception(self, order_id: uuid.UUID, exception_type: str) -> None:
        await self.db.execute(
            update(MarketplaceOrder)
            .where(MarketplaceOrder.id == order_id)
            .values(has_exception=True, exception_type=exception_type)
        )

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    async def get_dispute(self, dispute_id: uuid.UUID) -> Dispute | None:
        result = await self.db.execute(
            select(Dispute)
            .where(Dispute.id == dispute_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_dispute_for_order(self, order_id: uuid.UUID) -> Dispute | None:
        """Most recent dispute raised on an order."""
        result = await self.db.execute(
            select(Dispute)
            .where(Dispute.order_id == order_id)
            .order_by(Dispute.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_active_dispute_for_order(self, order_id: uuid.UUID) -> Dispute | None:
        result = await self.db.execute(
            select(Dispute)
            .where(Dispute.order_id == order_id, Dispute.status.in_(list(ACTIVE_STATUSES)))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def add_dispute(self, dispute: Dispute) -> Dispute:
        """Insert a dispute; raises IntegrityError if the order already has an active one."""
        self.db.add(dispute)
        await self.db.flush()
        return dispute

    async def save(self) -> None:
        await self.db.flush()

    async def append_evidence(self, dispute: Dispute, items: list[EvidenceItem]) -> None:
        """Insert new evidence rows after the existing ones; nothing is rewritten."""
        for item in items:
            dispute.evidence.append(
                DisputeEvidence(
                    dispute_id=dispute.id,
                    id=item.id,
                    name=item.name,
                    type=item.type,
                    url=item.url,
                    uploaded_at=item.uploaded_at,
                )
            )
        await self.db.flush()

    async def list_disputes(
        self,
        party: ActorType,
        party_id: uuid.UUID,
        filters: DisputeFilters,
    ) -> tuple[list[Dispute], int]:
        """Paginated listing scoped to one side of the dispute."""
        if party == ActorType.SELLER:
            conditions = [Dispute.seller_id == party_id]
            counterparty_name = Dispute.buyer_name
            ordering = (
                case(PRIORITY_RANK, value=Dispute.priority_level, else_=-1).desc(),
                Dispute.response_deadline.asc(),
                Dispute.created_at.desc(),
            )
        else:
            conditions = [Dispute.buyer_id == party_id]
            counterparty_name = Dispute.seller_name
            ordering = (Dispute.created_at.desc(),)

        if filters.status is not None:
            conditions.append(Dispute.status == filters.status)
        if filters.reason is not None:
            conditions.append(Dispute.reason == filters.reason)
        if filters.priority is not None:
            conditions.append(Dispute.priority_level == filters.priority)
        if filters.date_from is not None:
            conditions.append(Dispute.created_at >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(Dispute.created_at <= filters.date_to)
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(
                or_(
                    Dispute.dispute_number.ilike(pattern),
                    Dispute.order_number.ilike(pattern),
                    Dispute.item_name.ilike(pattern),
                    counterparty_name.ilike(pattern),
                )
            )

        count_result = await self.db.execute(
            select(func.count()).select_from(Dispute).where(*conditions)
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(Dispute)
            .where(*conditions)
            .order_by(*ordering)
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all()), total

    # ------------------------------------------------------------------
    # Rollups
    # ------------------------------------------------------------------

    def _party_condition(self, party: ActorType, party_id: uuid.UUID):
        if party == ActorType.SELLER:
            return Dispute.seller_id == party_id
        return Dispute.buyer_id == party_id

    async def status_counts(
        self, party: ActorType, party_id: uuid.UUID
    ) -> dict[DisputeStatus, int]:
        result = await self.db.execute(
            select(Dispute.status, func.count())
            .where(self._party_condition(party, party_id))
            .group_by(Dispute.status)
        )
        return {status: count for status, count in result.all()}

    async def resolution_spans(
        self, party: ActorType, party_id: uuid.UUID
    ) -> list[tuple[datetime, datetime]]:
        result = await self.db.execute(
            select(Dispute.created_at, Dispute.closed_at).where(
                self._party_condition(party, party_id),
                Dispute.status.in_(list(SETTLED_STATUSES)),
                Dispute.closed_at.is_not(None),
            )
        )
        return [(created_at, closed_at) for created_at, closed_at in result.all()]
