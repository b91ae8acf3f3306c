"""Dispute model: buyer/seller dispute over a delivered order."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    false,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_type
from src.models.enums import (
    DisputeReason,
    DisputeStatus,
    PriorityLevel,
    SellerResponseType,
)

if TYPE_CHECKING:
    from src.models.dispute_evidence import DisputeEvidence
    from src.models.return_request import ReturnRequest

# Statuses that block a second dispute on the same order
_ACTIVE_STATUS_PREDICATE = text(
    "status IN ('open', 'under_review', 'seller_responded', 'escalated')"
)


class Dispute(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "marketplace_disputes"

    dispute_number: Mapped[str] = mapped_column(
        String(30), nullable=False, unique=True
    )

    # Links (immutable after creation)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("marketplace_orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    invoice_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("marketplace_invoices.id", ondelete="SET NULL")
    )
    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # Order / invoice snapshot
    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_number: Mapped[str | None] = mapped_column(String(50))
    buyer_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    buyer_email: Mapped[str | None] = mapped_column(String(255))
    buyer_company: Mapped[str | None] = mapped_column(String(255))
    seller_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    seller_company: Mapped[str | None] = mapped_column(String(255))
    item_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    item_name: Mapped[str] = mapped_column(String(500), nullable=False)
    item_sku: Mapped[str | None] = mapped_column(String(100))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Case content
    reason: Mapped[DisputeReason] = mapped_column(
        enum_type(DisputeReason), nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    requested_resolution: Mapped[str | None] = mapped_column(String(500))
    requested_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))

    # Workflow
    status: Mapped[DisputeStatus] = mapped_column(
        enum_type(DisputeStatus), nullable=False, default=DisputeStatus.OPEN
    )
    priority_level: Mapped[PriorityLevel] = mapped_column(
        enum_type(PriorityLevel), nullable=False, default=PriorityLevel.MEDIUM
    )
    response_deadline: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    resolution_deadline: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    is_escalated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false(), default=False
    )
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    escalation_reason: Mapped[str | None] = mapped_column(Text)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Seller response
    seller_response_type: Mapped[SellerResponseType | None] = mapped_column(
        enum_type(SellerResponseType)
    )
    seller_response: Mapped[str | None] = mapped_column(Text)
    seller_proposed_resolution: Mapped[str | None] = mapped_column(String(500))
    seller_proposed_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Resolution
    resolution: Mapped[str | None] = mapped_column(String(500))
    resolution_amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    resolved_by: Mapped[str | None] = mapped_column(String(50))

    # Relationships
    evidence: Mapped[list[DisputeEvidence]] = relationship(
        "DisputeEvidence",
        order_by="DisputeEvidence.position",
        lazy="selectin",
        cascade="save-update, merge",
    )
    return_request: Mapped[ReturnRequest | None] = relationship(
        "ReturnRequest", uselist=False, lazy="selectin", viewonly=True
    )

    __table_args__ = (
        Index("ix_marketplace_disputes_order_id", "order_id"),
        Index("ix_marketplace_disputes_buyer_id", "buyer_id"),
        Index("ix_marketplace_disputes_seller_id", "seller_id"),
        Index("ix_marketplace_disputes_status", "status"),
        Index(
            "uq_marketplace_disputes_active_order",
            "order_id",
            unique=True,
            postgresql_where=_ACTIVE_STATUS_PREDICATE,
            sqlite_where=_ACTIVE_STATUS_PREDICATE,
        ),
    )
