"""MarketplaceOrder model: single-item marketplace order between a buyer and a seller."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Index, Integer, Numeric, String, Uuid, false
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_type
from src.models.enums import MarketplaceOrderStatus


class MarketplaceOrder(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "marketplace_orders"

    order_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True
    )

    # Parties
    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    buyer_name: Mapped[str | None] = mapped_column(String(255))
    buyer_email: Mapped[str | None] = mapped_column(String(255))
    buyer_company: Mapped[str | None] = mapped_column(String(255))

    # Item
    item_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    item_name: Mapped[str] = mapped_column(String(500), nullable=False)
    item_sku: Mapped[str | None] = mapped_column(String(100))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, server_default="USD", default="USD"
    )

    status: Mapped[MarketplaceOrderStatus] = mapped_column(
        enum_type(MarketplaceOrderStatus), nullable=False
    )
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Exception flag raised by downstream workflows (disputes, returns)
    has_exception: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false(), default=False
    )
    exception_type: Mapped[str | None] = mapped_column(String(50))

    __table_args__ = (
        Index("ix_marketplace_orders_buyer_id", "buyer_id"),
        Index("ix_marketplace_orders_seller_id", "seller_id"),
    )
