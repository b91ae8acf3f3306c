"""MarketplaceInvoice model: invoice issued by the seller for an order."""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class MarketplaceInvoice(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "marketplace_invoices"

    invoice_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("marketplace_orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    seller_name: Mapped[str | None] = mapped_column(String(255))
    seller_company: Mapped[str | None] = mapped_column(String(255))
