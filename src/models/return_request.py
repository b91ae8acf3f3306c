"""ReturnRequest model: return raised from a dispute (read-only reference here)."""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ReturnRequest(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "marketplace_return_requests"

    return_number: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    dispute_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("marketplace_disputes.id", ondelete="SET NULL"),
        unique=True,
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False)
