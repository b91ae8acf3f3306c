"""DisputeEvidence model: insert-only evidence items attached by the buyer."""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base


class DisputeEvidence(Base):
    __tablename__ = "marketplace_dispute_evidence"

    # Auto-increment position gives the append order; rows are never updated.
    position: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dispute_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("marketplace_disputes.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Client-supplied item fields
    id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    uploaded_at: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        Index("ix_marketplace_dispute_evidence_dispute_id", "dispute_id"),
    )
