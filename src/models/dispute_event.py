"""DisputeEvent model: append-only audit log for disputes."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, JSONVariant, enum_type, utcnow
from src.models.enums import ActorType, DisputeStatus


class DisputeEvent(Base):
    __tablename__ = "marketplace_dispute_events"

    # Insertion order; breaks ties between events sharing a timestamp.
    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, nullable=False, default=uuid.uuid4)
    dispute_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("marketplace_disputes.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    actor_type: Mapped[ActorType] = mapped_column(enum_type(ActorType), nullable=False)
    from_status: Mapped[DisputeStatus | None] = mapped_column(enum_type(DisputeStatus))
    to_status: Mapped[DisputeStatus | None] = mapped_column(enum_type(DisputeStatus))
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONVariant)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_marketplace_dispute_events_dispute_id", "dispute_id", "created_at", "sequence"),
    )

    def __repr__(self) -> str:
        return (
            f"<DisputeEvent dispute={self.dispute_id} type={self.event_type} "
            f"{self.from_status} -> {self.to_status}>"
        )
