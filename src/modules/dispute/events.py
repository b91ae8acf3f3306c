"""Append-only dispute audit log and its per-event metadata schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, SerializeAsAny
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.dispute_event import DisputeEvent
from src.models.enums import ActorType, DisputeReason, DisputeStatus, SellerResponseType
from src.modules.dispute.constants import (
    EVENT_BUYER_ACCEPTED,
    EVENT_BUYER_REJECTED,
    EVENT_DISPUTE_CREATED,
    EVENT_ESCALATED,
    EVENT_EVIDENCE_ADDED,
    EVENT_SELLER_RESPONDED,
)

# ---------------------------------------------------------------------------
# Metadata schemas
# ---------------------------------------------------------------------------


class EventMetadata(BaseModel):
    """Base for event metadata; unknown event types keep their raw keys."""

    model_config = ConfigDict(extra="allow")


class DisputeCreatedMetadata(EventMetadata):
    reason: DisputeReason
    requested_resolution: str | None = None
    requested_amount: Decimal | None = None


class SellerRespondedMetadata(EventMetadata):
    response_type: SellerResponseType
    proposed_resolution: str | None = None
    proposed_amount: Decimal | None = None


class BuyerAcceptedMetadata(EventMetadata):
    resolution: str | None = None
    amount: Decimal | None = None


class ReasonMetadata(EventMetadata):
    reason: str


class EvidenceAddedMetadata(EventMetadata):
    count: int


EVENT_METADATA_SCHEMAS: dict[str, type[EventMetadata]] = {
    EVENT_DISPUTE_CREATED: DisputeCreatedMetadata,
    EVENT_SELLER_RESPONDED: SellerRespondedMetadata,
    EVENT_BUYER_ACCEPTED: BuyerAcceptedMetadata,
    EVENT_BUYER_REJECTED: ReasonMetadata,
    EVENT_ESCALATED: ReasonMetadata,
    EVENT_EVIDENCE_ADDED: EvidenceAddedMetadata,
}


def serialize_metadata(metadata: EventMetadata | None) -> dict[str, Any] | None:
    if metadata is None:
        return None
    return metadata.model_dump(mode="json", exclude_none=True)


def parse_metadata(event_type: str, raw: dict[str, Any] | None) -> EventMetadata | None:
    """Rebuild the typed metadata object stored for ``event_type``."""
    if raw is None:
        return None
    schema = EVENT_METADATA_SCHEMAS.get(event_type, EventMetadata)
    return schema.model_validate(raw)


# ---------------------------------------------------------------------------
# Read model
# ---------------------------------------------------------------------------


class DisputeEventView(BaseModel):
    id: uuid.UUID
    dispute_id: uuid.UUID
    event_type: str
    actor_id: uuid.UUID | None = None
    actor_type: ActorType
    from_status: DisputeStatus | None = None
    to_status: DisputeStatus | None = None
    metadata: SerializeAsAny[EventMetadata] | None = None
    created_at: datetime

    @classmethod
    def from_event(cls, event: DisputeEvent) -> DisputeEventView:
        return cls(
            id=event.id,
            dispute_id=event.dispute_id,
            event_type=event.event_type,
            actor_id=event.actor_id,
            actor_type=event.actor_type,
            from_status=event.from_status,
            to_status=event.to_status,
            metadata=parse_metadata(event.event_type, event.event_metadata),
            created_at=event.created_at,
        )


# ---------------------------------------------------------------------------
# Log
# ---------------------------------------------------------------------------


class DisputeEventLog:
    """Writes and reads ``marketplace_dispute_events``; rows are never updated."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        dispute_id: uuid.UUID,
        event_type: str,
        actor_id: uuid.UUID | None,
        actor_type: ActorType,
        from_status: DisputeStatus | None = None,
        to_status: DisputeStatus | None = None,
        metadata: EventMetadata | None = None,
    ) -> DisputeEvent:
        event = DisputeEvent(
            dispute_id=dispute_id,
            event_type=event_type,
            actor_id=actor_id,
            actor_type=actor_type,
            from_status=from_status,
            to_status=to_status,
            event_metadata=serialize_metadata(metadata),
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def list_for_dispute(
        self, dispute_id: uuid.UUID, limit: int | None = None
    ) -> list[DisputeEventView]:
        """Events for a dispute, newest first."""
        query = (
            select(DisputeEvent)
            .where(DisputeEvent.dispute_id == dispute_id)
            .order_by(DisputeEvent.created_at.desc(), DisputeEvent.sequence.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return [DisputeEventView.from_event(e) for e in result.scalars().all()]
