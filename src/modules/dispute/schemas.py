"""Pydantic v2 schemas for the dispute API."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.config import settings
from src.models.enums import (
    DisputeReason,
    DisputeStatus,
    PriorityLevel,
    SellerResponseType,
)
from src.modules.dispute.events import DisputeEventView

# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------


class EvidenceItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    type: str = Field(..., min_length=1, max_length=100)
    url: str = Field(..., min_length=1, max_length=2048)
    uploaded_at: str = Field(..., min_length=1, max_length=64)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class DisputeCreate(BaseModel):
    order_id: uuid.UUID
    reason: DisputeReason
    description: str = Field(..., min_length=10, max_length=2000)
    requested_resolution: str | None = Field(None, max_length=500)
    requested_amount: Decimal | None = Field(None, gt=0)
    evidence: list[EvidenceItem] | None = None


class SellerRespondRequest(BaseModel):
    response_type: SellerResponseType
    response: str = Field(..., min_length=10, max_length=2000)
    proposed_resolution: str | None = Field(None, max_length=500)
    proposed_amount: Decimal | None = Field(None, gt=0)


class RejectResolutionRequest(BaseModel):
    reason: str = Field(..., min_length=10, max_length=500)


class EscalateRequest(BaseModel):
    reason: str = Field(..., min_length=10, max_length=500)


class AddEvidenceRequest(BaseModel):
    evidence: list[EvidenceItem] = Field(..., min_length=1)


class DisputeFilters(BaseModel):
    status: DisputeStatus | None = None
    reason: DisputeReason | None = None
    priority: PriorityLevel | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    search: str | None = Field(None, max_length=200)
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=settings.dispute_page_size_max)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ReturnRequestSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    return_number: str
    status: str


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    dispute_number: str
    order_id: uuid.UUID
    order_number: str
    invoice_id: uuid.UUID | None = None
    invoice_number: str | None = None
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    buyer_name: str
    buyer_email: str | None = None
    buyer_company: str | None = None
    seller_name: str
    seller_company: str | None = None
    item_id: uuid.UUID | None = None
    item_name: str
    item_sku: str | None = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    currency: str
    reason: DisputeReason
    description: str
    requested_resolution: str | None = None
    requested_amount: Decimal | None = None
    evidence: list[EvidenceItem] = Field(default_factory=list)
    status: DisputeStatus
    priority_level: PriorityLevel
    response_deadline: datetime
    resolution_deadline: datetime
    is_escalated: bool
    escalated_at: datetime | None = None
    escalation_reason: str | None = None
    seller_response_type: SellerResponseType | None = None
    seller_response: str | None = None
    seller_proposed_resolution: str | None = None
    seller_proposed_amount: Decimal | None = None
    responded_at: datetime | None = None
    resolution: str | None = None
    resolution_amount: Decimal | None = None
    resolved_by: str | None = None
    closed_at: datetime | None = None
    return_request: ReturnRequestSummary | None = None
    created_at: datetime
    updated_at: datetime


class DisputeDetailResponse(DisputeResponse):
    events: list[DisputeEventView] = Field(default_factory=list)


class DisputeListResponse(BaseModel):
    disputes: list[DisputeResponse]
    total: int
    page: int
    limit: int


class DisputeStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    open: int
    under_review: int
    seller_responded: int
    resolved: int
    rejected: int
    escalated: int
    closed: int
    avg_resolution_days: float
    resolution_rate: int
