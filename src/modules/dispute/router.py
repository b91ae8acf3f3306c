"""Marketplace dispute API router: buyer and seller endpoints."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.models.dispute import Dispute
from src.modules.dispute.events import DisputeEventView
from src.modules.dispute.results import DisputeResult
from src.modules.dispute.schemas import (
    AddEvidenceRequest,
    DisputeCreate,
    DisputeDetailResponse,
    DisputeFilters,
    DisputeListResponse,
    DisputeResponse,
    DisputeStatsResponse,
    EscalateRequest,
    RejectResolutionRequest,
    SellerRespondRequest,
)
from src.modules.dispute.service import DisputeService
from src.modules.identity.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/disputes", tags=["disputes"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _raise_for_failure(result: DisputeResult) -> DisputeResult:
    if not result.success:
        raise result.error
    return result


def _unwrap(result: DisputeResult) -> Dispute:
    """Return the dispute of a successful result or raise its error."""
    return _raise_for_failure(result).dispute


def _detail(result: DisputeResult) -> DisputeDetailResponse:
    dispute = DisputeResponse.model_validate(_unwrap(result))
    return DisputeDetailResponse(**dispute.model_dump(), events=result.events)


def _page(result: DisputeResult) -> DisputeListResponse:
    page = _raise_for_failure(result).page
    return DisputeListResponse(
        disputes=[DisputeResponse.model_validate(d) for d in page.items],
        total=page.total,
        page=page.page,
        limit=page.limit,
    )


# ---------------------------------------------------------------------------
# Buyer
# ---------------------------------------------------------------------------


@router.post("/buyer", response_model=DisputeResponse, status_code=201)
async def create_dispute(
    body: DisputeCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Open a dispute on one of the caller's delivered orders."""
    svc = DisputeService(db)
    result = await svc.create_dispute(
        order_id=body.order_id,
        buyer_id=user.id,
        reason=body.reason,
        description=body.description,
        requested_resolution=body.requested_resolution,
        requested_amount=body.requested_amount,
        evidence=body.evidence,
    )
    return DisputeResponse.model_validate(_unwrap(result))


@router.get("/buyer", response_model=DisputeListResponse)
async def list_buyer_disputes(
    filters: Annotated[DisputeFilters, Query()],
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    return _page(await svc.get_buyer_disputes(user.id, filters))


@router.get("/buyer/stats", response_model=DisputeStatsResponse)
async def buyer_dispute_stats(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    result = await svc.get_buyer_dispute_stats(user.id)
    return DisputeStatsResponse.model_validate(_raise_for_failure(result).stats)


@router.get("/buyer/{dispute_id}", response_model=DisputeDetailResponse)
async def get_buyer_dispute(
    dispute_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    return _detail(await svc.get_dispute(dispute_id, user.id))


@router.post("/buyer/{dispute_id}/accept", response_model=DisputeResponse)
async def accept_resolution(
    dispute_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Accept the seller's proposed resolution."""
    svc = DisputeService(db)
    result = await svc.buyer_accept_resolution(dispute_id, user.id)
    return DisputeResponse.model_validate(_unwrap(result))


@router.post("/buyer/{dispute_id}/reject", response_model=DisputeResponse)
async def reject_resolution(
    dispute_id: uuid.UUID,
    body: RejectResolutionRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    result = await svc.buyer_reject_resolution(dispute_id, user.id, body.reason)
    return DisputeResponse.model_validate(_unwrap(result))


@router.post("/buyer/{dispute_id}/escalate", response_model=DisputeResponse)
async def buyer_escalate(
    dispute_id: uuid.UUID,
    body: EscalateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    result = await svc.escalate_dispute(dispute_id, user.id, body.reason)
    return DisputeResponse.model_validate(_unwrap(result))


@router.post("/buyer/{dispute_id}/evidence", response_model=DisputeResponse)
async def add_evidence(
    dispute_id: uuid.UUID,
    body: AddEvidenceRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    result = await svc.add_evidence(dispute_id, user.id, body.evidence)
    return DisputeResponse.model_validate(_unwrap(result))


@router.post("/buyer/{dispute_id}/close", response_model=DisputeResponse)
async def close_dispute(
    dispute_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    result = await svc.close_dispute(dispute_id, user.id)
    return DisputeResponse.model_validate(_unwrap(result))


# ---------------------------------------------------------------------------
# Seller
# ---------------------------------------------------------------------------


@router.get("/seller", response_model=DisputeListResponse)
async def list_seller_disputes(
    filters: Annotated[DisputeFilters, Query()],
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Seller inbox, most urgent first."""
    svc = DisputeService(db)
    return _page(await svc.get_seller_disputes(user.id, filters))


@router.get("/seller/stats", response_model=DisputeStatsResponse)
async def seller_dispute_stats(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    result = await svc.get_seller_dispute_stats(user.id)
    return DisputeStatsResponse.model_validate(_raise_for_failure(result).stats)


@router.get("/seller/{dispute_id}", response_model=DisputeDetailResponse)
async def get_seller_dispute(
    dispute_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    return _detail(await svc.get_dispute(dispute_id, user.id))


@router.post("/seller/{dispute_id}/review", response_model=DisputeResponse)
async def mark_under_review(
    dispute_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    result = await svc.mark_as_under_review(dispute_id, user.id)
    return DisputeResponse.model_validate(_unwrap(result))


@router.post("/seller/{dispute_id}/respond", response_model=DisputeResponse)
async def seller_respond(
    dispute_id: uuid.UUID,
    body: SellerRespondRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    result = await svc.seller_respond(
        dispute_id,
        user.id,
        response_type=body.response_type,
        response=body.response,
        proposed_resolution=body.proposed_resolution,
        proposed_amount=body.proposed_amount,
    )
    return DisputeResponse.model_validate(_unwrap(result))


@router.post("/seller/{dispute_id}/escalate", response_model=DisputeResponse)
async def seller_escalate(
    dispute_id: uuid.UUID,
    body: EscalateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    result = await svc.escalate_dispute(dispute_id, user.id, body.reason)
    return DisputeResponse.model_validate(_unwrap(result))


# ---------------------------------------------------------------------------
# Either party
# ---------------------------------------------------------------------------


@router.get("/{dispute_id}/history", response_model=list[DisputeEventView])
async def dispute_history(
    dispute_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Full audit trail, newest first."""
    svc = DisputeService(db)
    result = await svc.get_dispute_history(dispute_id, user.id)
    return _raise_for_failure(result).events


@router.get("/order/{order_id}", response_model=DisputeResponse)
async def dispute_for_order(
    order_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = DisputeService(db)
    result = await svc.get_dispute_by_order(order_id, user.id)
    return DisputeResponse.model_validate(_unwrap(result))
