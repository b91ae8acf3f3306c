"""Tests for DisputeService: the dispute lifecycle against a real session."""

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from src.models.dispute_event import DisputeEvent
from src.models.enums import (
    ActorType,
    DisputeReason,
    DisputeStatus,
    MarketplaceOrderStatus,
    PriorityLevel,
    SellerResponseType,
)
from src.models.order import MarketplaceOrder
from src.models.return_request import ReturnRequest
from src.modules.dispute.constants import (
    EVENT_BUYER_ACCEPTED,
    EVENT_BUYER_REJECTED,
    EVENT_CLOSED,
    EVENT_DISPUTE_CREATED,
    EVENT_DISPUTE_VIEWED,
    EVENT_ESCALATED,
    EVENT_EVIDENCE_ADDED,
    EVENT_SELLER_RESPONDED,
)
from src.modules.dispute.events import EvidenceAddedMetadata, ReasonMetadata
from src.modules.dispute.priority import as_utc
from src.modules.dispute.schemas import DisputeFilters, EvidenceItem
from src.modules.dispute.service import DisputeService

DESCRIPTION = "The pump arrived with a cracked housing."


def _evidence(n: int) -> EvidenceItem:
    return EvidenceItem(
        id=f"ev-{n}",
        name=f"photo-{n}.jpg",
        type="image/jpeg",
        url=f"https://files.example.test/ev-{n}",
        uploaded_at="2026-03-02T10:00:00Z",
    )


@pytest.fixture
def service(async_test_session) -> DisputeService:
    return DisputeService(async_test_session)


async def _open_dispute(service, order, buyer_id, **kwargs):
    result = await service.create_dispute(
        order_id=order.id,
        buyer_id=buyer_id,
        reason=kwargs.pop("reason", DisputeReason.DAMAGED_GOODS),
        description=DESCRIPTION,
        **kwargs,
    )
    assert result.success, result.error_message
    return result.dispute


async def _events(session, dispute_id) -> list[DisputeEvent]:
    result = await session.execute(
        select(DisputeEvent)
        .where(DisputeEvent.dispute_id == dispute_id)
        .order_by(DisputeEvent.created_at, DisputeEvent.sequence)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# create_dispute
# ---------------------------------------------------------------------------


class TestCreateDispute:
    @pytest.mark.asyncio
    async def test_creates_open_dispute_with_snapshot(
        self, service, async_test_session, make_order, buyer_id, seller_id
    ):
        order = await make_order()
        before = datetime.now(UTC)

        result = await service.create_dispute(
            order_id=order.id,
            buyer_id=buyer_id,
            reason=DisputeReason.DAMAGED_GOODS,
            description=DESCRIPTION,
            requested_resolution="full_refund",
            requested_amount=Decimal("1200.00"),
            evidence=[_evidence(1)],
        )

        assert result.success
        dispute = result.dispute
        year = datetime.now(UTC).year
        assert dispute.dispute_number == f"DSP-{year}-0001"
        assert dispute.status == DisputeStatus.OPEN
        assert dispute.priority_level == PriorityLevel.MEDIUM
        assert dispute.buyer_id == buyer_id
        assert dispute.seller_id == seller_id
        assert dispute.order_number == order.order_number
        assert dispute.seller_name == "Bolt Supply"
        assert dispute.invoice_number.startswith("INV-")
        assert dispute.is_escalated is False
        assert [e.id for e in dispute.evidence] == ["ev-1"]
        assert dispute.return_request is None

        created = as_utc(dispute.created_at)
        assert created >= before
        assert as_utc(dispute.response_deadline) == created + timedelta(hours=48)
        assert as_utc(dispute.resolution_deadline) == created + timedelta(days=7)

        events = await _events(async_test_session, dispute.id)
        assert len(events) == 1
        assert events[0].event_type == EVENT_DISPUTE_CREATED
        assert events[0].actor_type == ActorType.BUYER
        assert events[0].from_status is None
        assert events[0].to_status == DisputeStatus.OPEN
        assert events[0].event_metadata == {
            "reason": "damaged_goods",
            "requested_resolution": "full_refund",
            "requested_amount": "1200.00",
        }

        refreshed = await async_test_session.get(MarketplaceOrder, order.id)
        await async_test_session.refresh(refreshed)
        assert refreshed.has_exception is True
        assert refreshed.exception_type == "dispute_filed"

    @pytest.mark.asyncio
    async def test_numbers_increase_within_year(self, service, make_order, buyer_id):
        first = await _open_dispute(service, await make_order(), buyer_id)
        second = await _open_dispute(service, await make_order(), buyer_id)
        assert first.dispute_number.endswith("-0001")
        assert second.dispute_number.endswith("-0002")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("total", "expected"),
        [
            (Decimal("15000.00"), PriorityLevel.URGENT),
            (Decimal("7500.00"), PriorityLevel.HIGH),
            (Decimal("5000.00"), PriorityLevel.MEDIUM),
        ],
    )
    async def test_priority_follows_order_value(
        self, service, make_order, buyer_id, total, expected
    ):
        dispute = await _open_dispute(service, await make_order(total_price=total), buyer_id)
        assert dispute.priority_level == expected

    @pytest.mark.asyncio
    async def test_missing_invoice_leaves_seller_name_blank(self, service, make_order, buyer_id):
        dispute = await _open_dispute(service, await make_order(with_invoice=False), buyer_id)
        assert dispute.seller_name == ""
        assert dispute.invoice_id is None

    @pytest.mark.asyncio
    async def test_unknown_order(self, service, buyer_id):
        result = await service.create_dispute(
            order_id=uuid.uuid4(),
            buyer_id=buyer_id,
            reason=DisputeReason.OTHER,
            description=DESCRIPTION,
        )
        assert not result.success
        assert result.error_code == "NOT_FOUND"
        assert result.error_message == "Order not found"

    @pytest.mark.asyncio
    async def test_only_the_buyer_can_open(self, service, make_order, seller_id):
        order = await make_order()
        result = await service.create_dispute(
            order_id=order.id,
            buyer_id=seller_id,
            reason=DisputeReason.OTHER,
            description=DESCRIPTION,
        )
        assert result.error_code == "FORBIDDEN"
        assert result.error_message == "You can only open disputes on your own orders"

    @pytest.mark.asyncio
    async def test_order_must_be_delivered(self, service, make_order, buyer_id):
        order = await make_order(status=MarketplaceOrderStatus.SHIPPED)
        result = await service.create_dispute(
            order_id=order.id,
            buyer_id=buyer_id,
            reason=DisputeReason.LATE_DELIVERY,
            description=DESCRIPTION,
        )
        assert result.error_code == "VALIDATION_ERROR"
        assert result.error_message == "Disputes can only be opened on delivered orders"

    @pytest.mark.asyncio
    async def test_closed_order_is_disputable(self, service, make_order, buyer_id):
        order = await make_order(status=MarketplaceOrderStatus.CLOSED)
        dispute = await _open_dispute(service, order, buyer_id)
        assert dispute.status == DisputeStatus.OPEN

    @pytest.mark.asyncio
    async def test_second_active_dispute_is_refused(self, service, make_order, buyer_id):
        order = await make_order()
        order_id = order.id
        await _open_dispute(service, order, buyer_id)

        result = await service.create_dispute(
            order_id=order_id,
            buyer_id=buyer_id,
            reason=DisputeReason.OTHER,
            description=DESCRIPTION,
        )
        assert result.error_code == "VALIDATION_ERROR"
        assert result.error_message == "An active dispute already exists for this order"

        page = (await service.get_buyer_disputes(buyer_id)).page
        assert page.total == 1

    @pytest.mark.asyncio
    async def test_racing_insert_rolls_back_number_and_events(
        self, service, async_test_session, make_order, buyer_id
    ):
        order = await make_order()
        order_id = order.id
        first = await _open_dispute(service, order, buyer_id)
        first_id = first.id

        # Another request slipped its dispute in after the active check
        with patch.object(
            service.repo, "find_active_dispute_for_order", AsyncMock(return_value=None)
        ):
            result = await service.create_dispute(
                order_id=order_id,
                buyer_id=buyer_id,
                reason=DisputeReason.OTHER,
                description=DESCRIPTION,
            )

        assert result.error_code == "VALIDATION_ERROR"
        assert result.error_message == "An active dispute already exists for this order"
        events = (await async_test_session.execute(select(DisputeEvent))).scalars().all()
        assert [e.dispute_id for e in events] == [first_id]

        assert (await service.close_dispute(first_id, buyer_id)).success
        replacement = await service.create_dispute(
            order_id=order_id,
            buyer_id=buyer_id,
            reason=DisputeReason.OTHER,
            description=DESCRIPTION,
        )
        assert replacement.success
        assert replacement.dispute.dispute_number.endswith("-0002")

    @pytest.mark.asyncio
    async def test_new_dispute_allowed_after_close(self, service, make_order, buyer_id):
        order = await make_order()
        first = await _open_dispute(service, order, buyer_id)
        closed = await service.close_dispute(first.id, buyer_id)
        assert closed.success

        second = await _open_dispute(service, order, buyer_id)
        assert second.id != first.id

        latest = await service.get_dispute_by_order(order.id, buyer_id)
        assert latest.dispute.id == second.id

    @pytest.mark.asyncio
    async def test_window_boundary(self, service, make_order, buyer_id):
        delivered = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        on_time = await make_order(delivered_at=delivered)
        late = await make_order(delivered_at=delivered)
        late_id = late.id

        with patch(
            "src.modules.dispute.service._utcnow",
            return_value=delivered + timedelta(days=14),
        ):
            dispute = await _open_dispute(service, on_time, buyer_id)
        assert dispute.dispute_number == "DSP-2026-0001"

        with patch(
            "src.modules.dispute.service._utcnow",
            return_value=delivered + timedelta(days=14, seconds=1),
        ):
            result = await service.create_dispute(
                order_id=late_id,
                buyer_id=buyer_id,
                reason=DisputeReason.OTHER,
                description=DESCRIPTION,
            )
        assert result.error_code == "VALIDATION_ERROR"
        assert result.error_message == "Dispute window has expired (14 days after delivery)"

    @pytest.mark.asyncio
    async def test_failed_create_leaves_no_trace(
        self, service, async_test_session, make_order, buyer_id
    ):
        order = await make_order(delivered_at=datetime.now(UTC) - timedelta(days=30))
        order_id = order.id

        result = await service.create_dispute(
            order_id=order_id,
            buyer_id=buyer_id,
            reason=DisputeReason.OTHER,
            description=DESCRIPTION,
        )
        assert not result.success

        events = (await async_test_session.execute(select(DisputeEvent))).scalars().all()
        assert events == []
        refreshed = await async_test_session.get(MarketplaceOrder, order_id)
        await async_test_session.refresh(refreshed)
        assert refreshed.has_exception is False


# ---------------------------------------------------------------------------
# Seller actions
# ---------------------------------------------------------------------------


class TestSellerActions:
    @pytest.mark.asyncio
    async def test_mark_under_review(
        self, service, async_test_session, make_order, buyer_id, seller_id
    ):
        dispute = await _open_dispute(service, await make_order(), buyer_id)

        result = await service.mark_as_under_review(dispute.id, seller_id)

        assert result.success
        assert result.dispute.status == DisputeStatus.UNDER_REVIEW
        events = await _events(async_test_session, dispute.id)
        assert events[-1].event_type == EVENT_DISPUTE_VIEWED
        assert events[-1].from_status == DisputeStatus.OPEN
        assert events[-1].actor_type == ActorType.SELLER

    @pytest.mark.asyncio
    async def test_buyer_cannot_mark_under_review(self, service, make_order, buyer_id):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        dispute_id = dispute.id

        result = await service.mark_as_under_review(dispute_id, buyer_id)

        assert result.error_code == "FORBIDDEN"
        assert result.error_message == "Unauthorized"
        reloaded = await service.repo.get_dispute(dispute_id)
        assert reloaded.status == DisputeStatus.OPEN

    @pytest.mark.asyncio
    async def test_review_twice_is_invalid_transition(
        self, service, make_order, buyer_id, seller_id
    ):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        await service.mark_as_under_review(dispute.id, seller_id)

        result = await service.mark_as_under_review(dispute.id, seller_id)

        assert result.error_code == "INVALID_TRANSITION"

    @pytest.mark.asyncio
    async def test_propose_from_open_records_one_event(
        self, service, async_test_session, make_order, buyer_id, seller_id
    ):
        dispute = await _open_dispute(service, await make_order(), buyer_id)

        result = await service.seller_respond(
            dispute.id,
            seller_id,
            response_type=SellerResponseType.PROPOSE_RESOLUTION,
            response="We can refund half of the order value.",
            proposed_resolution="partial_refund",
            proposed_amount=Decimal("600.00"),
        )

        assert result.success
        responded = result.dispute
        assert responded.status == DisputeStatus.SELLER_RESPONDED
        assert responded.seller_response_type == SellerResponseType.PROPOSE_RESOLUTION
        assert responded.seller_proposed_resolution == "partial_refund"
        assert responded.seller_proposed_amount == Decimal("600.00")
        assert responded.responded_at is not None

        events = await _events(async_test_session, dispute.id)
        assert [e.event_type for e in events] == [EVENT_DISPUTE_CREATED, EVENT_SELLER_RESPONDED]
        assert events[1].from_status == DisputeStatus.OPEN
        assert events[1].to_status == DisputeStatus.SELLER_RESPONDED

    @pytest.mark.asyncio
    async def test_reject_response_does_not_store_proposal(
        self, service, make_order, buyer_id, seller_id
    ):
        dispute = await _open_dispute(service, await make_order(), buyer_id)

        result = await service.seller_respond(
            dispute.id,
            seller_id,
            response_type=SellerResponseType.REJECT,
            response="Item left our warehouse intact.",
            proposed_resolution="ignored",
            proposed_amount=Decimal("1.00"),
        )

        assert result.dispute.status == DisputeStatus.SELLER_RESPONDED
        assert result.dispute.seller_proposed_resolution is None
        assert result.dispute.seller_proposed_amount is None

    @pytest.mark.asyncio
    async def test_accept_responsibility_resolves_immediately(
        self, service, async_test_session, make_order, buyer_id, seller_id
    ):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        await service.mark_as_under_review(dispute.id, seller_id)

        result = await service.seller_respond(
            dispute.id,
            seller_id,
            response_type=SellerResponseType.ACCEPT_RESPONSIBILITY,
            response="Our mistake, refunding in full.",
        )

        resolved = result.dispute
        assert resolved.status == DisputeStatus.RESOLVED
        assert resolved.resolution == "full_refund"
        assert resolved.resolution_amount is None
        assert resolved.resolved_by == "seller_accepted"
        assert resolved.closed_at is not None

        events = await _events(async_test_session, dispute.id)
        assert events[-1].event_type == EVENT_SELLER_RESPONDED
        assert events[-1].from_status == DisputeStatus.UNDER_REVIEW
        assert events[-1].to_status == DisputeStatus.RESOLVED

    @pytest.mark.asyncio
    async def test_respond_only_while_respondable(
        self, service, make_order, buyer_id, seller_id
    ):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        await service.seller_respond(
            dispute.id,
            seller_id,
            response_type=SellerResponseType.REJECT,
            response="Item left our warehouse intact.",
        )

        result = await service.seller_respond(
            dispute.id,
            seller_id,
            response_type=SellerResponseType.REJECT,
            response="Repeating our earlier answer.",
        )

        assert result.error_code == "VALIDATION_ERROR"
        assert result.error_message == "Dispute is not in a respondable state"


# ---------------------------------------------------------------------------
# Buyer actions
# ---------------------------------------------------------------------------


class TestBuyerActions:
    async def _responded(self, service, make_order, buyer_id, seller_id, response_type):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        result = await service.seller_respond(
            dispute.id,
            seller_id,
            response_type=response_type,
            response="Here is our answer to the claim.",
            proposed_resolution="partial_refund",
            proposed_amount=Decimal("300.00"),
        )
        assert result.success
        return result.dispute

    @pytest.mark.asyncio
    async def test_accept_proposal(
        self, service, async_test_session, make_order, buyer_id, seller_id
    ):
        dispute = await self._responded(
            service, make_order, buyer_id, seller_id, SellerResponseType.PROPOSE_RESOLUTION
        )

        result = await service.buyer_accept_resolution(dispute.id, buyer_id)

        resolved = result.dispute
        assert resolved.status == DisputeStatus.RESOLVED
        assert resolved.resolution == "partial_refund"
        assert resolved.resolution_amount == Decimal("300.00")
        assert resolved.resolved_by == "buyer_accepted"
        assert resolved.closed_at is not None

        events = await _events(async_test_session, dispute.id)
        assert events[-1].event_type == EVENT_BUYER_ACCEPTED
        assert events[-1].event_metadata == {"resolution": "partial_refund", "amount": "300.00"}

    @pytest.mark.asyncio
    async def test_accept_requires_a_proposal(self, service, make_order, buyer_id, seller_id):
        dispute = await self._responded(
            service, make_order, buyer_id, seller_id, SellerResponseType.REJECT
        )
        result = await service.buyer_accept_resolution(dispute.id, buyer_id)
        assert result.error_code == "VALIDATION_ERROR"
        assert result.error_message == "Seller did not propose a resolution"

    @pytest.mark.asyncio
    async def test_accept_requires_seller_response(self, service, make_order, buyer_id):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        result = await service.buyer_accept_resolution(dispute.id, buyer_id)
        assert result.error_message == "No pending resolution to accept"

    @pytest.mark.asyncio
    async def test_seller_cannot_accept_for_buyer(self, service, make_order, buyer_id, seller_id):
        dispute = await self._responded(
            service, make_order, buyer_id, seller_id, SellerResponseType.PROPOSE_RESOLUTION
        )
        result = await service.buyer_accept_resolution(dispute.id, seller_id)
        assert result.error_code == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_reject_then_escalate_then_close(
        self, service, async_test_session, make_order, buyer_id, seller_id
    ):
        dispute = await self._responded(
            service, make_order, buyer_id, seller_id, SellerResponseType.REJECT
        )

        rejected = await service.buyer_reject_resolution(
            dispute.id, buyer_id, "The photos clearly show transit damage."
        )
        assert rejected.dispute.status == DisputeStatus.REJECTED

        escalated = await service.escalate_dispute(
            dispute.id, buyer_id, "Seller refuses to engage with evidence."
        )
        assert escalated.dispute.status == DisputeStatus.ESCALATED
        assert escalated.dispute.is_escalated is True
        assert escalated.dispute.priority_level == PriorityLevel.URGENT
        assert escalated.dispute.escalation_reason == "Seller refuses to engage with evidence."
        assert escalated.dispute.escalated_at is not None

        closed = await service.close_dispute(dispute.id, seller_id)
        assert closed.dispute.status == DisputeStatus.CLOSED
        assert closed.dispute.closed_at is not None

        events = await _events(async_test_session, dispute.id)
        assert [e.event_type for e in events] == [
            EVENT_DISPUTE_CREATED,
            EVENT_SELLER_RESPONDED,
            EVENT_BUYER_REJECTED,
            EVENT_ESCALATED,
            EVENT_CLOSED,
        ]
        assert events[2].event_metadata == {"reason": "The photos clearly show transit damage."}
        assert events[4].actor_type == ActorType.SELLER
        assert events[4].from_status == DisputeStatus.ESCALATED

    @pytest.mark.asyncio
    async def test_reject_requires_seller_response(self, service, make_order, buyer_id):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        result = await service.buyer_reject_resolution(
            dispute.id, buyer_id, "Nothing to reject yet, but trying."
        )
        assert result.error_message == "No pending resolution to reject"


# ---------------------------------------------------------------------------
# Escalation / close
# ---------------------------------------------------------------------------


class TestEscalateAndClose:
    @pytest.mark.asyncio
    async def test_cannot_escalate_open_dispute(self, service, make_order, buyer_id):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        result = await service.escalate_dispute(
            dispute.id, buyer_id, "Want the platform involved now."
        )
        assert result.error_code == "INVALID_TRANSITION"

    @pytest.mark.asyncio
    async def test_seller_escalates_from_review(
        self, service, async_test_session, make_order, buyer_id, seller_id
    ):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        await service.mark_as_under_review(dispute.id, seller_id)

        result = await service.escalate_dispute(
            dispute.id, seller_id, "Buyer claim looks fraudulent to us."
        )

        assert result.dispute.status == DisputeStatus.ESCALATED
        events = await _events(async_test_session, dispute.id)
        assert events[-1].actor_type == ActorType.SELLER
        assert isinstance(events[-1].event_metadata, dict)

    @pytest.mark.asyncio
    async def test_stranger_cannot_escalate_or_close(self, service, make_order, buyer_id):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        dispute_id = dispute.id
        stranger = uuid.uuid4()

        assert (await service.close_dispute(dispute_id, stranger)).error_code == "FORBIDDEN"
        assert (
            await service.escalate_dispute(dispute_id, stranger, "Not my dispute at all.")
        ).error_code == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_closed_dispute_is_final(self, service, make_order, buyer_id):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        await service.close_dispute(dispute.id, buyer_id)

        result = await service.close_dispute(dispute.id, buyer_id)

        assert result.error_code == "INVALID_TRANSITION"


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------


class TestEvidence:
    @pytest.mark.asyncio
    async def test_appends_after_existing_items(
        self, service, async_test_session, make_order, buyer_id
    ):
        dispute = await _open_dispute(
            service, await make_order(), buyer_id, evidence=[_evidence(1)]
        )

        result = await service.add_evidence(dispute.id, buyer_id, [_evidence(2), _evidence(3)])
        assert result.success
        result = await service.add_evidence(dispute.id, buyer_id, [_evidence(4)])

        assert [e.id for e in result.dispute.evidence] == ["ev-1", "ev-2", "ev-3", "ev-4"]
        events = await _events(async_test_session, dispute.id)
        assert [e.event_type for e in events[-2:]] == [EVENT_EVIDENCE_ADDED] * 2
        assert events[-2].event_metadata == {"count": 2}
        assert events[-2].from_status is None

    @pytest.mark.asyncio
    async def test_only_buyer_adds_evidence(self, service, make_order, buyer_id, seller_id):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        result = await service.add_evidence(dispute.id, seller_id, [_evidence(1)])
        assert result.error_code == "FORBIDDEN"
        assert result.error_message == "Only the buyer can add evidence"

    @pytest.mark.asyncio
    async def test_evidence_locked_after_resolution(
        self, service, make_order, buyer_id, seller_id
    ):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        dispute_id = dispute.id
        await service.seller_respond(
            dispute_id,
            seller_id,
            response_type=SellerResponseType.ACCEPT_RESPONSIBILITY,
            response="Our mistake, refunding in full.",
        )

        result = await service.add_evidence(dispute_id, buyer_id, [_evidence(9)])

        assert result.error_message == "Cannot add evidence to a closed dispute"
        reloaded = await service.repo.get_dispute(dispute_id)
        assert reloaded.evidence == []


class TestRefusalsKeepLoadedDisputes:
    @pytest.mark.asyncio
    async def test_stranger_close_leaves_dispute_readable(self, service, make_order, buyer_id):
        dispute = await _open_dispute(service, await make_order(), buyer_id)

        result = await service.close_dispute(dispute.id, uuid.uuid4())

        assert result.error_code == "FORBIDDEN"
        assert dispute.status == DisputeStatus.OPEN
        assert dispute.closed_at is None

    @pytest.mark.asyncio
    async def test_invalid_transition_leaves_dispute_readable(
        self, service, make_order, buyer_id, seller_id
    ):
        dispute = await _open_dispute(service, await make_order(), buyer_id)

        result = await service.escalate_dispute(dispute.id, seller_id, "Escalating straight away.")

        assert result.error_code == "INVALID_TRANSITION"
        assert dispute.status == DisputeStatus.OPEN
        assert dispute.priority_level == PriorityLevel.MEDIUM
        again = await service.mark_as_under_review(dispute.id, seller_id)
        assert again.success
        assert dispute.status == DisputeStatus.UNDER_REVIEW


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestReads:
    @pytest.mark.asyncio
    async def test_get_dispute_returns_events_newest_first(
        self, service, make_order, buyer_id, seller_id
    ):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        await service.mark_as_under_review(dispute.id, seller_id)

        result = await service.get_dispute(dispute.id, seller_id)

        assert result.success
        assert [e.event_type for e in result.events] == [
            EVENT_DISPUTE_VIEWED,
            EVENT_DISPUTE_CREATED,
        ]

    @pytest.mark.asyncio
    async def test_get_dispute_caps_events(self, service, make_order, buyer_id):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        for n in range(3):
            await service.add_evidence(dispute.id, buyer_id, [_evidence(n)])

        with patch("src.modules.dispute.service.settings") as mock_settings:
            mock_settings.dispute_events_limit = 2
            result = await service.get_dispute(dispute.id, buyer_id)
        history = await service.get_dispute_history(dispute.id, buyer_id)

        assert len(result.events) == 2
        assert len(history.events) == 4
        assert isinstance(history.events[0].metadata, EvidenceAddedMetadata)

    @pytest.mark.asyncio
    async def test_non_party_sees_not_found(self, service, make_order, buyer_id):
        order = await make_order()
        dispute = await _open_dispute(service, order, buyer_id)
        stranger = uuid.uuid4()

        for result in (
            await service.get_dispute(dispute.id, stranger),
            await service.get_dispute_history(dispute.id, stranger),
            await service.get_dispute_by_order(order.id, stranger),
        ):
            assert result.error_code == "NOT_FOUND"
            assert result.error_message == "Dispute not found"

    @pytest.mark.asyncio
    async def test_order_without_dispute(self, service, make_order, buyer_id):
        order = await make_order()
        result = await service.get_dispute_by_order(order.id, buyer_id)
        assert result.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_return_request_summary_is_attached(
        self, service, async_test_session, make_order, buyer_id
    ):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        async_test_session.add(
            ReturnRequest(return_number="RET-2026-0001", dispute_id=dispute.id, status="requested")
        )
        await async_test_session.commit()

        result = await service.get_dispute(dispute.id, buyer_id)

        assert result.dispute.return_request.return_number == "RET-2026-0001"

    @pytest.mark.asyncio
    async def test_reason_event_metadata_is_typed(self, service, make_order, buyer_id, seller_id):
        dispute = await _open_dispute(service, await make_order(), buyer_id)
        await service.mark_as_under_review(dispute.id, seller_id)
        await service.escalate_dispute(dispute.id, seller_id, "Needs platform arbitration.")

        history = await service.get_dispute_history(dispute.id, buyer_id)

        assert isinstance(history.events[0].metadata, ReasonMetadata)
        assert history.events[0].metadata.reason == "Needs platform arbitration."


async def _page(call):
    result = await call
    assert result.success, result.error_message
    return result.page


async def _stats(call):
    result = await call
    assert result.success, result.error_message
    return result.stats


class TestListing:
    @pytest.mark.asyncio
    async def test_seller_inbox_sorted_by_priority_rank(
        self, service, make_order, buyer_id, seller_id
    ):
        medium = await _open_dispute(
            service, await make_order(total_price=Decimal("100.00")), buyer_id
        )
        urgent = await _open_dispute(
            service, await make_order(total_price=Decimal("20000.00")), buyer_id
        )
        high = await _open_dispute(
            service, await make_order(total_price=Decimal("6000.00")), buyer_id
        )

        seller_page = await _page(service.get_seller_disputes(seller_id))
        buyer_page = await _page(service.get_buyer_disputes(buyer_id))

        assert [d.id for d in seller_page.items] == [urgent.id, high.id, medium.id]
        assert [d.id for d in buyer_page.items] == [high.id, urgent.id, medium.id]
        assert seller_page.total == buyer_page.total == 3

    @pytest.mark.asyncio
    async def test_filters_and_pagination(self, service, make_order, buyer_id, seller_id):
        await _open_dispute(service, await make_order(item_name="Brass valve"), buyer_id)
        await _open_dispute(
            service,
            await make_order(total_price=Decimal("6000.00")),
            buyer_id,
            reason=DisputeReason.WRONG_ITEM,
        )
        third = await _open_dispute(service, await make_order(), buyer_id)
        await service.mark_as_under_review(third.id, seller_id)

        def buyer(**filters):
            return _page(service.get_buyer_disputes(buyer_id, DisputeFilters(**filters)))

        def seller(**filters):
            return _page(service.get_seller_disputes(seller_id, DisputeFilters(**filters)))

        by_search = await buyer(search="brass")
        assert [d.item_name for d in by_search.items] == ["Brass valve"]

        assert (await buyer(search="bolt")).total == 3
        assert (await seller(search="acme")).total == 3

        by_status = await seller(status=DisputeStatus.UNDER_REVIEW)
        assert [d.id for d in by_status.items] == [third.id]

        assert (await buyer(reason=DisputeReason.WRONG_ITEM)).total == 1
        assert (await buyer(priority=PriorityLevel.HIGH)).total == 1
        assert (await buyer(date_from=datetime.now(UTC) + timedelta(days=1))).total == 0

        page_two = await buyer(page=2, limit=2)
        assert page_two.total == 3
        assert len(page_two.items) == 1
        assert (page_two.page, page_two.limit) == (2, 2)

    @pytest.mark.asyncio
    async def test_listing_is_scoped_to_party(self, service, make_order, buyer_id):
        await _open_dispute(service, await make_order(), buyer_id)
        other = await _page(service.get_buyer_disputes(uuid.uuid4()))
        assert other.total == 0
        assert other.items == []


class TestStats:
    @pytest.mark.asyncio
    async def test_buyer_and_seller_stats(self, service, make_order, buyer_id, seller_id):
        await _open_dispute(service, await make_order(), buyer_id)
        resolved = await _open_dispute(service, await make_order(), buyer_id)
        await service.seller_respond(
            resolved.id,
            seller_id,
            response_type=SellerResponseType.ACCEPT_RESPONSIBILITY,
            response="Our mistake, refunding in full.",
        )

        buyer_stats = await _stats(service.get_buyer_dispute_stats(buyer_id))
        seller_stats = await _stats(service.get_seller_dispute_stats(seller_id))

        assert buyer_stats == seller_stats
        assert buyer_stats.total == 2
        assert buyer_stats.open == 1
        assert buyer_stats.resolved == 1
        assert buyer_stats.resolution_rate == 50
        assert buyer_stats.avg_resolution_days == 0.0

    @pytest.mark.asyncio
    async def test_stats_for_unknown_party(self, service):
        stats = await _stats(service.get_seller_dispute_stats(uuid.uuid4()))
        assert stats.total == 0
        assert stats.resolution_rate == 0


# ---------------------------------------------------------------------------
# Infrastructure failures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db():
    db = AsyncMock()
    db.add = MagicMock()
    db.info = {}
    db.new = set()
    db.dirty = set()
    db.deleted = set()
    db.is_active = True
    return db


class TestInfrastructureFailures:
    @pytest.mark.asyncio
    async def test_database_error_becomes_generic_failure(self, mock_db, caplog):
        svc = DisputeService(mock_db)
        svc.repo.get_order = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("connection lost"))
        )

        result = await svc.create_dispute(
            order_id=uuid.uuid4(),
            buyer_id=uuid.uuid4(),
            reason=DisputeReason.OTHER,
            description=DESCRIPTION,
        )

        assert not result.success
        assert result.error_code == "INTERNAL_ERROR"
        assert result.error_message == "Failed to create dispute"
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_awaited()
        assert "Failed to create dispute" in caplog.text

    @pytest.mark.asyncio
    async def test_refusal_before_any_write_skips_rollback(self, mock_db):
        svc = DisputeService(mock_db)
        svc.repo.get_dispute = AsyncMock(return_value=None)

        result = await svc.close_dispute(uuid.uuid4(), uuid.uuid4())

        assert result.error_code == "NOT_FOUND"
        mock_db.rollback.assert_not_awaited()
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refusal_after_failed_flush_rolls_back(self, mock_db):
        svc = DisputeService(mock_db)

        async def failed_flush(_dispute_id):
            mock_db.is_active = False
            return None

        svc.repo.get_dispute = AsyncMock(side_effect=failed_flush)

        result = await svc.close_dispute(uuid.uuid4(), uuid.uuid4())

        assert result.error_code == "NOT_FOUND"
        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_listing_error_becomes_generic_failure(self, mock_db, caplog):
        svc = DisputeService(mock_db)
        svc.repo.list_disputes = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("timeout"))
        )

        result = await svc.get_buyer_disputes(uuid.uuid4())

        assert result.success is False
        assert result.error_code == "INTERNAL_ERROR"
        assert result.error_message == "Failed to fetch disputes"
        assert result.page is None
        mock_db.rollback.assert_awaited_once()
        assert "Failed to fetch disputes" in caplog.text

    @pytest.mark.asyncio
    async def test_stats_error_becomes_generic_failure(self, mock_db):
        svc = DisputeService(mock_db)
        svc.repo.status_counts = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("timeout"))
        )

        result = await svc.get_seller_dispute_stats(uuid.uuid4())

        assert result.success is False
        assert result.error_code == "INTERNAL_ERROR"
        assert result.error_message == "Failed to fetch dispute statistics"
        assert result.stats is None
        mock_db.rollback.assert_awaited_once()
