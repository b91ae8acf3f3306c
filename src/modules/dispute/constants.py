"""Dispute state machine transitions, event types, and SLA defaults."""

from __future__ import annotations

from decimal import Decimal

from src.models.enums import (
    DisputeStatus,
    MarketplaceOrderStatus,
    PriorityLevel,
    ResolutionType,
)

# Valid transitions: from_status -> allowed to_statuses
VALID_DISPUTE_TRANSITIONS: dict[DisputeStatus, frozenset[DisputeStatus]] = {
    DisputeStatus.OPEN: frozenset({DisputeStatus.UNDER_REVIEW, DisputeStatus.CLOSED}),
    DisputeStatus.UNDER_REVIEW: frozenset(
        {DisputeStatus.SELLER_RESPONDED, DisputeStatus.ESCALATED}
    ),
    DisputeStatus.SELLER_RESPONDED: frozenset(
        {DisputeStatus.RESOLVED, DisputeStatus.REJECTED, DisputeStatus.ESCALATED}
    ),
    DisputeStatus.RESOLVED: frozenset({DisputeStatus.CLOSED}),
    DisputeStatus.REJECTED: frozenset({DisputeStatus.ESCALATED, DisputeStatus.CLOSED}),
    DisputeStatus.ESCALATED: frozenset({DisputeStatus.RESOLVED, DisputeStatus.CLOSED}),
    DisputeStatus.CLOSED: frozenset(),
}

def check_transition_table(table: dict[DisputeStatus, frozenset[DisputeStatus]]) -> None:
    missing = set(DisputeStatus) - set(table)
    if missing:
        raise RuntimeError(
            f"DisputeStatus values without a transition entry: {sorted(missing)}"
        )


check_transition_table(VALID_DISPUTE_TRANSITIONS)

# Terminal statuses (no further transitions possible)
TERMINAL_STATUSES: frozenset[DisputeStatus] = frozenset(
    status for status, targets in VALID_DISPUTE_TRANSITIONS.items() if not targets
)

# At most one dispute per order may sit in one of these
ACTIVE_STATUSES: frozenset[DisputeStatus] = frozenset(
    {
        DisputeStatus.OPEN,
        DisputeStatus.UNDER_REVIEW,
        DisputeStatus.SELLER_RESPONDED,
        DisputeStatus.ESCALATED,
    }
)

# Seller may respond only while the case is still with them
RESPONDABLE_STATUSES: frozenset[DisputeStatus] = frozenset(
    {DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW}
)

# Evidence is frozen once the case is settled
EVIDENCE_LOCKED_STATUSES: frozenset[DisputeStatus] = frozenset(
    {DisputeStatus.RESOLVED, DisputeStatus.CLOSED}
)

# Counted as "resolved" by the stats rollup
SETTLED_STATUSES: frozenset[DisputeStatus] = frozenset(
    {DisputeStatus.RESOLVED, DisputeStatus.CLOSED}
)

DISPUTABLE_ORDER_STATUSES: frozenset[MarketplaceOrderStatus] = frozenset(
    {MarketplaceOrderStatus.DELIVERED, MarketplaceOrderStatus.CLOSED}
)

# Event type strings for the audit log
EVENT_DISPUTE_CREATED = "DISPUTE_CREATED"
EVENT_DISPUTE_VIEWED = "DISPUTE_VIEWED"
EVENT_SELLER_RESPONDED = "SELLER_RESPONDED"
EVENT_BUYER_ACCEPTED = "BUYER_ACCEPTED"
EVENT_BUYER_REJECTED = "BUYER_REJECTED"
EVENT_ESCALATED = "ESCALATED"
EVENT_CLOSED = "CLOSED"
EVENT_EVIDENCE_ADDED = "EVIDENCE_ADDED"

# Resolved-by provenance
RESOLVED_BY_SELLER = "seller_accepted"
RESOLVED_BY_BUYER = "buyer_accepted"

DEFAULT_ACCEPTED_RESOLUTION = ResolutionType.FULL_REFUND.value

# Order flag raised when a dispute is filed
ORDER_EXCEPTION_DISPUTE_FILED = "dispute_filed"

# Dispute number format: DSP-<year>-<zero padded sequence>
DISPUTE_NUMBER_PREFIX = "DSP"
DISPUTE_NUMBER_MIN_DIGITS = 4

# Priority thresholds on order total
PRIORITY_URGENT_ABOVE = Decimal("10000")
PRIORITY_HIGH_ABOVE = Decimal("5000")

# Sort rank for seller inboxes (higher first)
PRIORITY_RANK: dict[PriorityLevel, int] = {
    PriorityLevel.LOW: 0,
    PriorityLevel.MEDIUM: 1,
    PriorityLevel.HIGH: 2,
    PriorityLevel.URGENT: 3,
}
