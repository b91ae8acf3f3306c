"""Priority and deadline derivation for new disputes."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from src.config import settings
from src.models.enums import DisputeReason, PriorityLevel
from src.modules.dispute.constants import PRIORITY_HIGH_ABOVE, PRIORITY_URGENT_ABOVE


def calculate_priority(total_price: Decimal, reason: DisputeReason) -> PriorityLevel:
    """Derive priority from the order value.

    ``reason`` is accepted for future severity weighting; damaged goods and
    quality issues currently land on MEDIUM like every other reason.
    """
    if total_price > PRIORITY_URGENT_ABOVE:
        return PriorityLevel.URGENT
    if total_price > PRIORITY_HIGH_ABOVE:
        return PriorityLevel.HIGH
    if reason in (DisputeReason.DAMAGED_GOODS, DisputeReason.QUALITY_ISSUE):
        return PriorityLevel.MEDIUM
    return PriorityLevel.MEDIUM


def calculate_response_deadline(created_at: datetime) -> datetime:
    return created_at + timedelta(hours=settings.dispute_response_hours)


def calculate_resolution_deadline(created_at: datetime) -> datetime:
    return created_at + timedelta(days=settings.dispute_resolution_days)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def dispute_window_closes_at(delivered_at: datetime) -> datetime:
    return as_utc(delivered_at) + timedelta(days=settings.dispute_window_days)


def is_within_dispute_window(delivered_at: datetime | None, now: datetime) -> bool:
    """Orders without a delivery timestamp are always inside the window."""
    if delivered_at is None:
        return True
    return as_utc(now) <= dispute_window_closes_at(delivered_at)
