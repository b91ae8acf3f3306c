"""Read-only dispute rollups: counts per status, resolution rate and time."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from src.models.enums import DisputeStatus
from src.modules.dispute.constants import SETTLED_STATUSES
from src.modules.dispute.priority import as_utc

_SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class DisputeStats:
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


def _round_half_up(value: float, ndigits: int = 0) -> float:
    # round() is banker's rounding; rollups report 12.5 as 13
    factor = 10**ndigits
    return math.floor(value * factor + 0.5) / factor


def summarize_disputes(
    status_counts: Mapping[DisputeStatus, int],
    resolution_spans: Iterable[tuple[datetime, datetime]],
) -> DisputeStats:
    """Build stats from per-status counts and (created_at, closed_at) pairs.

    ``resolution_spans`` should only cover resolved/closed disputes that carry
    a ``closed_at``; the caller filters them.
    """
    counts = {status: status_counts.get(status, 0) for status in DisputeStatus}
    total = sum(counts.values())
    settled = sum(counts[status] for status in SETTLED_STATUSES)
    resolution_rate = int(_round_half_up(settled / total * 100)) if total else 0

    durations = [
        (as_utc(closed_at) - as_utc(created_at)).total_seconds() / _SECONDS_PER_DAY
        for created_at, closed_at in resolution_spans
    ]
    avg_resolution_days = (
        _round_half_up(sum(durations) / len(durations), 1) if durations else 0.0
    )

    return DisputeStats(
        total=total,
        open=counts[DisputeStatus.OPEN],
        under_review=counts[DisputeStatus.UNDER_REVIEW],
        seller_responded=counts[DisputeStatus.SELLER_RESPONDED],
        resolved=counts[DisputeStatus.RESOLVED],
        rejected=counts[DisputeStatus.REJECTED],
        escalated=counts[DisputeStatus.ESCALATED],
        closed=counts[DisputeStatus.CLOSED],
        avg_resolution_days=avg_resolution_days,
        resolution_rate=resolution_rate,
    )
