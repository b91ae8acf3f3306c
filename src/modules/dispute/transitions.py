"""Dispute transition validation over the static transition table."""

from __future__ import annotations

from src.exceptions import InvalidTransitionException
from src.models.enums import DisputeStatus
from src.modules.dispute.constants import VALID_DISPUTE_TRANSITIONS


def is_valid_transition(current_status: DisputeStatus, target_status: DisputeStatus) -> bool:
    return target_status in VALID_DISPUTE_TRANSITIONS.get(current_status, frozenset())


def assert_transition(current_status: DisputeStatus, target_status: DisputeStatus) -> None:
    """Raise InvalidTransitionException unless the table allows the change."""
    if not is_valid_transition(current_status, target_status):
        allowed = sorted(s.value for s in VALID_DISPUTE_TRANSITIONS.get(current_status, ()))
        raise InvalidTransitionException(
            f"Cannot transition from '{current_status.value}' to '{target_status.value}'. "
            f"Allowed transitions: {allowed}"
        )


def assert_path(current_status: DisputeStatus, *steps: DisputeStatus) -> DisputeStatus:
    """Validate a walk through several table edges and return the final status.

    Used where one operation moves a dispute across more than one edge but
    records a single status change (e.g. a seller answering an unopened case).
    """
    status = current_status
    for step in steps:
        assert_transition(status, step)
        status = step
    return status
