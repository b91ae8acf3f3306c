"""Structured outcomes returned by the dispute lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass, field

from src.exceptions import AppException
from src.models.dispute import Dispute
from src.modules.dispute.events import DisputeEventView
from src.modules.dispute.stats import DisputeStats


@dataclass
class DisputePage:
    items: list[Dispute]
    total: int
    page: int
    limit: int


@dataclass
class DisputeResult:
    """Either what the operation produced or the error that stopped it.

    Business-rule failures never escape the lifecycle manager as exceptions;
    they travel here so the HTTP layer can map ``error.code`` to a response.
    Single-dispute operations fill ``dispute`` (and ``events`` for detail
    reads); listings fill ``page`` and rollups fill ``stats``.
    """

    success: bool
    dispute: Dispute | None = None
    events: list[DisputeEventView] = field(default_factory=list)
    page: DisputePage | None = None
    stats: DisputeStats | None = None
    error: AppException | None = None

    @classmethod
    def ok(
        cls, dispute: Dispute | None = None, events: list[DisputeEventView] | None = None
    ) -> DisputeResult:
        return cls(success=True, dispute=dispute, events=events or [])

    @classmethod
    def of_page(cls, page: DisputePage) -> DisputeResult:
        return cls(success=True, page=page)

    @classmethod
    def of_stats(cls, stats: DisputeStats) -> DisputeResult:
        return cls(success=True, stats=stats)

    @classmethod
    def failure(cls, error: AppException) -> DisputeResult:
        return cls(success=False, error=error)

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error else None

    @property
    def error_message(self) -> str | None:
        return self.error.message if self.error else None
