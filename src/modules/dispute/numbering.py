"""Year-scoped dispute number allocation (DSP-YYYY-NNNN)."""

from __future__ import annotations

import logging

from sqlalchemy import insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.dispute import Dispute
from src.models.dispute_number_counter import DisputeNumberCounter
from src.modules.dispute.constants import DISPUTE_NUMBER_MIN_DIGITS, DISPUTE_NUMBER_PREFIX

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def dispute_number_prefix(year: int) -> str:
    return f"{DISPUTE_NUMBER_PREFIX}-{year}-"


def format_dispute_number(year: int, sequence: int) -> str:
    return f"{dispute_number_prefix(year)}{sequence:0{DISPUTE_NUMBER_MIN_DIGITS}d}"


def parse_dispute_sequence(dispute_number: str) -> int | None:
    """Return the numeric suffix of a dispute number, or None if malformed."""
    parts = dispute_number.split("-")
    if len(parts) != 3 or parts[0] != DISPUTE_NUMBER_PREFIX:
        return None
    try:
        return int(parts[2])
    except ValueError:
        return None


class DisputeNumberGenerator:
    """Hands out the next number for a year through a locked counter row.

    The counter is bumped with ``UPDATE ... RETURNING``; on PostgreSQL the
    row lock is held until the surrounding transaction ends, so concurrent
    creations queue behind each other instead of reading the same maximum.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def next_number(self, year: int) -> str:
        await self._ensure_counter(year)
        result = await self.db.execute(
            update(DisputeNumberCounter)
            .where(DisputeNumberCounter.year == year)
            .values(last_value=DisputeNumberCounter.last_value + 1)
            .returning(DisputeNumberCounter.last_value)
            .execution_options(synchronize_session=False)
        )
        sequence = result.scalar_one()
        return format_dispute_number(year, sequence)

    async def _ensure_counter(self, year: int) -> None:
        existing = await self.db.execute(
            select(DisputeNumberCounter.year).where(DisputeNumberCounter.year == year)
        )
        if existing.scalar_one_or_none() is not None:
            return

        seed = await self._highest_existing_sequence(year)
        insert_fn = _UPSERT_INSERTS.get(self.db.get_bind().dialect.name)
        if insert_fn is None:
            await self.db.execute(
                insert(DisputeNumberCounter).values(year=year, last_value=seed)
            )
        else:
            await self.db.execute(
                insert_fn(DisputeNumberCounter)
                .values(year=year, last_value=seed)
                .on_conflict_do_nothing(index_elements=["year"])
            )
        logger.info("Initialised dispute number counter for %s at %s", year, seed)

    async def _highest_existing_sequence(self, year: int) -> int:
        # Parsed in Python: string ordering breaks past 9999.
        result = await self.db.execute(
            select(Dispute.dispute_number).where(
                Dispute.dispute_number.startswith(dispute_number_prefix(year))
            )
        )
        sequences = [
            seq
            for seq in (parse_dispute_sequence(n) for n in result.scalars().all())
            if seq is not None
        ]
        return max(sequences, default=0)
