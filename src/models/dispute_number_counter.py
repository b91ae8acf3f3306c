"""DisputeNumberCounter model: per-year allocator row for dispute numbers."""

from sqlalchemy import Integer
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base


class DisputeNumberCounter(Base):
    __tablename__ = "dispute_number_counters"

    year: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False)
