"""Per-identifier daily generation counters."""

from datetime import datetime, UTC
from sqlalchemy import Column, Integer, String, Date, DateTime, UniqueConstraint

from economy.core.base_model import Base


class GenerationRateLimit(Base):
    """
    One row per (identifier, day).

    ``identifier`` is a user id for signed-in callers and a client IP otherwise.
    Rows are never deleted; old days are history.
    """
    __tablename__ = "generation_rate_limits"
    __table_args__ = (
        UniqueConstraint("identifier", "day", name="uq_generation_rate_limits_identifier_day"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    identifier = Column(String(128), nullable=False)
    day = Column(Date, nullable=False)
    count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
