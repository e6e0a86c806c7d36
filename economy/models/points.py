"""Points, daily check-in and exchange models."""

from datetime import datetime, UTC
from enum import Enum
from sqlalchemy import (Column, Integer, String, Numeric, ForeignKey, DateTime, Date, Text, Boolean,
                        UniqueConstraint, Index, CheckConstraint)
from sqlalchemy.orm import relationship

from economy.core.base_model import Base


class PointTransactionType(str, Enum):
    EARN = "earn"
    SPEND = "spend"


class PointSource(str, Enum):
    CHECKIN = "checkin"
    EXCHANGE = "exchange"
    TASK = "task"
    ADMIN = "admin"
    REFERRAL = "referral"


class PointAccount(Base):
    """Per-user points balance and check-in streak."""
    __tablename__ = "user_points"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_user_points_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    balance = Column(Integer, nullable=False, default=0)
    total_earned = Column(Integer, nullable=False, default=0)
    total_spent = Column(Integer, nullable=False, default=0)
    consecutive_days = Column(Integer, nullable=False, default=0)
    last_check_in_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    user = relationship("User", back_populates="point_account")


class PointTransaction(Base):
    """Append-only points ledger entry. ``amount`` is signed."""
    __tablename__ = "point_transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_point_transactions_idempotency"),
        Index("ix_point_transactions_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    transaction_type = Column(String(20), nullable=False)
    amount = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    source = Column(String(20), nullable=False)
    related_id = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    idempotency_key = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))


class CheckInRecord(Base):
    """One row per user per business day."""
    __tablename__ = "user_check_ins"
    __table_args__ = (
        UniqueConstraint("user_id", "check_in_date", name="uq_user_check_ins_user_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    check_in_date = Column(Date, nullable=False)
    points = Column(Integer, nullable=False)
    consecutive_days = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))


class CheckInRule(Base):
    """Streak threshold -> points awarded. The highest active threshold not above the streak wins."""
    __tablename__ = "check_in_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    consecutive_days = Column(Integer, nullable=False)
    points = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))


class PointExchangeRate(Base):
    """``points_required`` points buy ``credits_received`` credits."""
    __tablename__ = "point_exchange_rates"
    __table_args__ = (
        CheckConstraint("points_required > 0", name="ck_point_exchange_rates_points_positive"),
        CheckConstraint("credits_received > 0", name="ck_point_exchange_rates_credits_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    points_required = Column(Integer, nullable=False)
    credits_received = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))


class PointExchangeHistory(Base):
    __tablename__ = "point_exchange_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    rate_id = Column(Integer, ForeignKey("point_exchange_rates.id"), nullable=True)
    points_spent = Column(Integer, nullable=False)
    credits_received = Column(Integer, nullable=False)
    exchange_rate = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
