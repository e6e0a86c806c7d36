"""Credit-related database models."""

from datetime import datetime, UTC
from enum import Enum
from sqlalchemy import (Column, Integer, String, ForeignKey, DateTime, Text,
                        UniqueConstraint, Index, CheckConstraint)
from sqlalchemy.orm import relationship

from economy.core.base_model import Base


class CreditTransactionType(str, Enum):
    """Types of credit transactions."""
    RECHARGE = "recharge"
    CONSUME = "consume"
    REFUND = "refund"
    EXCHANGE = "exchange"
    ADMIN_ADJUST = "admin_adjust"
    REDEEM = "redeem"
    REFERRAL_REWARD = "referral_reward"
    VIP_BONUS = "vip_bonus"


class CreditAccount(Base):
    """Per-user generation credit balance. ``balance == total_recharged - total_consumed``."""
    __tablename__ = "user_credits"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_user_credits_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    balance = Column(Integer, nullable=False, default=0)
    total_recharged = Column(Integer, nullable=False, default=0)
    total_consumed = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    user = relationship("User", back_populates="credit_account")


class CreditTransaction(Base):
    """Append-only credit ledger entry. ``amount`` is signed."""
    __tablename__ = "credit_transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_credit_transactions_idempotency"),
        Index("ix_credit_transactions_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    transaction_type = Column(String(20), nullable=False)
    amount = Column(Integer, nullable=False)
    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    related_id = Column(String(100), nullable=True)
    related_type = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    idempotency_key = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))


class RedeemCodeStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    DISABLED = "disabled"


class CreditRedeemCode(Base):
    """Admin-issued code worth a fixed number of credits."""
    __tablename__ = "credit_redeem_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(32), unique=True, nullable=False, index=True)
    credits = Column(Integer, nullable=False)
    max_uses = Column(Integer, nullable=False, default=1)
    used_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=RedeemCodeStatus.ACTIVE.value)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    description = Column(Text, nullable=True)
    created_by = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))


class CreditRedeemHistory(Base):
    """One row per successful redemption; a user redeems a given code once."""
    __tablename__ = "credit_redeem_history"
    __table_args__ = (
        UniqueConstraint("code_id", "user_id", name="uq_credit_redeem_history_code_user"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    code_id = Column(Integer, ForeignKey("credit_redeem_codes.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    credits = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
