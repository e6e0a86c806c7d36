"""VIP plans, orders, redeem codes and per-user VIP status."""

from datetime import datetime, UTC
from decimal import Decimal
from enum import Enum
from sqlalchemy import (Column, Integer, String, Numeric, ForeignKey, DateTime, Text, Boolean,
                        Index, UniqueConstraint)
from sqlalchemy.orm import relationship

from economy.core.base_model import Base
from economy.models.credit import RedeemCodeStatus


class VipOrderStatus(str, Enum):
    """Order lifecycle states."""
    PENDING = "pending"
    IN_REVIEW = "in_review"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    PAID = "paid"  # manual grant by an admin


class VipPlan(Base):
    __tablename__ = "vip_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=Decimal('0.00'))
    original_price = Column(Numeric(10, 2), nullable=True)
    duration_months = Column(Integer, nullable=False)
    features = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))


class VipOrder(Base):
    __tablename__ = "vip_orders"
    __table_args__ = (
        Index("ix_vip_orders_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_no = Column(String(40), unique=True, nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    plan_id = Column(Integer, ForeignKey("vip_plans.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=VipOrderStatus.PENDING.value, index=True)
    payment_method = Column(String(50), nullable=True)
    user_submitted_transaction_id = Column(String(255), nullable=True)
    admin_notes = Column(Text, nullable=True)
    auto_renew = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    expire_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(String(64), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    plan = relationship("VipPlan")


class VipStatus(Base):
    """
    Per-user VIP state.

    ``is_vip`` is informational; whether VIP is active is always derived from
    ``vip_expire_date`` at evaluation time.
    """
    __tablename__ = "user_vip_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    is_vip = Column(Boolean, nullable=False, default=False)
    vip_expire_date = Column(DateTime(timezone=True), nullable=True)
    auto_renew = Column(Boolean, nullable=False, default=False)
    last_renewal_date = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    user = relationship("User", back_populates="vip_status")


class VipRedeemCodeType(str, Enum):
    """What a VIP redeem code grants."""
    PLAN = "plan"  # the plan's duration in months
    DURATION = "duration"  # duration_months
    DAYS = "days"  # days


class VipRedeemCode(Base):
    """Admin-issued code that extends VIP. Status values are shared with credit codes."""
    __tablename__ = "vip_redeem_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(32), unique=True, nullable=False, index=True)
    code_type = Column(String(20), nullable=False)
    plan_id = Column(Integer, ForeignKey("vip_plans.id"), nullable=True)
    duration_months = Column(Integer, nullable=True)
    days = Column(Integer, nullable=True)
    max_uses = Column(Integer, nullable=False, default=1)
    used_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=RedeemCodeStatus.ACTIVE.value)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(64), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    plan = relationship("VipPlan")


class VipRedeemHistory(Base):
    """One row per successful redemption; a user redeems a given code once."""
    __tablename__ = "vip_redeem_history"
    __table_args__ = (
        UniqueConstraint("code_id", "user_id", name="uq_vip_redeem_history_code_user"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    code_id = Column(Integer, ForeignKey("vip_redeem_codes.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    months = Column(Integer, nullable=False, default=0)
    days = Column(Integer, nullable=False, default=0)
    vip_expire_date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
