"""Referral codes, inviter/invitee relations, rewards and campaigns."""

from datetime import datetime, UTC
from enum import Enum
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Index

from economy.core.base_model import Base


class ReferralStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class ReferralRewardType(str, Enum):
    INVITER = "inviter"
    INVITEE = "invitee"


class ReferralCode(Base):
    __tablename__ = "referral_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    code = Column(String(16), unique=True, nullable=False, index=True)
    total_invites = Column(Integer, nullable=False, default=0)
    successful_invites = Column(Integer, nullable=False, default=0)
    total_rewards = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))


class ReferralRelation(Base):
    """An invitee is bound to at most one inviter."""
    __tablename__ = "referral_relations"
    __table_args__ = (
        Index("ix_referral_relations_inviter", "inviter_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    inviter_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    invitee_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    referral_code = Column(String(16), nullable=False)
    status = Column(String(20), nullable=False, default=ReferralStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    completed_at = Column(DateTime(timezone=True), nullable=True)


class ReferralReward(Base):
    __tablename__ = "referral_rewards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    relation_id = Column(Integer, ForeignKey("referral_relations.id", ondelete="CASCADE"), nullable=False)
    reward_type = Column(String(20), nullable=False)
    amount = Column(Integer, nullable=False)
    level = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))


class ReferralCampaign(Base):
    __tablename__ = "referral_campaigns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    inviter_reward = Column(Integer, nullable=False)
    invitee_reward = Column(Integer, nullable=False)
    requirement_type = Column(String(50), nullable=False, default="verified_email")
    max_invites_per_user = Column(Integer, nullable=False, default=3)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
