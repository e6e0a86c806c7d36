"""Pydantic schemas for points, check-in and exchange."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict

from economy.schemas.common import OperationResult


class PointBalanceResponse(BaseModel):
    user_id: str
    balance: int = 0
    total_earned: int = 0
    total_spent: int = 0
    consecutive_days: int = 0


class CheckInRuleResponse(BaseModel):
    id: int
    name: str
    consecutive_days: int
    points: int
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CheckInRecordResponse(BaseModel):
    check_in_date: date
    points: int
    consecutive_days: int

    model_config = ConfigDict(from_attributes=True)


class CheckInStatusResponse(BaseModel):
    """Whether today's check-in is done, the streak, and what the next check-in is worth."""
    has_checked_in_today: bool
    consecutive_days: int
    next_consecutive_days: int
    next_points: int
    next_rule: Optional[CheckInRuleResponse] = None
    month_check_in_days: int = 0
    recent_check_ins: List[CheckInRecordResponse] = []
    today: date


class CheckInResult(OperationResult):
    points_awarded: int = 0
    consecutive_days: int = 0
    balance: Optional[int] = None


class ExchangeRateResponse(BaseModel):
    id: int
    name: str
    points_required: int
    credits_received: int
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ExchangeRequest(BaseModel):
    credits: int = Field(..., description="Credits to receive")
    rate_id: Optional[int] = Field(None, description="Configured exchange rate; defaults to the first active one")
    idempotency_key: Optional[str] = Field(None, max_length=100)


class ExchangeResult(OperationResult):
    points_spent: int = 0
    credits_received: int = 0
    point_balance: Optional[int] = None
    credit_balance: Optional[int] = None
    replayed: bool = False


class PointTransactionResponse(BaseModel):
    id: int
    transaction_type: str
    amount: int
    balance_after: int
    source: str
    related_id: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PointTransactionHistoryResponse(BaseModel):
    transactions: List[PointTransactionResponse]
    total_count: int


class ExchangeHistoryItem(BaseModel):
    id: int
    rate_id: Optional[int] = None
    points_spent: int
    credits_received: int
    exchange_rate: Decimal
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PointGrantResult(OperationResult):
    points: int = 0
    balance: Optional[int] = None
    transaction_id: Optional[int] = None


class GrantPointsRequest(BaseModel):
    user_id: str
    points: int
    description: Optional[str] = None
