"""Pydantic schemas for credit operations."""

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict, field_validator

from economy.schemas.common import OperationResult


class CreditBalanceResponse(BaseModel):
    """Balance snapshot. Zeros when the user has no account yet."""
    user_id: str
    balance: int = 0
    total_recharged: int = 0
    total_consumed: int = 0


class BalanceCheckResponse(BaseModel):
    sufficient: bool
    balance: int
    required: int
    shortage: int


class CreditMutationResult(OperationResult):
    """Outcome of consume / recharge / adjust / redeem."""
    balance: Optional[int] = None
    amount: int = 0
    transaction_id: Optional[int] = None
    replayed: bool = False


class CheckBalanceRequest(BaseModel):
    units: int = Field(..., ge=0, description="Units the caller intends to consume")


class ConsumeCreditsRequest(BaseModel):
    """Schema for consuming credits."""
    units: int = Field(..., description="Units to consume, must be positive")
    related_id: Optional[str] = Field(None, max_length=100)
    related_type: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, max_length=100)


class RechargeCreditsRequest(BaseModel):
    """Schema for recharging credits."""
    units: int = Field(..., description="Units to add, must be positive")
    related_id: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, max_length=100)


class AdjustCreditsRequest(BaseModel):
    user_id: str
    delta: int = Field(..., description="Signed adjustment")
    note: Optional[str] = None


class RedeemCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class CreditTransactionResponse(BaseModel):
    id: int
    user_id: str
    transaction_type: str
    amount: int
    balance_before: int
    balance_after: int
    related_id: Optional[str] = None
    related_type: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreditTransactionHistoryResponse(BaseModel):
    transactions: List[CreditTransactionResponse]
    total_count: int
