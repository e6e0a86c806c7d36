"""Pydantic schemas for VIP plans, orders, redeem codes and status."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict

from economy.models.vip import VipRedeemCodeType
from economy.schemas.common import OperationResult


class VipPlanResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    original_price: Optional[Decimal] = None
    duration_months: int
    features: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class VipOrderResponse(BaseModel):
    id: int
    order_no: str
    user_id: str
    plan_id: int
    amount: Decimal
    status: str
    payment_method: Optional[str] = None
    user_submitted_transaction_id: Optional[str] = None
    admin_notes: Optional[str] = None
    auto_renew: bool = False
    paid_at: Optional[datetime] = None
    expire_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VipStatusResponse(BaseModel):
    user_id: str
    is_active: bool
    is_vip: bool
    vip_expire_date: Optional[datetime] = None
    days_remaining: int = 0
    auto_renew: bool = False


class VipOrderResult(OperationResult):
    order: Optional[VipOrderResponse] = None
    vip_expire_date: Optional[datetime] = None


class CreateOrderRequest(BaseModel):
    plan_id: int
    auto_renew: bool = False


class ConfirmPaymentRequest(BaseModel):
    payment_method: str = Field(..., min_length=1, max_length=50)
    transaction_id: str = Field(..., min_length=1, max_length=255)


class ReviewOrderRequest(BaseModel):
    notes: Optional[str] = None


class RejectOrderRequest(BaseModel):
    reason: str = Field(..., description="Shown to the user")


class GrantVipRequest(BaseModel):
    user_id: str
    plan_id: int
    notes: Optional[str] = None


class VipOrderListResponse(BaseModel):
    orders: List[VipOrderResponse]


class VipRedeemResult(OperationResult):
    months: int = 0
    days: int = 0
    plan_name: Optional[str] = None
    vip_expire_date: Optional[datetime] = None


class CreateVipRedeemCodesRequest(BaseModel):
    """
    Issue ``quantity`` codes of one kind.

    ``plan`` codes need ``plan_id``, ``duration`` codes ``duration_months``
    and ``days`` codes ``days``. A custom ``code`` is only accepted for a
    single code; otherwise codes are generated.
    """
    code_type: VipRedeemCodeType
    plan_id: Optional[int] = None
    duration_months: Optional[int] = Field(None, ge=1)
    days: Optional[int] = Field(None, ge=1)
    max_uses: int = Field(1, ge=1)
    expires_at: Optional[datetime] = None
    quantity: int = Field(1, ge=1, le=100)
    code: Optional[str] = Field(None, min_length=4, max_length=32)


class VipRedeemCodeResponse(BaseModel):
    id: int
    code: str
    code_type: str
    plan_id: Optional[int] = None
    duration_months: Optional[int] = None
    days: Optional[int] = None
    max_uses: int
    used_count: int
    status: str
    expires_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VipRedeemCodesResult(OperationResult):
    codes: List[VipRedeemCodeResponse] = []
