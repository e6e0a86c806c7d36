"""Router for VIP plans, orders, redeem codes and admin review."""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.auth import get_current_user, require_admin
from economy.core.database import get_db
from economy.models.user import User
from economy.routers.utils import raise_for_failure
from economy.schemas.credit_schemas import RedeemCodeRequest
from economy.schemas.vip_schemas import (
    ConfirmPaymentRequest,
    CreateOrderRequest,
    CreateVipRedeemCodesRequest,
    GrantVipRequest,
    RejectOrderRequest,
    ReviewOrderRequest,
    VipOrderListResponse,
    VipOrderResponse,
    VipOrderResult,
    VipPlanResponse,
    VipRedeemCodeResponse,
    VipRedeemCodesResult,
    VipRedeemResult,
    VipStatusResponse,
)
from economy.services.vip_service import VipService


router = APIRouter(prefix="/vip", tags=["vip"])


@router.get("/plans", response_model=List[VipPlanResponse])
async def list_vip_plans(db: AsyncSession = Depends(get_db)):
    return await VipService(db).list_plans()


@router.get("/status", response_model=VipStatusResponse)
async def get_vip_status(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await VipService(db).get_status(current_user.id)


@router.get("/orders", response_model=VipOrderListResponse)
async def list_vip_orders(
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    orders = await VipService(db).list_orders(current_user.id, limit=limit)
    return VipOrderListResponse(orders=[VipOrderResponse.model_validate(o) for o in orders])


@router.post("/orders", response_model=VipOrderResult)
async def create_vip_order(
    request: CreateOrderRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await VipService(db).create_order(current_user.id, request.plan_id, request.auto_renew)
    return raise_for_failure(result)


@router.post("/orders/{order_no}/confirm", response_model=VipOrderResult)
async def confirm_vip_payment(
    order_no: str,
    request: ConfirmPaymentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Report payment for a pending order; it then waits for admin review."""
    result = await VipService(db).submit_payment(
        current_user.id, order_no, request.payment_method, request.transaction_id
    )
    return raise_for_failure(result)


@router.post("/orders/{order_no}/cancel", response_model=VipOrderResult)
async def cancel_vip_order(
    order_no: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return raise_for_failure(await VipService(db).cancel_order(current_user.id, order_no))


@router.post("/redeem", response_model=VipRedeemResult)
async def redeem_vip_code(
    request: RedeemCodeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Redeem a VIP code; its months or days are added to the current expiry."""
    return raise_for_failure(await VipService(db).redeem_code(current_user.id, request.code))


@router.post("/admin/orders/{order_id}/approve", response_model=VipOrderResult)
async def approve_vip_order(
    order_id: int,
    request: ReviewOrderRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Complete an order under review and extend the user's VIP expiry."""
    return raise_for_failure(await VipService(db).approve_order(order_id, admin.id, request.notes))


@router.post("/admin/orders/{order_id}/reject", response_model=VipOrderResult)
async def reject_vip_order(
    order_id: int,
    request: RejectOrderRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return raise_for_failure(await VipService(db).reject_order(order_id, admin.id, request.reason))


@router.post("/admin/grant", response_model=VipOrderResult)
async def grant_vip(
    request: GrantVipRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    result = await VipService(db).grant(admin.id, request.user_id, request.plan_id, request.notes)
    return raise_for_failure(result)


@router.post("/admin/redeem-codes", response_model=VipRedeemCodesResult, status_code=201)
async def create_vip_redeem_codes(
    request: CreateVipRedeemCodesRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    result = await VipService(db).create_redeem_codes(admin.id, **request.model_dump())
    return raise_for_failure(result)


@router.get("/admin/redeem-codes", response_model=List[VipRedeemCodeResponse])
async def list_vip_redeem_codes(
    limit: int = Query(20, ge=1, le=100),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await VipService(db).list_redeem_codes(limit=limit)
