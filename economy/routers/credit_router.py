"""Router for credit-related endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.auth import get_current_user, get_internal_service, require_admin
from economy.core.database import get_db
from economy.models.user import User
from economy.routers.utils import raise_for_failure
from economy.schemas.credit_schemas import (
    AdjustCreditsRequest,
    BalanceCheckResponse,
    CheckBalanceRequest,
    ConsumeCreditsRequest,
    CreditBalanceResponse,
    CreditMutationResult,
    CreditTransactionHistoryResponse,
    RechargeCreditsRequest,
    RedeemCodeRequest,
)
from economy.services.credit import CreditService
from economy.log.logging import logger


router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/balance", response_model=CreditBalanceResponse)
async def get_credit_balance(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Current user's credit balance. Zeros if the user has never had credits."""
    return await CreditService(db).get_balance(current_user.id)


@router.post("/check", response_model=BalanceCheckResponse)
async def check_credit_balance(
    request: CheckBalanceRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Whether the balance covers ``units``, and the shortage if not. Nothing is consumed."""
    return await CreditService(db).check_balance(current_user.id, request.units)


@router.get("/transactions", response_model=CreditTransactionHistoryResponse)
async def get_credit_transactions(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await CreditService(db).get_transaction_history(current_user.id, skip=skip, limit=limit)


@router.post("/redeem", response_model=CreditMutationResult)
async def redeem_credit_code(
    request: RedeemCodeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await CreditService(db).redeem_code(current_user.id, request.code)
    return raise_for_failure(result)


@router.post("/consume", response_model=CreditMutationResult)
async def consume_credits(
    request: ConsumeCreditsRequest,
    user_id: str,
    _: str = Depends(get_internal_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Consume credits for a generation.

    This endpoint is restricted to internal service access only. Answers 402
    when the balance does not cover ``units``; nothing is consumed then.

    Args:
        request: Units, related entity and optional idempotency key
        user_id: User to charge
    """
    logger.info(f"Consuming credits: User {user_id}, Units {request.units}",
                event_type="consume_credits_request",
                user_id=user_id,
                units=request.units,
                related_id=request.related_id)
    result = await CreditService(db).consume(
        user_id,
        request.units,
        related_id=request.related_id,
        related_type=request.related_type,
        description=request.description,
        idempotency_key=request.idempotency_key
    )
    return raise_for_failure(result)


@router.post("/recharge", response_model=CreditMutationResult)
async def recharge_credits(
    request: RechargeCreditsRequest,
    user_id: str,
    _: str = Depends(get_internal_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Add credits to a user's balance (purchase, refund of a failed generation).

    This endpoint is restricted to internal service access only.
    """
    logger.info(f"Recharging credits: User {user_id}, Units {request.units}",
                event_type="recharge_credits_request",
                user_id=user_id,
                units=request.units,
                related_id=request.related_id)
    result = await CreditService(db).recharge(
        user_id,
        request.units,
        related_id=request.related_id,
        description=request.description,
        idempotency_key=request.idempotency_key
    )
    return raise_for_failure(result)


@router.post("/admin/adjust", response_model=CreditMutationResult)
async def adjust_credits(
    request: AdjustCreditsRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    result = await CreditService(db).adjust(request.user_id, request.delta, admin.id, request.note)
    return raise_for_failure(result)
