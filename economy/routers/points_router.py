"""Router for points, daily check-in and exchange endpoints."""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.auth import get_current_user, require_admin
from economy.core.database import get_db
from economy.models.points import PointSource
from economy.models.user import User
from economy.routers.utils import raise_for_failure
from economy.schemas.common import FailureReason
from economy.schemas.points_schemas import (
    CheckInResult,
    CheckInStatusResponse,
    ExchangeHistoryItem,
    ExchangeRateResponse,
    ExchangeRequest,
    ExchangeResult,
    GrantPointsRequest,
    PointBalanceResponse,
    PointGrantResult,
    PointTransactionHistoryResponse,
)
from economy.services.points import PointService


router = APIRouter(prefix="/points", tags=["points"])


@router.get("/balance", response_model=PointBalanceResponse)
async def get_point_balance(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await PointService(db).get_balance(current_user.id)


@router.get("/checkin/status", response_model=CheckInStatusResponse)
async def get_check_in_status(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await PointService(db).get_check_in_status(current_user.id)


@router.post("/checkin", response_model=CheckInResult)
async def check_in(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Daily check-in.

    A repeat on the same day is not an error: it answers 200 with
    ``success: false`` and reason ``ALREADY_DONE``.
    """
    result = await PointService(db).check_in(current_user.id)
    if result.reason == FailureReason.ALREADY_DONE:
        return result
    return raise_for_failure(result)


@router.get("/transactions", response_model=PointTransactionHistoryResponse)
async def get_point_transactions(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await PointService(db).get_transaction_history(current_user.id, skip=skip, limit=limit)


@router.get("/exchange-rates", response_model=List[ExchangeRateResponse])
async def list_exchange_rates(
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await PointService(db).list_exchange_rates()


@router.post("/exchange", response_model=ExchangeResult)
async def exchange_points(
    request: ExchangeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Exchange points for credits.

    Only ``rate_id`` is taken from the client; the rate itself is always read
    from the configured exchange rates.
    """
    result = await PointService(db).exchange(
        current_user.id,
        request.credits,
        rate_id=request.rate_id,
        idempotency_key=request.idempotency_key
    )
    return raise_for_failure(result)


@router.get("/exchange-history", response_model=List[ExchangeHistoryItem])
async def get_exchange_history(
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await PointService(db).get_exchange_history(current_user.id, limit=limit)


@router.post("/admin/grant", response_model=PointGrantResult)
async def grant_points(
    request: GrantPointsRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    result = await PointService(db).grant(
        request.user_id,
        request.points,
        source=PointSource.ADMIN,
        related_id=admin.id,
        description=request.description or f"Granted by admin {admin.id}"
    )
    return raise_for_failure(result)
