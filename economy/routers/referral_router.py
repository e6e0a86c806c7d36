"""Router for referral codes and rewards."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.auth import get_current_user, get_internal_service
from economy.core.database import get_db
from economy.models.user import User
from economy.routers.utils import raise_for_failure
from economy.schemas.referral_schemas import (
    BindReferralRequest,
    CompleteTaskRequest,
    ReferralBindResult,
    ReferralCodeResponse,
    ReferralStatsResponse,
    ReferralTaskResult,
    ValidateCodeResponse,
)
from economy.services.referral_service import ReferralService


router = APIRouter(prefix="/referral", tags=["referral"])


@router.get("/code", response_model=ReferralCodeResponse)
async def get_referral_code(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The caller's referral code, created on first request."""
    return await ReferralService(db).get_or_create_code(current_user.id)


@router.get("/validate/{code}", response_model=ValidateCodeResponse)
async def validate_referral_code(code: str, db: AsyncSession = Depends(get_db)):
    return raise_for_failure(await ReferralService(db).validate_code(code))


@router.post("/bind", response_model=ReferralBindResult)
async def bind_referral(
    request: BindReferralRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return raise_for_failure(await ReferralService(db).bind(current_user.id, request.code))


@router.get("/stats", response_model=ReferralStatsResponse)
async def get_referral_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await ReferralService(db).get_stats(current_user.id)


@router.post("/complete", response_model=ReferralTaskResult)
async def complete_referral_task(
    request: CompleteTaskRequest,
    _: str = Depends(get_internal_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Called by the verification hook when an invitee completes the qualifying task.

    This endpoint is restricted to internal service access only.
    """
    return raise_for_failure(await ReferralService(db).complete_task(request.invitee_id, request.task_type))
