"""Router for the daily generation quota. Anonymous callers are keyed by IP."""

from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.auth import get_current_user_optional
from economy.core.clock import seconds_until_next_day
from economy.core.database import get_db
from economy.middleware.request_context import get_client_ip
from economy.models.user import User
from economy.routers.utils import raise_for_failure
from economy.schemas.common import FailureReason
from economy.schemas.rate_limit_schemas import RateLimitStatus, Tier
from economy.services.rate_limit_service import GenerationRateLimiter, resolve_identifier, resolve_tier
from economy.services.vip_service import VipService


router = APIRouter(prefix="/generation", tags=["generation"])


async def _caller(request: Request, user: Optional[User], db: AsyncSession) -> Tuple[Optional[str], Tier]:
    vip_active = False
    if user is not None and not user.is_admin:
        vip_active = await VipService(db).is_active(user.id)
    identifier = resolve_identifier(user.id if user else None, get_client_ip(request))
    return identifier, resolve_tier(user, vip_active)


def _respond(result: RateLimitStatus) -> RateLimitStatus:
    headers = None
    if result.reason == FailureReason.RATE_LIMITED:
        headers = {"Retry-After": str(seconds_until_next_day())}
    return raise_for_failure(result, headers=headers)


@router.post("/check-limit", response_model=RateLimitStatus)
async def check_generation_limit(
    request: Request,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db)
):
    """
    Check today's quota without using it.

    Answers 429 with ``Retry-After`` (seconds until the next day starts) when
    the quota is used up.
    """
    identifier, tier = await _caller(request, current_user, db)
    return _respond(await GenerationRateLimiter(db).check_limit(identifier, tier))


@router.post("/increment", response_model=RateLimitStatus)
async def increment_generation_count(
    request: Request,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db)
):
    """Count one generation. Call after committing to the generation."""
    identifier, tier = await _caller(request, current_user, db)
    return raise_for_failure(await GenerationRateLimiter(db).increment(identifier, tier))


@router.post("/acquire", response_model=RateLimitStatus)
async def acquire_generation_slot(
    request: Request,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db)
):
    """Check and count in one step; never admits more than the quota."""
    identifier, tier = await _caller(request, current_user, db)
    return _respond(await GenerationRateLimiter(db).try_acquire(identifier, tier))
