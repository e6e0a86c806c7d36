"""Helpers shared by the test modules."""

import os
import secrets
from contextlib import ExitStack, contextmanager
from datetime import date
from typing import Dict
from unittest.mock import patch

from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.security import create_access_token
from economy.models.points import CheckInRule, PointExchangeRate
from economy.models.user import User, UserRole

INTERNAL_HEADERS = {"api-key": os.environ.get("INTERNAL_API_KEY", "test-internal-key")}

# Modules that bind business_today at import time
BUSINESS_DAY_MODULES = (
    "economy.services.points.base",
    "economy.services.points.checkin",
    "economy.services.rate_limit_service",
)

CHECKIN_LADDER = [(1, 10), (3, 20), (7, 30), (14, 50), (30, 100)]


@contextmanager
def business_day(day: date):
    """Pin the reference day seen by the points and quota services."""
    with ExitStack() as stack:
        for module in BUSINESS_DAY_MODULES:
            stack.enter_context(patch(f"{module}.business_today", return_value=day))
        yield day


async def persist(db: AsyncSession, obj):
    """Commit ``obj`` and detach it, so a rollback on the shared session cannot expire it."""
    db.add(obj)
    await db.commit()
    db.expunge(obj)
    return obj


async def create_test_user(db: AsyncSession, role: str = UserRole.USER, user_id: str = None) -> User:
    """Helper function to create a user in the local identity mirror."""
    user_id = user_id or f"user-{secrets.token_hex(4)}"
    user = User(id=user_id, email=f"{user_id}@example.com", role=role, is_verified=True)
    return await persist(db, user)


def bearer(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


async def seed_checkin_ladder(db: AsyncSession, ladder=CHECKIN_LADDER) -> None:
    db.add_all([
        CheckInRule(name=f"{days}-day", consecutive_days=days, points=points, sort_order=index)
        for index, (days, points) in enumerate(ladder)
    ])
    await db.commit()


async def create_rate(db: AsyncSession, points_required: int = 100, credits_received: int = 1,
                      sort_order: int = 0, is_active: bool = True) -> PointExchangeRate:
    rate = PointExchangeRate(
        name=f"{points_required}:{credits_received}",
        points_required=points_required,
        credits_received=credits_received,
        sort_order=sort_order,
        is_active=is_active
    )
    return await persist(db, rate)
