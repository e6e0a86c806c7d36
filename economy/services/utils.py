"""Helpers shared by the engine services."""

import secrets
import time
from calendar import monthrange
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.config import settings
from economy.core.db_utils import dialect_insert
from economy.models.user import User

REFERRAL_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REFERRAL_CODE_LENGTH = 8


async def user_exists(db: AsyncSession, user_id: str) -> bool:
    """Whether ``user_id`` is in the local identity mirror."""
    return await db.get(User, user_id) is not None


async def ensure_account(db: AsyncSession, model, user_id: str) -> None:
    """
    Create the per-user account row for ``model`` if it does not exist yet.

    Uses insert-on-conflict-do-nothing on ``user_id``, so concurrent first
    touches never fail and never create duplicates. Does not commit.
    """
    stmt = dialect_insert(db, model).values(user_id=user_id).on_conflict_do_nothing(
        index_elements=["user_id"]
    )
    await db.execute(stmt)


def clamp_limit(limit: Optional[int], default: int = 20) -> int:
    """Bound a page size to 1..HISTORY_MAX_LIMIT."""
    if limit is None:
        return default
    return max(1, min(int(limit), settings.HISTORY_MAX_LIMIT))


def add_months(start: datetime, months: int) -> datetime:
    """
    Add calendar months, keeping the time of day.

    The day is clamped to the last day of the target month, so Jan 31 + 1
    month is Feb 28 (or 29).

    Args:
        start: Date to calculate from
        months: Number of months to add (non-negative)

    Returns:
        datetime: The shifted date
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    _, days_in_month = monthrange(year, month)
    return start.replace(year=year, month=month, day=min(start.day, days_in_month))


def generate_order_no() -> str:
    """``VIP`` + epoch milliseconds + six random digits."""
    return f"VIP{int(time.time() * 1000)}{secrets.randbelow(1_000_000):06d}"


def generate_referral_code() -> str:
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


def generate_redeem_code(length: int = 10) -> str:
    """Upper-case hex, as printed on gift cards."""
    return secrets.token_hex((length + 1) // 2)[:length].upper()
