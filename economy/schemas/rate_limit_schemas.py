"""Pydantic schemas for the daily generation quota."""

from enum import Enum
from typing import Optional

from economy.schemas.common import OperationResult


class Tier(str, Enum):
    """Quota classes, lowest to highest."""
    ANONYMOUS = "anonymous"
    FREE = "free"
    VIP = "vip"
    ADMIN = "admin"


class RateLimitStatus(OperationResult):
    """
    Quota outcome. ``allowed`` says whether the caller is within quota; for
    ``increment`` it can be False on a successful (always-applied) count.
    ``used`` is the stored count, never clamped.
    """
    allowed: bool = False
    limit: int = 0
    used: int = 0
    remaining: int = 0
    tier: Optional[Tier] = None
    identifier: Optional[str] = None
