"""Daily generation quota per identifier (user id or client IP)."""

from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.clock import utc_now, business_today
from economy.core.config import settings
from economy.core.db_utils import dialect_insert
from economy.models.rate_limit import GenerationRateLimit
from economy.models.user import User
from economy.schemas.common import FailureReason
from economy.schemas.rate_limit_schemas import RateLimitStatus, Tier
from economy.log.logging import logger

from economy.services.decorators import db_error_handler


def resolve_identifier(user_id: Optional[str], client_ip: Optional[str]) -> Optional[str]:
    """The user id when signed in, otherwise the client IP. None when neither is known."""
    if user_id:
        return str(user_id)
    if client_ip:
        return client_ip.strip() or None
    return None


def resolve_tier(user: Optional[User], vip_active: bool = False) -> Tier:
    if user is None:
        return Tier.ANONYMOUS
    if user.is_admin:
        return Tier.ADMIN
    if vip_active:
        return Tier.VIP
    return Tier.FREE


class GenerationRateLimiter:
    """
    Per-day generation counters stored in ``generation_rate_limits``.

    ``check_limit`` + ``increment`` is the two-step flow: check before the
    expensive work, increment after committing to it. ``try_acquire`` merges
    both into one conditional upsert for callers that cannot tolerate
    over-admission.
    """

    def __init__(self, db: AsyncSession, limits: Optional[Dict[str, int]] = None):
        self.db = db
        self.limits = limits if limits is not None else settings.generation_limits

    def limit_for(self, tier: Tier) -> int:
        return self.limits[Tier(tier).value]

    async def get_count(self, identifier: str) -> int:
        result = await self.db.execute(
            select(GenerationRateLimit.count).where(
                GenerationRateLimit.identifier == identifier,
                GenerationRateLimit.day == business_today()
            )
        )
        return result.scalar_one_or_none() or 0

    def _status(self, identifier: str, tier: Tier, used: int, allowed: bool) -> RateLimitStatus:
        limit = self.limit_for(tier)
        return RateLimitStatus(
            success=allowed,
            reason=None if allowed else FailureReason.RATE_LIMITED,
            message="" if allowed else f"Daily generation limit of {limit} reached",
            allowed=allowed,
            limit=limit,
            used=used,
            remaining=max(0, limit - used),
            tier=tier,
            identifier=identifier
        )

    @staticmethod
    def _unresolved() -> RateLimitStatus:
        return RateLimitStatus.failure(FailureReason.IDENTITY_UNRESOLVED, "Caller identity could not be resolved")

    @db_error_handler()
    async def check_limit(self, identifier: Optional[str], tier: Tier) -> RateLimitStatus:
        """
        Non-mutating quota check.

        Returns:
            RateLimitStatus: ``allowed = used < limit``; ``used`` is the stored
            count even when it exceeds the limit
        """
        if not identifier:
            return self._unresolved()
        used = await self.get_count(identifier)
        return self._status(identifier, tier, used, used < self.limit_for(tier))

    async def _upsert_increment(self, identifier: str, limit: Optional[int] = None) -> Optional[int]:
        now = utc_now()
        stmt = dialect_insert(self.db, GenerationRateLimit).values(
            identifier=identifier,
            day=business_today(),
            count=1,
            updated_at=now
        )
        conflict_kwargs = {
            "index_elements": ["identifier", "day"],
            "set_": {"count": GenerationRateLimit.count + 1, "updated_at": now},
        }
        if limit is not None:
            conflict_kwargs["where"] = GenerationRateLimit.count < limit
        stmt = stmt.on_conflict_do_update(**conflict_kwargs).returning(GenerationRateLimit.count)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    @db_error_handler()
    async def increment(self, identifier: Optional[str], tier: Tier = Tier.FREE) -> RateLimitStatus:
        """
        Count one generation for today. Always applies, even past the limit.

        A single insert-or-increment statement, so concurrent calls never lose
        an update.
        """
        if not identifier:
            return self._unresolved()
        used = await self._upsert_increment(identifier)
        await self.db.commit()
        logger.debug(f"Generation count for {identifier} is now {used}",
                     event_type="generation_counted",
                     identifier=identifier,
                     count=used)
        status = self._status(identifier, tier, used, True)
        # whether this generation fell within the quota
        status.allowed = used <= self.limit_for(tier)
        return status

    @db_error_handler()
    async def try_acquire(self, identifier: Optional[str], tier: Tier) -> RateLimitStatus:
        """
        Take one unit of today's quota if any is left.

        The increment only happens while ``count < limit``, checked in the same
        statement, so the stored count never passes the limit.
        """
        if not identifier:
            return self._unresolved()
        limit = self.limit_for(tier)
        if limit <= 0:
            return self._status(identifier, tier, await self.get_count(identifier), False)

        used = await self._upsert_increment(identifier, limit)
        if used is None:
            await self.db.rollback()
            used = await self.get_count(identifier)
            logger.warning(f"Generation quota exhausted for {identifier} ({used}/{limit})",
                           event_type="generation_rate_limited",
                           identifier=identifier,
                           tier=tier.value,
                           used=used,
                           limit=limit)
            return self._status(identifier, tier, used, False)

        await self.db.commit()
        logger.info(f"Generation quota acquired by {identifier} ({used}/{limit})",
                    event_type="generation_acquired",
                    identifier=identifier,
                    tier=tier.value,
                    used=used,
                    limit=limit)
        return self._status(identifier, tier, used, True)
