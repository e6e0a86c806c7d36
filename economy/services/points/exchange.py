"""Points-to-credits exchange at admin-configured rates."""

from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.clock import utc_now
from economy.core.db_utils import is_unique_violation
from economy.models.credit import CreditTransactionType
from economy.models.points import PointExchangeRate, PointExchangeHistory, PointSource, PointTransaction
from economy.schemas import points_schemas
from economy.schemas.common import FailureReason
from economy.log.logging import logger

from economy.services.credit.base import BaseCreditService
from economy.services.decorators import db_error_handler
from economy.services.points.base import BasePointService
from economy.services.utils import clamp_limit, user_exists


class ExchangeService:
    """
    Convert points to credits.

    The rate always comes from ``point_exchange_rates``; callers may only pick
    which active rate to use. The point debit, the credit recharge and the
    history row commit together or not at all.
    """

    def __init__(self, db: AsyncSession, point_service: BasePointService, credit_service: BaseCreditService):
        self.db = db
        self.point_service = point_service
        self.credit_service = credit_service

    async def list_rates(self) -> List[PointExchangeRate]:
        result = await self.db.execute(
            select(PointExchangeRate)
            .where(PointExchangeRate.is_active.is_(True))
            .order_by(PointExchangeRate.sort_order, PointExchangeRate.id)
        )
        return list(result.scalars().all())

    async def resolve_rate(self, rate_id: Optional[int]) -> Optional[PointExchangeRate]:
        query = select(PointExchangeRate).where(PointExchangeRate.is_active.is_(True))
        if rate_id is not None:
            query = query.where(PointExchangeRate.id == rate_id)
        result = await self.db.execute(
            query.order_by(PointExchangeRate.sort_order, PointExchangeRate.id).limit(1)
        )
        return result.scalar_one_or_none()

    async def _replay(self, user_id: str, key: Optional[str]) -> Optional[points_schemas.ExchangeResult]:
        if not key:
            return None
        previous = (await self.db.execute(
            select(PointTransaction).where(
                PointTransaction.user_id == user_id,
                PointTransaction.idempotency_key == key
            )
        )).scalar_one_or_none()
        if previous is None:
            return None

        history = await self.db.get(PointExchangeHistory, int(previous.related_id)) if previous.related_id else None
        return points_schemas.ExchangeResult(
            success=True,
            message="Request already processed",
            points_spent=-previous.amount,
            credits_received=history.credits_received if history else 0,
            point_balance=(await self.point_service.get_balance(user_id)).balance,
            credit_balance=(await self.credit_service.get_balance(user_id)).balance,
            replayed=True
        )

    async def _apply_exchange(
        self,
        user_id: str,
        rate: PointExchangeRate,
        credits: int,
        points_needed: int,
        idempotency_key: Optional[str]
    ) -> Optional[Tuple[int, int]]:
        """Write the history row, the point debit and the credit recharge. Returns both new balances."""
        history = PointExchangeHistory(
            user_id=user_id,
            rate_id=rate.id,
            points_spent=points_needed,
            credits_received=credits,
            exchange_rate=(Decimal(rate.points_required) / Decimal(rate.credits_received)).quantize(Decimal("0.01")),
            created_at=utc_now()
        )
        self.db.add(history)
        await self.db.flush()

        spent = await self.point_service._apply_spend(
            user_id,
            points_needed,
            PointSource.EXCHANGE,
            related_id=str(history.id),
            description=f"Exchanged {points_needed} points for {credits} credits",
            idempotency_key=idempotency_key
        )
        if spent is None:
            return None

        _, credit_balance = await self.credit_service._apply_recharge(
            user_id,
            credits,
            transaction_type=CreditTransactionType.EXCHANGE,
            related_id=str(history.id),
            related_type="point_exchange",
            description=f"Exchanged {points_needed} points"
        )
        return spent[1], credit_balance

    @db_error_handler()
    async def exchange(
        self,
        user_id: str,
        credits: int,
        rate_id: Optional[int] = None,
        idempotency_key: Optional[str] = None
    ) -> points_schemas.ExchangeResult:
        """
        Spend points for ``credits`` credits.

        ``credits`` must be a positive multiple of the rate's
        ``credits_received``; the cost is ``credits / credits_received *
        points_required`` points.
        """
        if not isinstance(credits, int) or isinstance(credits, bool) or credits <= 0:
            return points_schemas.ExchangeResult.failure(FailureReason.INVALID_INPUT, "Credits must be a positive integer")
        if not await user_exists(self.db, user_id):
            return points_schemas.ExchangeResult.failure(FailureReason.NOT_FOUND, "User not found")

        replay = await self._replay(user_id, idempotency_key)
        if replay is not None:
            return replay

        rate = await self.resolve_rate(rate_id)
        if rate is None:
            return points_schemas.ExchangeResult.failure(FailureReason.NOT_FOUND, "Exchange rate not available")
        if credits % rate.credits_received != 0:
            return points_schemas.ExchangeResult.failure(
                FailureReason.INVALID_INPUT,
                f"Credits must be a multiple of {rate.credits_received} for this rate"
            )

        points_needed = credits // rate.credits_received * rate.points_required

        try:
            applied = await self._apply_exchange(user_id, rate, credits, points_needed, idempotency_key)
            if applied is not None:
                await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            replay = await self._replay(user_id, idempotency_key) if idempotency_key and is_unique_violation(e) else None
            if replay is None:
                raise
            return replay

        if applied is None:
            await self.db.rollback()
            balance = (await self.point_service.get_balance(user_id)).balance
            logger.warning(f"Insufficient points for user {user_id}. Required: {points_needed}, Available: {balance}",
                           event_type="insufficient_points",
                           user_id=user_id,
                           required=points_needed,
                           available=balance)
            return points_schemas.ExchangeResult.failure(
                FailureReason.INSUFFICIENT_POINTS,
                f"Insufficient points. Required: {points_needed}, Available: {balance}",
                point_balance=balance
            )
        point_balance, credit_balance = applied

        logger.info(f"User {user_id} exchanged {points_needed} points for {credits} credits",
                    event_type="points_exchanged",
                    user_id=user_id,
                    rate_id=rate.id,
                    points_spent=points_needed,
                    credits_received=credits,
                    point_balance=point_balance,
                    credit_balance=credit_balance)
        return points_schemas.ExchangeResult(
            success=True,
            message=f"Exchanged {points_needed} points for {credits} credits",
            points_spent=points_needed,
            credits_received=credits,
            point_balance=point_balance,
            credit_balance=credit_balance
        )

    @db_error_handler()
    async def get_exchange_history(self, user_id: str, limit: int = 10) -> List[points_schemas.ExchangeHistoryItem]:
        result = await self.db.execute(
            select(PointExchangeHistory)
            .where(PointExchangeHistory.user_id == user_id)
            .order_by(desc(PointExchangeHistory.created_at), desc(PointExchangeHistory.id))
            .limit(clamp_limit(limit, default=10))
        )
        return [points_schemas.ExchangeHistoryItem.model_validate(item) for item in result.scalars().all()]
