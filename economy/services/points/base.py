"""Base points service: balances and the points ledger."""

from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy import desc, select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.clock import utc_now, business_today
from economy.models.points import PointAccount, PointTransaction, PointTransactionType, PointSource
from economy.schemas import points_schemas
from economy.schemas.common import FailureReason
from economy.log.logging import logger

from economy.services.decorators import db_error_handler
from economy.services.utils import ensure_account, clamp_limit, user_exists


def effective_streak(account: Optional[PointAccount]) -> int:
    """The stored streak, or 0 once a day has been missed."""
    if account is None or account.last_check_in_date is None:
        return 0
    today = business_today()
    if account.last_check_in_date >= today - timedelta(days=1):
        return account.consecutive_days
    return 0


class BasePointService:
    """Points balance and ledger. ``_apply_*`` methods flush but never commit."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_account(self, user_id: str) -> Optional[PointAccount]:
        result = await self.db.execute(
            select(PointAccount)
            .where(PointAccount.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_balance(self, user_id: str) -> points_schemas.PointBalanceResponse:
        account = await self.get_account(user_id)
        if account is None:
            return points_schemas.PointBalanceResponse(user_id=user_id)
        return points_schemas.PointBalanceResponse(
            user_id=user_id,
            balance=account.balance,
            total_earned=account.total_earned,
            total_spent=account.total_spent,
            consecutive_days=effective_streak(account)
        )

    async def _apply_earn(
        self,
        user_id: str,
        points: int,
        source: PointSource,
        related_id: Optional[str] = None,
        description: Optional[str] = None
    ) -> Tuple[PointTransaction, int]:
        """Add points to the balance and append an ``earn`` row."""
        await ensure_account(self.db, PointAccount, user_id)
        now = utc_now()
        result = await self.db.execute(
            update(PointAccount)
            .where(PointAccount.user_id == user_id)
            .values(
                balance=PointAccount.balance + points,
                total_earned=PointAccount.total_earned + points,
                updated_at=now
            )
            .returning(PointAccount.balance)
            .execution_options(synchronize_session=False)
        )
        new_balance = result.scalar_one()
        transaction = self._record(user_id, PointTransactionType.EARN, points, new_balance, source,
                                   related_id, description)
        await self.db.flush()
        return transaction, new_balance

    async def _apply_spend(
        self,
        user_id: str,
        points: int,
        source: PointSource,
        related_id: Optional[str] = None,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> Optional[Tuple[PointTransaction, int]]:
        """
        Take ``points`` if the balance covers them.

        Returns:
            (transaction, new balance), or None when the balance is too low
        """
        await ensure_account(self.db, PointAccount, user_id)
        now = utc_now()
        result = await self.db.execute(
            update(PointAccount)
            .where(PointAccount.user_id == user_id, PointAccount.balance >= points)
            .values(
                balance=PointAccount.balance - points,
                total_spent=PointAccount.total_spent + points,
                updated_at=now
            )
            .returning(PointAccount.balance)
            .execution_options(synchronize_session=False)
        )
        row = result.first()
        if row is None:
            return None
        transaction = self._record(user_id, PointTransactionType.SPEND, -points, row[0], source,
                                   related_id, description, idempotency_key)
        await self.db.flush()
        return transaction, row[0]

    def _record(self, user_id, transaction_type, amount, balance_after, source,
                related_id=None, description=None, idempotency_key=None) -> PointTransaction:
        transaction = PointTransaction(
            user_id=user_id,
            transaction_type=transaction_type.value,
            amount=amount,
            balance_after=balance_after,
            source=source.value,
            related_id=related_id,
            description=description,
            idempotency_key=idempotency_key,
            created_at=utc_now()
        )
        self.db.add(transaction)
        return transaction

    @db_error_handler()
    async def grant(
        self,
        user_id: str,
        points: int,
        source: PointSource = PointSource.ADMIN,
        related_id: Optional[str] = None,
        description: Optional[str] = None
    ) -> points_schemas.PointGrantResult:
        """Award points outside check-in (admin grants, tasks)."""
        if not isinstance(points, int) or isinstance(points, bool) or points <= 0:
            return points_schemas.PointGrantResult.failure(
                FailureReason.INVALID_INPUT, "Points must be a positive integer"
            )
        if not await user_exists(self.db, user_id):
            return points_schemas.PointGrantResult.failure(FailureReason.NOT_FOUND, "User not found")
        transaction, new_balance = await self._apply_earn(user_id, points, source, related_id, description)
        await self.db.commit()
        logger.info(f"Granted {points} points to user {user_id} ({source.value})",
                    event_type="points_granted",
                    user_id=user_id,
                    points=points,
                    source=source.value,
                    new_balance=new_balance)
        return points_schemas.PointGrantResult(
            success=True,
            message="Points granted",
            points=points,
            balance=new_balance,
            transaction_id=transaction.id
        )

    @db_error_handler()
    async def get_transaction_history(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 20
    ) -> points_schemas.PointTransactionHistoryResponse:
        """Most-recent-first page of point transactions."""
        limit = clamp_limit(limit)
        total_count = (await self.db.execute(
            select(func.count()).select_from(PointTransaction).where(PointTransaction.user_id == user_id)
        )).scalar_one()

        result = await self.db.execute(
            select(PointTransaction)
            .where(PointTransaction.user_id == user_id)
            .order_by(desc(PointTransaction.created_at), desc(PointTransaction.id))
            .offset(max(0, skip))
            .limit(limit)
        )
        transactions = result.scalars().all()
        logger.debug(f"Retrieved {len(transactions)} point transactions for user {user_id}",
                     event_type="point_transactions_retrieved",
                     user_id=user_id,
                     total_count=total_count)
        return points_schemas.PointTransactionHistoryResponse(
            transactions=[points_schemas.PointTransactionResponse.model_validate(tx) for tx in transactions],
            total_count=total_count
        )
