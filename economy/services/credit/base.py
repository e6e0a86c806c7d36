"""Base credit service: balances, consumption and recharge."""

from typing import Optional, Tuple

from sqlalchemy import desc, select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.clock import utc_now
from economy.core.db_utils import is_unique_violation
from economy.models.credit import CreditAccount, CreditTransaction, CreditTransactionType
from economy.schemas import credit_schemas
from economy.schemas.common import FailureReason
from economy.log.logging import logger

from economy.services.decorators import db_error_handler
from economy.services.utils import ensure_account, clamp_limit, user_exists


class BaseCreditService:
    """
    Core credit ledger.

    Balance changes are single conditional statements against the account row,
    each paired with one appended ``CreditTransaction``. ``_apply_*`` methods
    flush but never commit so other engines can compose them into one
    transaction; the public methods commit.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_account(self, user_id: str) -> Optional[CreditAccount]:
        """Return the account row, or None when the user has never been touched."""
        result = await self.db.execute(
            select(CreditAccount)
            .where(CreditAccount.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_balance(self, user_id: str) -> credit_schemas.CreditBalanceResponse:
        """
        Get the user's balance. Reads never create an account.

        Returns:
            CreditBalanceResponse: Zeros when no account exists yet
        """
        account = await self.get_account(user_id)
        if account is None:
            return credit_schemas.CreditBalanceResponse(user_id=user_id)
        return credit_schemas.CreditBalanceResponse(
            user_id=user_id,
            balance=account.balance,
            total_recharged=account.total_recharged,
            total_consumed=account.total_consumed
        )

    async def check_balance(self, user_id: str, units: int) -> credit_schemas.BalanceCheckResponse:
        """Non-mutating feasibility check for consuming ``units``."""
        balance = (await self.get_balance(user_id)).balance
        return credit_schemas.BalanceCheckResponse(
            sufficient=balance >= units,
            balance=balance,
            required=units,
            shortage=max(0, units - balance)
        )

    async def find_by_idempotency_key(self, user_id: str, key: str) -> Optional[CreditTransaction]:
        result = await self.db.execute(
            select(CreditTransaction).where(
                CreditTransaction.user_id == user_id,
                CreditTransaction.idempotency_key == key
            )
        )
        return result.scalar_one_or_none()

    async def _replay(self, user_id: str, key: Optional[str]) -> Optional[credit_schemas.CreditMutationResult]:
        if not key:
            return None
        previous = await self.find_by_idempotency_key(user_id, key)
        if previous is None:
            return None
        logger.info(f"Replaying credit transaction {previous.id} for user {user_id}",
                    event_type="credit_transaction_replayed",
                    user_id=user_id,
                    transaction_id=previous.id,
                    idempotency_key=key)
        balance = (await self.get_balance(user_id)).balance
        return credit_schemas.CreditMutationResult(
            success=True,
            message="Request already processed",
            balance=balance,
            amount=previous.amount,
            transaction_id=previous.id,
            replayed=True
        )

    async def _replay_after_conflict(
        self,
        user_id: str,
        key: Optional[str],
        error: IntegrityError
    ) -> Optional[credit_schemas.CreditMutationResult]:
        """
        Roll back after an integrity error on write.

        When a concurrent request with the same idempotency key got there
        first, return that request's outcome; otherwise return None and let
        the caller re-raise.
        """
        await self.db.rollback()
        if key and is_unique_violation(error):
            return await self._replay(user_id, key)
        return None

    async def _apply_consume(
        self,
        user_id: str,
        units: int,
        transaction_type: CreditTransactionType = CreditTransactionType.CONSUME,
        related_id: Optional[str] = None,
        related_type: Optional[str] = None,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> Optional[Tuple[CreditTransaction, int]]:
        """
        Decrement the balance if it covers ``units``.

        Returns:
            (transaction, new balance), or None when the balance is insufficient
            (nothing has been written for the balance in that case)
        """
        await ensure_account(self.db, CreditAccount, user_id)
        now = utc_now()
        result = await self.db.execute(
            update(CreditAccount)
            .where(CreditAccount.user_id == user_id, CreditAccount.balance >= units)
            .values(
                balance=CreditAccount.balance - units,
                total_consumed=CreditAccount.total_consumed + units,
                updated_at=now
            )
            .returning(CreditAccount.balance)
            .execution_options(synchronize_session=False)
        )
        row = result.first()
        if row is None:
            return None

        new_balance = row[0]
        transaction = CreditTransaction(
            user_id=user_id,
            transaction_type=transaction_type.value,
            amount=-units,
            balance_before=new_balance + units,
            balance_after=new_balance,
            related_id=related_id,
            related_type=related_type,
            description=description,
            idempotency_key=idempotency_key,
            created_at=now
        )
        self.db.add(transaction)
        await self.db.flush()
        return transaction, new_balance

    async def _apply_recharge(
        self,
        user_id: str,
        units: int,
        transaction_type: CreditTransactionType = CreditTransactionType.RECHARGE,
        related_id: Optional[str] = None,
        related_type: Optional[str] = None,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> Tuple[CreditTransaction, int]:
        """Increment balance and total_recharged, creating the account if needed."""
        await ensure_account(self.db, CreditAccount, user_id)
        now = utc_now()
        result = await self.db.execute(
            update(CreditAccount)
            .where(CreditAccount.user_id == user_id)
            .values(
                balance=CreditAccount.balance + units,
                total_recharged=CreditAccount.total_recharged + units,
                updated_at=now
            )
            .returning(CreditAccount.balance)
            .execution_options(synchronize_session=False)
        )
        new_balance = result.scalar_one()

        transaction = CreditTransaction(
            user_id=user_id,
            transaction_type=transaction_type.value,
            amount=units,
            balance_before=new_balance - units,
            balance_after=new_balance,
            related_id=related_id,
            related_type=related_type,
            description=description,
            idempotency_key=idempotency_key,
            created_at=now
        )
        self.db.add(transaction)
        await self.db.flush()
        return transaction, new_balance

    @db_error_handler()
    async def consume(
        self,
        user_id: str,
        units: int,
        related_id: Optional[str] = None,
        related_type: Optional[str] = None,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> credit_schemas.CreditMutationResult:
        """
        Consume ``units`` credits atomically.

        Either the whole amount is taken and one ledger row is written, or
        nothing changes.

        Returns:
            CreditMutationResult: ``INVALID_INPUT`` for non-positive units,
            ``INSUFFICIENT_BALANCE`` when the balance does not cover them
        """
        if not isinstance(units, int) or isinstance(units, bool) or units <= 0:
            return credit_schemas.CreditMutationResult.failure(
                FailureReason.INVALID_INPUT, "Units must be a positive integer"
            )
        if not await user_exists(self.db, user_id):
            return credit_schemas.CreditMutationResult.failure(FailureReason.NOT_FOUND, "User not found")

        replay = await self._replay(user_id, idempotency_key)
        if replay is not None:
            return replay

        try:
            applied = await self._apply_consume(
                user_id,
                units,
                related_id=related_id,
                related_type=related_type,
                description=description or f"Consumed {units} credits",
                idempotency_key=idempotency_key
            )
            if applied is not None:
                await self.db.commit()
        except IntegrityError as e:
            replay = await self._replay_after_conflict(user_id, idempotency_key, e)
            if replay is None:
                raise
            return replay

        if applied is None:
            await self.db.rollback()
            balance = (await self.get_balance(user_id)).balance
            logger.warning(f"Insufficient credits for user {user_id}. Required: {units}, Available: {balance}",
                           event_type="insufficient_credits",
                           user_id=user_id,
                           required=units,
                           available=balance)
            return credit_schemas.CreditMutationResult.failure(
                FailureReason.INSUFFICIENT_BALANCE,
                f"Insufficient credits. Required: {units}, Available: {balance}",
                balance=balance
            )

        transaction, new_balance = applied
        logger.info(f"Consumed {units} credits from user {user_id}. New balance: {new_balance}",
                    event_type="credits_consumed",
                    user_id=user_id,
                    units=units,
                    related_id=related_id,
                    new_balance=new_balance,
                    transaction_id=transaction.id)
        return credit_schemas.CreditMutationResult(
            success=True,
            message="Credits consumed",
            balance=new_balance,
            amount=-units,
            transaction_id=transaction.id
        )

    @db_error_handler()
    async def recharge(
        self,
        user_id: str,
        units: int,
        transaction_type: CreditTransactionType = CreditTransactionType.RECHARGE,
        related_id: Optional[str] = None,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> credit_schemas.CreditMutationResult:
        """Add ``units`` credits (recharge, grant or refund)."""
        if not isinstance(units, int) or isinstance(units, bool) or units <= 0:
            return credit_schemas.CreditMutationResult.failure(
                FailureReason.INVALID_INPUT, "Units must be a positive integer"
            )
        if not await user_exists(self.db, user_id):
            return credit_schemas.CreditMutationResult.failure(FailureReason.NOT_FOUND, "User not found")

        replay = await self._replay(user_id, idempotency_key)
        if replay is not None:
            return replay

        try:
            transaction, new_balance = await self._apply_recharge(
                user_id,
                units,
                transaction_type=transaction_type,
                related_id=related_id,
                description=description or f"Added {units} credits",
                idempotency_key=idempotency_key
            )
            await self.db.commit()
        except IntegrityError as e:
            replay = await self._replay_after_conflict(user_id, idempotency_key, e)
            if replay is None:
                raise
            return replay

        logger.info(f"Added {units} credits to user {user_id}. New balance: {new_balance}",
                    event_type="credits_added",
                    user_id=user_id,
                    units=units,
                    transaction_type=transaction_type.value,
                    new_balance=new_balance,
                    transaction_id=transaction.id)
        return credit_schemas.CreditMutationResult(
            success=True,
            message="Credits added",
            balance=new_balance,
            amount=units,
            transaction_id=transaction.id
        )

    @db_error_handler()
    async def adjust(
        self,
        user_id: str,
        delta: int,
        admin_id: str,
        note: Optional[str] = None
    ) -> credit_schemas.CreditMutationResult:
        """
        Admin adjustment by a signed amount.

        Positive deltas count as recharged and negative ones as consumed, so
        ``balance == total_recharged - total_consumed`` still holds.
        """
        if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
            return credit_schemas.CreditMutationResult.failure(
                FailureReason.INVALID_INPUT, "Adjustment must be a non-zero integer"
            )
        if not await user_exists(self.db, user_id):
            return credit_schemas.CreditMutationResult.failure(FailureReason.NOT_FOUND, "User not found")

        description = note or f"Adjusted by admin {admin_id}"
        if delta > 0:
            transaction, new_balance = await self._apply_recharge(
                user_id, delta,
                transaction_type=CreditTransactionType.ADMIN_ADJUST,
                related_id=admin_id,
                related_type="admin",
                description=description
            )
        else:
            applied = await self._apply_consume(
                user_id, -delta,
                transaction_type=CreditTransactionType.ADMIN_ADJUST,
                related_id=admin_id,
                related_type="admin",
                description=description
            )
            if applied is None:
                await self.db.rollback()
                balance = (await self.get_balance(user_id)).balance
                return credit_schemas.CreditMutationResult.failure(
                    FailureReason.INSUFFICIENT_BALANCE,
                    f"Adjustment would make the balance negative (balance {balance})",
                    balance=balance
                )
            transaction, new_balance = applied

        await self.db.commit()
        logger.info(f"Admin {admin_id} adjusted credits of user {user_id} by {delta}",
                    event_type="credits_adjusted",
                    user_id=user_id,
                    admin_id=admin_id,
                    delta=delta,
                    new_balance=new_balance)
        return credit_schemas.CreditMutationResult(
            success=True,
            message="Balance adjusted",
            balance=new_balance,
            amount=delta,
            transaction_id=transaction.id
        )

    @db_error_handler()
    async def get_transaction_history(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 20
    ) -> credit_schemas.CreditTransactionHistoryResponse:
        """
        Get the user's transactions, most recent first.

        Args:
            user_id: The ID of the user
            skip: Number of records to skip
            limit: Page size, clamped to the configured maximum
        """
        limit = clamp_limit(limit)
        count_result = await self.db.execute(
            select(func.count()).select_from(CreditTransaction).where(
                CreditTransaction.user_id == user_id
            )
        )
        total_count = count_result.scalar_one()

        result = await self.db.execute(
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(desc(CreditTransaction.created_at), desc(CreditTransaction.id))
            .offset(max(0, skip))
            .limit(limit)
        )
        transactions = result.scalars().all()

        logger.debug(f"Retrieved {len(transactions)} of {total_count} credit transactions for user {user_id}",
                     event_type="credit_transactions_retrieved",
                     user_id=user_id,
                     total_count=total_count)

        return credit_schemas.CreditTransactionHistoryResponse(
            transactions=[credit_schemas.CreditTransactionResponse.model_validate(tx) for tx in transactions],
            total_count=total_count
        )
