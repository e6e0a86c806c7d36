"""Credit redeem codes."""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.clock import utc_now, ensure_aware
from economy.core.db_utils import is_unique_violation
from economy.models.credit import (CreditRedeemCode, CreditRedeemHistory, CreditTransactionType,
                                   RedeemCodeStatus)
from economy.schemas import credit_schemas
from economy.schemas.common import FailureReason
from economy.log.logging import logger

from economy.services.credit.base import BaseCreditService
from economy.services.decorators import db_error_handler


class RedeemCodeService:
    """Exchange an admin-issued code for credits, once per user per code."""

    def __init__(self, db: AsyncSession, base_service: BaseCreditService):
        self.db = db
        self.base_service = base_service

    @db_error_handler()
    async def redeem(self, user_id: str, code: str) -> credit_schemas.CreditMutationResult:
        code = (code or "").strip().upper()
        if not code:
            return credit_schemas.CreditMutationResult.failure(FailureReason.INVALID_INPUT, "Code is required")

        result = await self.db.execute(
            select(CreditRedeemCode)
            .where(CreditRedeemCode.code == code)
            .execution_options(populate_existing=True)
        )
        redeem_code = result.scalar_one_or_none()
        if redeem_code is None:
            return credit_schemas.CreditMutationResult.failure(FailureReason.NOT_FOUND, "Redeem code not found")

        now = utc_now()
        expires_at = ensure_aware(redeem_code.expires_at)
        if redeem_code.status != RedeemCodeStatus.ACTIVE.value or (expires_at and expires_at <= now):
            return credit_schemas.CreditMutationResult.failure(FailureReason.UNAVAILABLE, "Redeem code has expired")
        if redeem_code.used_count >= redeem_code.max_uses:
            return credit_schemas.CreditMutationResult.failure(FailureReason.UNAVAILABLE, "Redeem code has been used up")

        history = await self.db.execute(
            select(CreditRedeemHistory.id).where(
                CreditRedeemHistory.code_id == redeem_code.id,
                CreditRedeemHistory.user_id == user_id
            )
        )
        if history.first() is not None:
            return credit_schemas.CreditMutationResult.failure(FailureReason.ALREADY_DONE, "You have already redeemed this code")

        # Take one use only if one is still left
        taken = await self.db.execute(
            update(CreditRedeemCode)
            .where(
                CreditRedeemCode.id == redeem_code.id,
                CreditRedeemCode.status == RedeemCodeStatus.ACTIVE.value,
                CreditRedeemCode.used_count < CreditRedeemCode.max_uses
            )
            .values(used_count=CreditRedeemCode.used_count + 1)
            .returning(CreditRedeemCode.used_count)
            .execution_options(synchronize_session=False)
        )
        if taken.first() is None:
            await self.db.rollback()
            return credit_schemas.CreditMutationResult.failure(FailureReason.UNAVAILABLE, "Redeem code has been used up")

        credits = redeem_code.credits
        code_id = redeem_code.id
        try:
            self.db.add(CreditRedeemHistory(code_id=code_id, user_id=user_id, credits=credits, created_at=now))
            transaction, new_balance = await self.base_service._apply_recharge(
                user_id,
                credits,
                transaction_type=CreditTransactionType.REDEEM,
                related_id=str(code_id),
                related_type="redeem_code",
                description=f"Redeemed code {code}"
            )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_unique_violation(e):
                return credit_schemas.CreditMutationResult.failure(
                    FailureReason.ALREADY_DONE, "You have already redeemed this code"
                )
            raise

        logger.info(f"User {user_id} redeemed code {code} for {credits} credits",
                    event_type="redeem_code_used",
                    user_id=user_id,
                    code_id=code_id,
                    credits=credits,
                    new_balance=new_balance)
        return credit_schemas.CreditMutationResult(
            success=True,
            message=f"Redeemed {credits} credits",
            balance=new_balance,
            amount=credits,
            transaction_id=transaction.id
        )
