"""Daily check-in with streak tracking."""

from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update, func, or_, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.clock import utc_now, business_today
from economy.core.config import settings
from economy.core.db_utils import is_unique_violation
from economy.models.points import (PointAccount, CheckInRecord, CheckInRule, PointSource,
                                   PointTransactionType)
from economy.schemas import points_schemas
from economy.schemas.common import FailureReason
from economy.log.logging import logger

from economy.services.decorators import db_error_handler
from economy.services.points.base import BasePointService, effective_streak
from economy.services.utils import ensure_account, user_exists

RECENT_CHECK_INS = 7


class CheckInService:
    """
    Once-per-day check-in.

    The streak grows by one when the previous check-in was yesterday and
    restarts at 1 otherwise. Points come from the highest active rule whose
    threshold is not above the new streak, or ``CHECKIN_BASE_POINTS``.
    """

    def __init__(self, db: AsyncSession, base_service: BasePointService):
        self.db = db
        self.base_service = base_service

    async def rule_for_streak(self, streak: int) -> Optional[CheckInRule]:
        result = await self.db.execute(
            select(CheckInRule)
            .where(CheckInRule.is_active.is_(True), CheckInRule.consecutive_days <= streak)
            .order_by(desc(CheckInRule.consecutive_days), CheckInRule.sort_order)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def points_for_streak(self, streak: int) -> int:
        rule = await self.rule_for_streak(streak)
        return rule.points if rule is not None else settings.CHECKIN_BASE_POINTS

    async def next_rule(self, streak: int) -> Optional[CheckInRule]:
        """The first active rule with a threshold above ``streak``."""
        result = await self.db.execute(
            select(CheckInRule)
            .where(CheckInRule.is_active.is_(True), CheckInRule.consecutive_days > streak)
            .order_by(CheckInRule.consecutive_days, CheckInRule.sort_order)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_status(self, user_id: str) -> points_schemas.CheckInStatusResponse:
        """
        Today's check-in state. Non-mutating.

        ``next_points`` is what a check-in would award right now, or tomorrow
        when today's check-in is already done.
        """
        today = business_today()
        yesterday = today - timedelta(days=1)
        account = await self.base_service.get_account(user_id)
        last = account.last_check_in_date if account else None

        streak = effective_streak(account)
        next_streak = streak + 1 if last in (today, yesterday) else 1
        next_rule = await self.next_rule(streak)

        month_days = (await self.db.execute(
            select(func.count()).select_from(CheckInRecord).where(
                CheckInRecord.user_id == user_id,
                CheckInRecord.check_in_date >= today.replace(day=1),
                CheckInRecord.check_in_date <= today
            )
        )).scalar_one()

        recent = (await self.db.execute(
            select(CheckInRecord)
            .where(CheckInRecord.user_id == user_id)
            .order_by(desc(CheckInRecord.check_in_date))
            .limit(RECENT_CHECK_INS)
        )).scalars().all()

        return points_schemas.CheckInStatusResponse(
            has_checked_in_today=last == today,
            consecutive_days=streak,
            next_consecutive_days=next_streak,
            next_points=await self.points_for_streak(next_streak),
            next_rule=points_schemas.CheckInRuleResponse.model_validate(next_rule) if next_rule else None,
            month_check_in_days=month_days,
            recent_check_ins=[points_schemas.CheckInRecordResponse.model_validate(r) for r in recent],
            today=today
        )

    def _already_done(self, account: Optional[PointAccount]) -> points_schemas.CheckInResult:
        return points_schemas.CheckInResult.failure(
            FailureReason.ALREADY_DONE,
            "Already checked in today",
            consecutive_days=account.consecutive_days if account else 0,
            balance=account.balance if account else None
        )

    @db_error_handler()
    async def check_in(self, user_id: str) -> points_schemas.CheckInResult:
        """
        Check in for today.

        The account update is conditional on ``last_check_in_date < today`` and
        the per-day ``CheckInRecord`` is unique, so concurrent calls for the
        same user and day apply once; the others report ``ALREADY_DONE``.
        """
        today = business_today()
        yesterday = today - timedelta(days=1)

        if not await user_exists(self.db, user_id):
            return points_schemas.CheckInResult.failure(FailureReason.NOT_FOUND, "User not found")
        await ensure_account(self.db, PointAccount, user_id)
        account = await self.base_service.get_account(user_id)
        if account.last_check_in_date == today:
            already_done = self._already_done(account)
            await self.db.rollback()
            logger.info(f"User {user_id} already checked in on {today}",
                        event_type="checkin_already_done",
                        user_id=user_id)
            return already_done

        streak = account.consecutive_days + 1 if account.last_check_in_date == yesterday else 1
        points = await self.points_for_streak(streak)
        now = utc_now()

        result = await self.db.execute(
            update(PointAccount)
            .where(
                PointAccount.user_id == user_id,
                or_(PointAccount.last_check_in_date.is_(None), PointAccount.last_check_in_date < today)
            )
            .values(
                balance=PointAccount.balance + points,
                total_earned=PointAccount.total_earned + points,
                consecutive_days=streak,
                last_check_in_date=today,
                updated_at=now
            )
            .returning(PointAccount.balance)
            .execution_options(synchronize_session=False)
        )
        row = result.first()
        if row is None:
            await self.db.rollback()
            return self._already_done(await self.base_service.get_account(user_id))

        new_balance = row[0]
        self.db.add(CheckInRecord(
            user_id=user_id,
            check_in_date=today,
            points=points,
            consecutive_days=streak,
            created_at=now
        ))
        self.base_service._record(
            user_id, PointTransactionType.EARN, points, new_balance, PointSource.CHECKIN,
            related_id=today.isoformat(),
            description=f"Daily check-in, day {streak} of streak"
        )

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_unique_violation(e):
                return self._already_done(await self.base_service.get_account(user_id))
            raise

        logger.info(f"User {user_id} checked in: +{points} points, streak {streak}",
                    event_type="checkin_completed",
                    user_id=user_id,
                    points=points,
                    consecutive_days=streak,
                    new_balance=new_balance)
        return points_schemas.CheckInResult(
            success=True,
            message=f"Checked in, {points} points awarded",
            points_awarded=points,
            consecutive_days=streak,
            balance=new_balance
        )
