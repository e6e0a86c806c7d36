"""Tests for points balances, daily check-in and streaks."""

import asyncio
from datetime import date, timedelta

import pytest
from sqlalchemy import select, func

from economy.models.points import CheckInRecord, CheckInRule, PointTransaction, PointSource
from economy.schemas.common import FailureReason
from economy.services.points import PointService

from tests.helpers import business_day, seed_checkin_ladder

DAY = date(2026, 3, 10)


async def point_transactions(db, user_id):
    return (await db.execute(
        select(func.count()).select_from(PointTransaction).where(PointTransaction.user_id == user_id)
    )).scalar_one()


class TestCheckIn:
    """One check-in per user per reference day."""

    async def test_first_check_in(self, db, user):
        await seed_checkin_ladder(db)
        with business_day(DAY):
            result = await PointService(db).check_in(user.id)

        assert result.success is True
        assert result.consecutive_days == 1
        assert result.points_awarded == 10
        assert result.balance == 10

    async def test_second_check_in_same_day_is_already_done(self, db, user):
        await seed_checkin_ladder(db)
        service = PointService(db)
        with business_day(DAY):
            await service.check_in(user.id)
            again = await service.check_in(user.id)

        assert again.success is False
        assert again.reason == FailureReason.ALREADY_DONE
        assert again.consecutive_days == 1
        assert again.balance == 10
        assert await point_transactions(db, user.id) == 1

    async def test_concurrent_check_ins_apply_once(self, db, user, session_factory):
        await seed_checkin_ladder(db)

        async def check_in():
            async with session_factory() as session:
                return await PointService(session).check_in(user.id)

        with business_day(DAY):
            results = await asyncio.gather(*(check_in() for _ in range(4)))
            balance = await PointService(db).get_balance(user.id)

        assert sum(1 for r in results if r.success) == 1
        assert all(r.reason == FailureReason.ALREADY_DONE for r in results if not r.success)
        assert balance.balance == 10
        assert await point_transactions(db, user.id) == 1
        records = (await db.execute(select(func.count()).select_from(CheckInRecord))).scalar_one()
        assert records == 1

    async def test_check_in_writes_calendar_record_and_transaction(self, db, user):
        await seed_checkin_ladder(db)
        with business_day(DAY):
            await PointService(db).check_in(user.id)

        record = (await db.execute(select(CheckInRecord))).scalar_one()
        assert record.check_in_date == DAY
        assert record.points == 10
        transaction = (await db.execute(select(PointTransaction))).scalar_one()
        assert transaction.source == PointSource.CHECKIN.value
        assert transaction.related_id == DAY.isoformat()


class TestStreak:
    """The streak grows on consecutive days and restarts after a gap."""

    async def test_consecutive_day_increments(self, db, user):
        await seed_checkin_ladder(db)
        service = PointService(db)
        for offset in range(3):
            with business_day(DAY + timedelta(days=offset)):
                result = await service.check_in(user.id)

        assert result.consecutive_days == 3
        # 10 + 10 + 20 (the 3-day rule)
        assert result.balance == 40

    async def test_gap_resets_to_one(self, db, user):
        await seed_checkin_ladder(db)
        service = PointService(db)
        with business_day(DAY):
            await service.check_in(user.id)
        with business_day(DAY + timedelta(days=1)):
            await service.check_in(user.id)
        with business_day(DAY + timedelta(days=3)):
            result = await service.check_in(user.id)

        assert result.consecutive_days == 1
        assert result.points_awarded == 10

    async def test_effective_streak_reads_zero_after_missed_day(self, db, user):
        await seed_checkin_ladder(db)
        service = PointService(db)
        with business_day(DAY):
            await service.check_in(user.id)
        with business_day(DAY + timedelta(days=1)):
            assert (await service.get_balance(user.id)).consecutive_days == 1
        with business_day(DAY + timedelta(days=2)):
            assert (await service.get_balance(user.id)).consecutive_days == 0

    async def test_highest_qualifying_rule_wins(self, db, user):
        await seed_checkin_ladder(db)
        service = PointService(db)
        results = []
        for offset in range(7):
            with business_day(DAY + timedelta(days=offset)):
                results.append(await service.check_in(user.id))

        assert [r.points_awarded for r in results] == [10, 10, 20, 20, 20, 20, 30]

    async def test_inactive_rules_are_ignored(self, db, user):
        db.add(CheckInRule(name="1-day", consecutive_days=1, points=25, is_active=False))
        await db.commit()
        with business_day(DAY):
            result = await PointService(db).check_in(user.id)

        assert result.points_awarded == 10


class TestRuleFallback:
    async def test_base_points_without_rules(self, db, user):
        with business_day(DAY):
            result = await PointService(db).check_in(user.id)

        assert result.success is True
        assert result.points_awarded == 10

    async def test_base_points_when_no_threshold_qualifies(self, db, user):
        db.add(CheckInRule(name="week", consecutive_days=7, points=70))
        await db.commit()
        with business_day(DAY):
            result = await PointService(db).check_in(user.id)

        assert result.points_awarded == 10


class TestCheckInStatus:
    async def test_status_before_first_check_in(self, db, user):
        await seed_checkin_ladder(db)
        with business_day(DAY):
            status = await PointService(db).get_check_in_status(user.id)

        assert status.has_checked_in_today is False
        assert status.consecutive_days == 0
        assert status.next_consecutive_days == 1
        assert status.next_points == 10
        assert status.next_rule.consecutive_days == 1
        assert status.today == DAY

    async def test_status_after_check_in_previews_tomorrow(self, db, user):
        await seed_checkin_ladder(db)
        service = PointService(db)
        for offset in range(2):
            with business_day(DAY + timedelta(days=offset)):
                await service.check_in(user.id)

        with business_day(DAY + timedelta(days=1)):
            status = await service.get_check_in_status(user.id)

        assert status.has_checked_in_today is True
        assert status.consecutive_days == 2
        assert status.next_consecutive_days == 3
        assert status.next_points == 20
        assert status.next_rule.consecutive_days == 3
        assert status.month_check_in_days == 2
        assert [r.check_in_date for r in status.recent_check_ins] == [DAY + timedelta(days=1), DAY]


class TestGrantAndHistory:
    async def test_grant_adds_points(self, db, user):
        result = await PointService(db).grant(user.id, 50, source=PointSource.TASK, description="survey")

        assert result.success is True
        assert result.balance == 50
        balance = await PointService(db).get_balance(user.id)
        assert balance.total_earned == 50

    async def test_grant_to_unknown_user(self, db):
        result = await PointService(db).grant("nobody", 50)

        assert result.reason == FailureReason.NOT_FOUND
        assert await point_transactions(db, "nobody") == 0

    async def test_check_in_unknown_user(self, db):
        await seed_checkin_ladder(db)
        with business_day(DAY):
            result = await PointService(db).check_in("nobody")

        assert result.reason == FailureReason.NOT_FOUND
        assert (await PointService(db).get_balance("nobody")).balance == 0

    @pytest.mark.parametrize("points", [0, -5])
    async def test_grant_rejects_non_positive(self, db, user, points):
        result = await PointService(db).grant(user.id, points)

        assert result.reason == FailureReason.INVALID_INPUT

    async def test_history_is_most_recent_first(self, db, user):
        service = PointService(db)
        await service.grant(user.id, 1)
        await service.grant(user.id, 2)

        history = await service.get_transaction_history(user.id)

        assert history.total_count == 2
        assert [t.amount for t in history.transactions] == [2, 1]
