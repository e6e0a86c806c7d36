"""Tests for exchanging points for credits."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from economy.core.exceptions import LedgerStoreError

from economy.models.credit import CreditTransaction, CreditTransactionType
from economy.models.points import PointExchangeHistory, PointSource, PointTransaction
from economy.schemas.common import FailureReason
from economy.services.credit import BaseCreditService, CreditService
from economy.services.points import PointService

from tests.helpers import create_rate


async def fund_points(db, user_id, points):
    await PointService(db).grant(user_id, points, source=PointSource.TASK)


class TestExchange:
    """The point debit, the credit recharge and the history row commit together."""

    async def test_round_trip(self, db, user):
        await create_rate(db, points_required=100, credits_received=1)
        await fund_points(db, user.id, 350)

        result = await PointService(db).exchange(user.id, 3)

        assert result.success is True
        assert result.points_spent == 300
        assert result.credits_received == 3
        assert result.point_balance == 50
        assert result.credit_balance == 3
        assert (await CreditService(db).get_balance(user.id)).balance == 3
        credit_tx = (await db.execute(select(CreditTransaction))).scalar_one()
        assert credit_tx.transaction_type == CreditTransactionType.EXCHANGE.value
        history = (await db.execute(select(PointExchangeHistory))).scalar_one()
        assert history.points_spent == 300
        assert history.exchange_rate == Decimal("100.00")
        assert credit_tx.related_id == str(history.id)

    async def test_insufficient_points_changes_nothing(self, db, user):
        await create_rate(db)
        await fund_points(db, user.id, 150)

        result = await PointService(db).exchange(user.id, 2)

        assert result.success is False
        assert result.reason == FailureReason.INSUFFICIENT_POINTS
        assert result.point_balance == 150
        assert (await PointService(db).get_balance(user.id)).balance == 150
        assert (await CreditService(db).get_balance(user.id)).balance == 0
        assert (await db.execute(select(func.count()).select_from(PointExchangeHistory))).scalar_one() == 0
        assert (await db.execute(select(func.count()).select_from(CreditTransaction))).scalar_one() == 0

    async def test_failed_credit_step_rolls_back_the_point_debit(self, db, user):
        await create_rate(db)
        await fund_points(db, user.id, 500)
        broken = OperationalError("UPDATE user_credits", {}, Exception("disk I/O error"))

        with patch.object(BaseCreditService, "_apply_recharge", AsyncMock(side_effect=broken)):
            with pytest.raises(LedgerStoreError):
                await PointService(db).exchange(user.id, 2)

        assert (await PointService(db).get_balance(user.id)).balance == 500
        assert (await CreditService(db).get_balance(user.id)).balance == 0
        assert (await db.execute(select(func.count()).select_from(PointExchangeHistory))).scalar_one() == 0
        spends = (await db.execute(
            select(func.count()).select_from(PointTransaction).where(PointTransaction.source == PointSource.EXCHANGE.value)
        )).scalar_one()
        assert spends == 0

    async def test_unknown_user(self, db):
        await create_rate(db)

        assert (await PointService(db).exchange("nobody", 1)).reason == FailureReason.NOT_FOUND

    @pytest.mark.parametrize("credits", [0, -1])
    async def test_non_positive_credits(self, db, user, credits):
        await create_rate(db)

        result = await PointService(db).exchange(user.id, credits)

        assert result.reason == FailureReason.INVALID_INPUT

    async def test_credits_must_match_rate_multiple(self, db, user):
        await create_rate(db, points_required=450, credits_received=5)
        await fund_points(db, user.id, 1000)

        result = await PointService(db).exchange(user.id, 7)

        assert result.reason == FailureReason.INVALID_INPUT
        ok = await PointService(db).exchange(user.id, 10)
        assert ok.points_spent == 900

    async def test_unknown_or_inactive_rate(self, db, user):
        inactive = await create_rate(db, is_active=False)
        await fund_points(db, user.id, 500)

        assert (await PointService(db).exchange(user.id, 1)).reason == FailureReason.NOT_FOUND
        assert (await PointService(db).exchange(user.id, 1, rate_id=inactive.id)).reason == FailureReason.NOT_FOUND
        assert (await PointService(db).exchange(user.id, 1, rate_id=9999)).reason == FailureReason.NOT_FOUND

    async def test_default_rate_is_first_by_sort_order(self, db, user):
        await create_rate(db, points_required=200, credits_received=1, sort_order=5)
        await create_rate(db, points_required=80, credits_received=1, sort_order=1)
        await fund_points(db, user.id, 500)

        result = await PointService(db).exchange(user.id, 1)

        assert result.points_spent == 80

    async def test_explicit_rate_id(self, db, user):
        await create_rate(db, points_required=80, credits_received=1, sort_order=1)
        premium = await create_rate(db, points_required=200, credits_received=1, sort_order=5)
        await fund_points(db, user.id, 500)

        result = await PointService(db).exchange(user.id, 2, rate_id=premium.id)

        assert result.points_spent == 400

    async def test_idempotent_replay(self, db, user):
        await create_rate(db)
        await fund_points(db, user.id, 500)
        service = PointService(db)

        first = await service.exchange(user.id, 2, idempotency_key="ex-1")
        second = await service.exchange(user.id, 2, idempotency_key="ex-1")

        assert first.success and second.success
        assert second.replayed is True
        assert second.points_spent == 200
        assert second.credits_received == 2
        assert (await service.get_balance(user.id)).balance == 300
        assert (await CreditService(db).get_balance(user.id)).balance == 2

    async def test_concurrent_exchanges_never_overspend(self, db, user, session_factory):
        await create_rate(db)
        await fund_points(db, user.id, 250)

        async def exchange():
            async with session_factory() as session:
                return await PointService(session).exchange(user.id, 1)

        results = await asyncio.gather(*(exchange() for _ in range(5)))

        assert sum(1 for r in results if r.success) == 2
        assert (await PointService(db).get_balance(user.id)).balance == 50
        assert (await CreditService(db).get_balance(user.id)).balance == 2
        spends = (await db.execute(
            select(func.count()).select_from(PointTransaction).where(PointTransaction.amount < 0)
        )).scalar_one()
        assert spends == 2


class TestRatesAndHistory:
    async def test_list_rates_only_active_in_order(self, db):
        await create_rate(db, points_required=200, sort_order=2)
        await create_rate(db, points_required=100, sort_order=1)
        await create_rate(db, points_required=50, sort_order=0, is_active=False)

        rates = await PointService(db).list_exchange_rates()

        assert [r.points_required for r in rates] == [100, 200]

    async def test_exchange_history(self, db, user):
        await create_rate(db)
        await fund_points(db, user.id, 500)
        service = PointService(db)
        await service.exchange(user.id, 1)
        await service.exchange(user.id, 2)

        history = await service.get_exchange_history(user.id)

        assert [h.credits_received for h in history] == [2, 1]
