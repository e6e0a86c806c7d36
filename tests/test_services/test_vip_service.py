"""Tests for VIP orders, grants, redeem codes and expiry stacking."""

import asyncio
from datetime import datetime, timedelta, UTC
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from economy.core.clock import ensure_aware, utc_now
from economy.models.vip import (VipOrder, VipOrderStatus, VipPlan, VipRedeemCode, VipRedeemCodeType,
                                VipRedeemHistory, VipStatus)
from economy.schemas.common import FailureReason
from economy.services.utils import add_months
from economy.services.vip_service import VipService, stacked_expiry

from tests.helpers import create_test_user, persist


@pytest.fixture
async def monthly_plan(db):
    plan = VipPlan(name="Monthly", price=Decimal("19.90"), duration_months=1, sort_order=0)
    return await persist(db, plan)


@pytest.fixture
async def quarterly_plan(db):
    plan = VipPlan(name="Quarterly", price=Decimal("49.90"), duration_months=3, sort_order=1)
    return await persist(db, plan)


async def order_in_review(db, user, plan):
    service = VipService(db)
    created = await service.create_order(user.id, plan.id)
    await service.submit_payment(user.id, created.order.order_no, "bank_transfer", "TX-1")
    return created.order


class TestStackedExpiry:
    NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)

    def test_extends_future_expiry(self):
        current = datetime(2026, 4, 20, 8, 30, tzinfo=UTC)
        assert stacked_expiry(current, 3, self.NOW) == datetime(2026, 7, 20, 8, 30, tzinfo=UTC)

    def test_lapsed_expiry_starts_from_now(self):
        current = datetime(2026, 1, 1, tzinfo=UTC)
        assert stacked_expiry(current, 1, self.NOW) == datetime(2026, 4, 10, 12, 0, tzinfo=UTC)

    def test_no_expiry_starts_from_now(self):
        assert stacked_expiry(None, 12, self.NOW) == datetime(2027, 3, 10, 12, 0, tzinfo=UTC)

    def test_naive_expiry_is_utc(self):
        assert stacked_expiry(datetime(2026, 5, 1), 1, self.NOW) == datetime(2026, 6, 1, tzinfo=UTC)

    def test_month_end_is_clamped(self):
        current = datetime(2026, 1, 31, tzinfo=UTC)
        assert stacked_expiry(current, 1, datetime(2026, 1, 1, tzinfo=UTC)) == datetime(2026, 2, 28, tzinfo=UTC)

    def test_days_are_added_after_months(self):
        current = datetime(2026, 4, 20, tzinfo=UTC)
        assert stacked_expiry(current, 1, self.NOW, days=7) == datetime(2026, 5, 27, tzinfo=UTC)


class TestGrant:
    async def test_grant_activates_vip(self, db, admin_user, user, monthly_plan):
        before = utc_now()
        result = await VipService(db).grant(admin_user.id, user.id, monthly_plan.id, notes="promo")
        after = utc_now()

        assert result.success is True
        assert result.order.status == VipOrderStatus.PAID.value
        assert result.order.payment_method == "manual"
        assert add_months(before, 1) <= result.vip_expire_date <= add_months(after, 1)
        assert await VipService(db).is_active(user.id) is True

    async def test_second_grant_stacks(self, db, admin_user, user, monthly_plan, quarterly_plan):
        service = VipService(db)
        first = await service.grant(admin_user.id, user.id, monthly_plan.id)
        second = await service.grant(admin_user.id, user.id, quarterly_plan.id)

        assert second.vip_expire_date == add_months(first.vip_expire_date, 3)
        status = await service.get_status(user.id)
        assert ensure_aware(status.vip_expire_date) == second.vip_expire_date

    async def test_lapsed_vip_restarts_from_now(self, db, admin_user, user, monthly_plan):
        db.add(VipStatus(user_id=user.id, is_vip=True, vip_expire_date=utc_now() - timedelta(days=40)))
        await db.commit()

        before = utc_now()
        result = await VipService(db).grant(admin_user.id, user.id, monthly_plan.id)

        assert result.vip_expire_date >= add_months(before, 1)

    async def test_unknown_plan_or_user(self, db, admin_user, user, monthly_plan):
        service = VipService(db)

        assert (await service.grant(admin_user.id, user.id, 9999)).reason == FailureReason.NOT_FOUND
        assert (await service.grant(admin_user.id, "nobody", monthly_plan.id)).reason == FailureReason.NOT_FOUND


class TestStatus:
    async def test_no_status_row(self, db, user):
        status = await VipService(db).get_status(user.id)

        assert status.is_active is False
        assert status.days_remaining == 0

    async def test_expiry_decides_not_flag(self, db, user):
        db.add(VipStatus(user_id=user.id, is_vip=True, vip_expire_date=utc_now() - timedelta(minutes=1)))
        await db.commit()

        status = await VipService(db).get_status(user.id)

        assert status.is_vip is True
        assert status.is_active is False
        assert await VipService(db).is_active(user.id) is False


class TestOrderLifecycle:
    async def test_create_order(self, db, user, monthly_plan):
        result = await VipService(db).create_order(user.id, monthly_plan.id)

        assert result.success is True
        assert result.order.status == VipOrderStatus.PENDING.value
        assert result.order.amount == Decimal("19.90")
        assert result.order.order_no.startswith("VIP")

    async def test_auto_renew_is_discounted(self, db, user, monthly_plan):
        result = await VipService(db).create_order(user.id, monthly_plan.id, auto_renew=True)

        assert result.order.amount == Decimal("17.91")
        assert result.order.auto_renew is True

    async def test_inactive_plan(self, db, user):
        plan = VipPlan(name="Retired", price=Decimal("9.90"), duration_months=1, is_active=False)
        db.add(plan)
        await db.commit()

        assert (await VipService(db).create_order(user.id, plan.id)).reason == FailureReason.NOT_FOUND
        assert (await VipService(db).list_plans()) == []

    async def test_submit_approve(self, db, user, admin_user, monthly_plan):
        order = await order_in_review(db, user, monthly_plan)
        service = VipService(db)

        result = await service.approve_order(order.id, admin_user.id, notes="ok")

        assert result.success is True
        assert result.order.status == VipOrderStatus.COMPLETED.value
        assert result.order.reviewed_by == admin_user.id
        assert result.order.expire_at is not None
        assert await service.is_active(user.id) is True

    async def test_double_approve_is_rejected(self, db, user, admin_user, monthly_plan):
        order = await order_in_review(db, user, monthly_plan)
        service = VipService(db)
        first = await service.approve_order(order.id, admin_user.id)

        second = await service.approve_order(order.id, admin_user.id)

        assert second.success is False
        assert second.reason == FailureReason.INVALID_STATE
        status = await service.get_status(user.id)
        assert ensure_aware(status.vip_expire_date) == first.vip_expire_date

    async def test_approve_requires_review(self, db, user, admin_user, monthly_plan):
        service = VipService(db)
        created = await service.create_order(user.id, monthly_plan.id)

        result = await service.approve_order(created.order.id, admin_user.id)

        assert result.reason == FailureReason.INVALID_STATE
        assert await service.is_active(user.id) is False

    async def test_approve_unknown_order(self, db, admin_user):
        assert (await VipService(db).approve_order(9999, admin_user.id)).reason == FailureReason.NOT_FOUND

    async def test_reject_needs_reason(self, db, user, admin_user, monthly_plan):
        order = await order_in_review(db, user, monthly_plan)
        service = VipService(db)

        assert (await service.reject_order(order.id, admin_user.id, "  ")).reason == FailureReason.INVALID_INPUT
        result = await service.reject_order(order.id, admin_user.id, "payment not received")

        assert result.order.status == VipOrderStatus.REJECTED.value
        assert result.order.admin_notes == "payment not received"
        assert await service.is_active(user.id) is False

    async def test_cancel_only_pending(self, db, user, monthly_plan):
        service = VipService(db)
        created = await service.create_order(user.id, monthly_plan.id)

        cancelled = await service.cancel_order(user.id, created.order.order_no)
        again = await service.cancel_order(user.id, created.order.order_no)

        assert cancelled.order.status == VipOrderStatus.CANCELLED.value
        assert again.reason == FailureReason.INVALID_STATE

    async def test_orders_are_private(self, db, user, monthly_plan):
        created = await VipService(db).create_order(user.id, monthly_plan.id)

        result = await VipService(db).submit_payment("someone-else", created.order.order_no, "card", "TX")

        assert result.reason == FailureReason.NOT_FOUND

    async def test_list_orders_newest_first(self, db, user, monthly_plan, quarterly_plan):
        service = VipService(db)
        await service.create_order(user.id, monthly_plan.id)
        await service.create_order(user.id, quarterly_plan.id)

        orders = await service.list_orders(user.id)

        assert [o.plan_id for o in orders] == [quarterly_plan.id, monthly_plan.id]
        rows = (await db.execute(select(VipOrder).where(VipOrder.user_id == user.id))).scalars().all()
        assert len(rows) == 2


class TestRedeemCodes:
    """VIP codes stack onto the expiry, once per user and never beyond max_uses."""

    async def _code(self, db, **overrides):
        values = dict(code="VIP-GIFT", code_type=VipRedeemCodeType.DAYS.value, days=7, max_uses=2)
        values.update(overrides)
        return await persist(db, VipRedeemCode(**values))

    async def test_days_code(self, db, user):
        await self._code(db)
        before = utc_now()

        result = await VipService(db).redeem_code(user.id, " vip-gift ")

        assert result.success is True
        assert (result.months, result.days) == (0, 7)
        assert result.vip_expire_date >= before + timedelta(days=7)
        assert await VipService(db).is_active(user.id) is True

    async def test_plan_code_uses_plan_duration(self, db, user, quarterly_plan):
        await self._code(db, code_type=VipRedeemCodeType.PLAN.value, plan_id=quarterly_plan.id, days=None)

        result = await VipService(db).redeem_code(user.id, "VIP-GIFT")

        assert result.months == 3
        assert result.plan_name == "Quarterly"

    async def test_code_stacks_onto_active_vip(self, db, admin_user, user, monthly_plan):
        await self._code(db, code_type=VipRedeemCodeType.DURATION.value, duration_months=2, days=None)
        service = VipService(db)
        granted = await service.grant(admin_user.id, user.id, monthly_plan.id)

        result = await service.redeem_code(user.id, "VIP-GIFT")

        assert result.vip_expire_date == add_months(granted.vip_expire_date, 2)
        history = (await db.execute(select(VipRedeemHistory))).scalar_one()
        assert ensure_aware(history.vip_expire_date) == result.vip_expire_date

    async def test_second_redeem_by_same_user(self, db, user):
        await self._code(db)
        service = VipService(db)
        first = await service.redeem_code(user.id, "VIP-GIFT")

        result = await service.redeem_code(user.id, "VIP-GIFT")

        assert result.reason == FailureReason.ALREADY_DONE
        status = await service.get_status(user.id)
        assert ensure_aware(status.vip_expire_date) == first.vip_expire_date

    async def test_used_up_expired_and_unknown(self, db, user):
        await self._code(db, max_uses=1, used_count=1)
        await self._code(db, code="OLD-GIFT", expires_at=utc_now() - timedelta(days=1))
        service = VipService(db)

        assert (await service.redeem_code(user.id, "VIP-GIFT")).reason == FailureReason.UNAVAILABLE
        assert (await service.redeem_code(user.id, "OLD-GIFT")).reason == FailureReason.UNAVAILABLE
        assert (await service.redeem_code(user.id, "NOPE")).reason == FailureReason.NOT_FOUND
        assert (await service.redeem_code("nobody", "VIP-GIFT")).reason == FailureReason.NOT_FOUND
        assert await service.is_active(user.id) is False

    async def test_concurrent_redeems_respect_max_uses(self, db, session_factory):
        code = await self._code(db, max_uses=2)
        users = [await create_test_user(db) for _ in range(4)]

        async def redeem(user_id):
            async with session_factory() as session:
                return await VipService(session).redeem_code(user_id, "VIP-GIFT")

        results = await asyncio.gather(*(redeem(u.id) for u in users))

        assert sum(1 for r in results if r.success) == 2
        used = (await db.execute(
            select(VipRedeemCode.used_count).where(VipRedeemCode.id == code.id)
        )).scalar_one()
        assert used == 2
        history_count = (await db.execute(select(func.count()).select_from(VipRedeemHistory))).scalar_one()
        assert history_count == 2


class TestCreateRedeemCodes:
    async def test_generated_codes(self, db, admin_user):
        result = await VipService(db).create_redeem_codes(
            admin_user.id, VipRedeemCodeType.DURATION, duration_months=1, days=30, quantity=3
        )

        assert result.success is True
        assert len({c.code for c in result.codes}) == 3
        assert all(c.duration_months == 1 and c.days is None for c in result.codes)
        assert all(c.status == "active" and c.used_count == 0 for c in result.codes)

    async def test_custom_code_is_normalized_and_unique(self, db, admin_user):
        service = VipService(db)
        created = await service.create_redeem_codes(admin_user.id, VipRedeemCodeType.DAYS, days=3, code="summer26")

        duplicate = await service.create_redeem_codes(admin_user.id, VipRedeemCodeType.DAYS, days=3, code="SUMMER26")

        assert created.codes[0].code == "SUMMER26"
        assert duplicate.reason == FailureReason.ALREADY_DONE

    async def test_invalid_requests(self, db, admin_user):
        service = VipService(db)

        assert (await service.create_redeem_codes(admin_user.id, VipRedeemCodeType.PLAN, plan_id=9999)).reason \
            == FailureReason.NOT_FOUND
        assert (await service.create_redeem_codes(admin_user.id, VipRedeemCodeType.DURATION)).reason \
            == FailureReason.INVALID_INPUT
        assert (await service.create_redeem_codes(admin_user.id, VipRedeemCodeType.DAYS, days=1, quantity=2,
                                                  code="TWICE")).reason == FailureReason.INVALID_INPUT
        assert await service.list_redeem_codes() == []
