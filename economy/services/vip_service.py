"""VIP plans, the order lifecycle, redeem codes and expiry stacking."""

import secrets
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from sqlalchemy import select, update, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from economy.core.clock import utc_now, ensure_aware
from economy.core.config import settings
from economy.core.db_utils import is_unique_violation
from economy.models.credit import RedeemCodeStatus
from economy.models.vip import (VipPlan, VipOrder, VipOrderStatus, VipStatus, VipRedeemCode, VipRedeemCodeType,
                                VipRedeemHistory)
from economy.schemas import vip_schemas
from economy.schemas.common import FailureReason
from economy.log.logging import logger

from economy.services.decorators import db_error_handler
from economy.services.utils import (ensure_account, add_months, generate_order_no, generate_redeem_code, clamp_limit,
                                    user_exists)


def stacked_expiry(current_expiry: Optional[datetime], months: int, now: Optional[datetime] = None,
                   days: int = 0) -> datetime:
    """
    New expiry after buying ``months`` (and ``days``) more.

    Extends from the current expiry when it is still in the future, otherwise
    from now, so lapsed time is neither charged nor credited.
    """
    now = now or utc_now()
    current_expiry = ensure_aware(current_expiry)
    base = current_expiry if current_expiry is not None and current_expiry > now else now
    return add_months(base, months) + timedelta(days=days)


class VipService:
    """
    VIP orders and status.

    Order transitions are conditional updates on the current status:
    ``pending -> in_review -> completed | rejected`` and ``pending ->
    cancelled``. Admin grants create ``paid`` orders directly.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_plans(self) -> List[VipPlan]:
        result = await self.db.execute(
            select(VipPlan).where(VipPlan.is_active.is_(True)).order_by(VipPlan.sort_order, VipPlan.id)
        )
        return list(result.scalars().all())

    async def get_vip_status(self, user_id: str) -> Optional[VipStatus]:
        result = await self.db.execute(
            select(VipStatus)
            .where(VipStatus.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def is_active(self, user_id: str) -> bool:
        """VIP is active while the expiry is in the future; the ``is_vip`` flag is not trusted."""
        status = await self.get_vip_status(user_id)
        if status is None:
            return False
        expiry = ensure_aware(status.vip_expire_date)
        return expiry is not None and expiry > utc_now()

    async def get_status(self, user_id: str) -> vip_schemas.VipStatusResponse:
        status = await self.get_vip_status(user_id)
        if status is None:
            return vip_schemas.VipStatusResponse(user_id=user_id, is_active=False, is_vip=False)

        expiry = ensure_aware(status.vip_expire_date)
        now = utc_now()
        active = expiry is not None and expiry > now
        return vip_schemas.VipStatusResponse(
            user_id=user_id,
            is_active=active,
            is_vip=status.is_vip,
            vip_expire_date=expiry,
            days_remaining=(expiry - now).days if active else 0,
            auto_renew=status.auto_renew
        )

    async def _get_order(self, **criteria) -> Optional[VipOrder]:
        result = await self.db.execute(
            select(VipOrder)
            .filter_by(**criteria)
            .options(selectinload(VipOrder.plan))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _transition(self, order_id: int, from_status: VipOrderStatus, to_status: VipOrderStatus,
                          **values) -> bool:
        """Move an order between statuses; False if it was not in ``from_status``."""
        result = await self.db.execute(
            update(VipOrder)
            .where(VipOrder.id == order_id, VipOrder.status == from_status.value)
            .values(status=to_status.value, updated_at=utc_now(), **values)
            .returning(VipOrder.id)
            .execution_options(synchronize_session=False)
        )
        return result.first() is not None

    async def _extend_expiry(self, user_id: str, months: int, auto_renew: Optional[bool] = None,
                             days: int = 0) -> datetime:
        """Stack ``months`` and ``days`` onto the user's VIP expiry. Flushes, does not commit."""
        await ensure_account(self.db, VipStatus, user_id)
        result = await self.db.execute(
            select(VipStatus)
            .where(VipStatus.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        status = result.scalar_one()

        now = utc_now()
        new_expiry = stacked_expiry(status.vip_expire_date, months, now, days=days)
        status.is_vip = True
        status.vip_expire_date = new_expiry
        status.last_renewal_date = now
        status.updated_at = now
        if auto_renew is not None:
            status.auto_renew = auto_renew
        await self.db.flush()
        return new_expiry

    def _order_result(self, order: VipOrder, message: str, vip_expire_date=None) -> vip_schemas.VipOrderResult:
        return vip_schemas.VipOrderResult(
            success=True,
            message=message,
            order=vip_schemas.VipOrderResponse.model_validate(order),
            vip_expire_date=vip_expire_date
        )

    async def _transition_failure(self, order: Optional[VipOrder], expected: VipOrderStatus) -> vip_schemas.VipOrderResult:
        order_id = order.id if order is not None else None
        await self.db.rollback()
        if order_id is None:
            return vip_schemas.VipOrderResult.failure(FailureReason.NOT_FOUND, "Order not found")
        current = (await self._get_order(id=order_id)).status
        return vip_schemas.VipOrderResult.failure(
            FailureReason.INVALID_STATE,
            f"Order is {current}, expected {expected.value}"
        )

    @db_error_handler()
    async def create_order(self, user_id: str, plan_id: int, auto_renew: bool = False) -> vip_schemas.VipOrderResult:
        """
        Create a pending order for an active plan.

        Auto-renew orders are charged ``VIP_AUTO_RENEW_DISCOUNT`` of the price.
        """
        plan = await self.db.get(VipPlan, plan_id)
        if plan is None or not plan.is_active:
            return vip_schemas.VipOrderResult.failure(FailureReason.NOT_FOUND, "Plan not found")

        amount = Decimal(plan.price)
        if auto_renew:
            amount = (amount * Decimal(settings.VIP_AUTO_RENEW_DISCOUNT)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        now = utc_now()
        order = VipOrder(
            order_no=generate_order_no(),
            user_id=user_id,
            plan_id=plan.id,
            amount=amount,
            status=VipOrderStatus.PENDING.value,
            auto_renew=auto_renew,
            created_at=now,
            updated_at=now
        )
        self.db.add(order)
        await self.db.commit()

        logger.info(f"VIP order {order.order_no} created for user {user_id}",
                    event_type="vip_order_created",
                    user_id=user_id,
                    order_no=order.order_no,
                    plan_id=plan.id,
                    amount=str(amount))
        return self._order_result(order, "Order created")

    @db_error_handler()
    async def submit_payment(
        self,
        user_id: str,
        order_no: str,
        payment_method: str,
        transaction_id: str
    ) -> vip_schemas.VipOrderResult:
        """The user reports having paid; the order waits for admin review."""
        order = await self._get_order(order_no=order_no, user_id=user_id)
        if order is None:
            return vip_schemas.VipOrderResult.failure(FailureReason.NOT_FOUND, "Order not found")

        moved = await self._transition(
            order.id, VipOrderStatus.PENDING, VipOrderStatus.IN_REVIEW,
            payment_method=payment_method,
            user_submitted_transaction_id=transaction_id
        )
        if not moved:
            return await self._transition_failure(order, VipOrderStatus.PENDING)
        await self.db.commit()

        logger.info(f"Payment submitted for VIP order {order_no}",
                    event_type="vip_payment_submitted",
                    user_id=user_id,
                    order_no=order_no,
                    payment_method=payment_method)
        return self._order_result(await self._get_order(id=order.id), "Payment submitted for review")

    @db_error_handler()
    async def cancel_order(self, user_id: str, order_no: str) -> vip_schemas.VipOrderResult:
        order = await self._get_order(order_no=order_no, user_id=user_id)
        if order is None:
            return vip_schemas.VipOrderResult.failure(FailureReason.NOT_FOUND, "Order not found")
        if not await self._transition(order.id, VipOrderStatus.PENDING, VipOrderStatus.CANCELLED):
            return await self._transition_failure(order, VipOrderStatus.PENDING)
        await self.db.commit()
        logger.info(f"VIP order {order_no} cancelled", event_type="vip_order_cancelled", user_id=user_id)
        return self._order_result(await self._get_order(id=order.id), "Order cancelled")

    @db_error_handler()
    async def approve_order(self, order_id: int, admin_id: str, notes: Optional[str] = None) -> vip_schemas.VipOrderResult:
        """
        Complete an order under review and stack its plan onto the user's expiry.

        The status change, the VIP status upsert and the order's ``expire_at``
        are written in one transaction; a second approval finds the order no
        longer ``in_review`` and fails with ``INVALID_STATE``.
        """
        order = await self._get_order(id=order_id)
        now = utc_now()
        moved = order is not None and await self._transition(
            order_id, VipOrderStatus.IN_REVIEW, VipOrderStatus.COMPLETED,
            paid_at=now,
            reviewed_by=admin_id,
            reviewed_at=now,
            admin_notes=notes
        )
        if not moved:
            return await self._transition_failure(order, VipOrderStatus.IN_REVIEW)

        new_expiry = await self._extend_expiry(order.user_id, order.plan.duration_months, auto_renew=order.auto_renew)
        await self.db.execute(
            update(VipOrder)
            .where(VipOrder.id == order_id)
            .values(expire_at=new_expiry)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        logger.info(f"VIP order {order.order_no} approved by {admin_id}; expiry now {new_expiry.isoformat()}",
                    event_type="vip_order_approved",
                    order_no=order.order_no,
                    user_id=order.user_id,
                    admin_id=admin_id,
                    vip_expire_date=new_expiry.isoformat())
        return self._order_result(await self._get_order(id=order_id), "Order approved", new_expiry)

    @db_error_handler()
    async def reject_order(self, order_id: int, admin_id: str, reason: str) -> vip_schemas.VipOrderResult:
        if not reason or not reason.strip():
            return vip_schemas.VipOrderResult.failure(FailureReason.INVALID_INPUT, "A rejection reason is required")

        order = await self._get_order(id=order_id)
        now = utc_now()
        moved = order is not None and await self._transition(
            order_id, VipOrderStatus.IN_REVIEW, VipOrderStatus.REJECTED,
            reviewed_by=admin_id,
            reviewed_at=now,
            admin_notes=reason.strip()
        )
        if not moved:
            return await self._transition_failure(order, VipOrderStatus.IN_REVIEW)
        await self.db.commit()

        logger.info(f"VIP order {order.order_no} rejected by {admin_id}",
                    event_type="vip_order_rejected",
                    order_no=order.order_no,
                    admin_id=admin_id)
        return self._order_result(await self._get_order(id=order_id), "Order rejected")

    @db_error_handler()
    async def grant(self, admin_id: str, user_id: str, plan_id: int, notes: Optional[str] = None) -> vip_schemas.VipOrderResult:
        """Grant a plan without payment: records a ``paid`` manual order and stacks the expiry."""
        plan = await self.db.get(VipPlan, plan_id)
        if plan is None:
            return vip_schemas.VipOrderResult.failure(FailureReason.NOT_FOUND, "Plan not found")
        if not await user_exists(self.db, user_id):
            return vip_schemas.VipOrderResult.failure(FailureReason.NOT_FOUND, "User not found")

        now = utc_now()
        order = VipOrder(
            order_no=f"MANUAL-{now.strftime('%Y%m%d')}-{secrets.token_hex(4).upper()}",
            user_id=user_id,
            plan_id=plan.id,
            amount=plan.price,
            status=VipOrderStatus.PAID.value,
            payment_method="manual",
            paid_at=now,
            admin_notes=f"Granted by admin {admin_id}. Notes: {notes or 'N/A'}",
            reviewed_by=admin_id,
            reviewed_at=now,
            created_at=now,
            updated_at=now
        )
        self.db.add(order)
        await self.db.flush()

        new_expiry = await self._extend_expiry(user_id, plan.duration_months)
        order.expire_at = new_expiry
        await self.db.commit()

        logger.info(f"Admin {admin_id} granted plan {plan.id} to user {user_id}; expiry now {new_expiry.isoformat()}",
                    event_type="vip_granted",
                    admin_id=admin_id,
                    user_id=user_id,
                    plan_id=plan.id,
                    vip_expire_date=new_expiry.isoformat())
        return self._order_result(order, "VIP granted", new_expiry)

    async def list_orders(self, user_id: str, limit: int = 20) -> List[VipOrder]:
        result = await self.db.execute(
            select(VipOrder)
            .where(VipOrder.user_id == user_id)
            .order_by(desc(VipOrder.created_at), desc(VipOrder.id))
            .limit(clamp_limit(limit))
        )
        return list(result.scalars().all())

    async def _find_redeem_code(self, code: str) -> Optional[VipRedeemCode]:
        result = await self.db.execute(
            select(VipRedeemCode)
            .where(VipRedeemCode.code == code)
            .options(selectinload(VipRedeemCode.plan))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _redeem_grant(redeem_code: VipRedeemCode) -> Tuple[int, int]:
        """(months, days) a code adds to the expiry."""
        if redeem_code.code_type == VipRedeemCodeType.PLAN.value:
            return (redeem_code.plan.duration_months if redeem_code.plan else 0), 0
        if redeem_code.code_type == VipRedeemCodeType.DURATION.value:
            return redeem_code.duration_months or 0, 0
        if redeem_code.code_type == VipRedeemCodeType.DAYS.value:
            return 0, redeem_code.days or 0
        return 0, 0

    @db_error_handler()
    async def redeem_code(self, user_id: str, code: str) -> vip_schemas.VipRedeemResult:
        """
        Exchange a VIP redeem code for VIP time, stacked onto the current expiry.

        A user redeems a given code once; the use counter only moves while
        ``used_count < max_uses``, so concurrent redemptions never overrun it.
        """
        code = (code or "").strip().upper()
        if not code:
            return vip_schemas.VipRedeemResult.failure(FailureReason.INVALID_INPUT, "Code is required")
        if not await user_exists(self.db, user_id):
            return vip_schemas.VipRedeemResult.failure(FailureReason.NOT_FOUND, "User not found")

        redeem_code = await self._find_redeem_code(code)
        if redeem_code is None:
            return vip_schemas.VipRedeemResult.failure(FailureReason.NOT_FOUND, "Redeem code not found")

        now = utc_now()
        expires_at = ensure_aware(redeem_code.expires_at)
        if redeem_code.status != RedeemCodeStatus.ACTIVE.value or (expires_at and expires_at <= now):
            return vip_schemas.VipRedeemResult.failure(FailureReason.UNAVAILABLE, "Redeem code has expired")
        if redeem_code.used_count >= redeem_code.max_uses:
            return vip_schemas.VipRedeemResult.failure(FailureReason.UNAVAILABLE, "Redeem code has been used up")
        months, days = self._redeem_grant(redeem_code)
        if months <= 0 and days <= 0:
            return vip_schemas.VipRedeemResult.failure(FailureReason.UNAVAILABLE, "Redeem code grants nothing")

        history = await self.db.execute(
            select(VipRedeemHistory.id).where(
                VipRedeemHistory.code_id == redeem_code.id,
                VipRedeemHistory.user_id == user_id
            )
        )
        if history.first() is not None:
            return vip_schemas.VipRedeemResult.failure(FailureReason.ALREADY_DONE, "You have already redeemed this code")

        code_id = redeem_code.id
        plan_name = redeem_code.plan.name if redeem_code.plan else None
        taken = await self.db.execute(
            update(VipRedeemCode)
            .where(
                VipRedeemCode.id == code_id,
                VipRedeemCode.status == RedeemCodeStatus.ACTIVE.value,
                VipRedeemCode.used_count < VipRedeemCode.max_uses
            )
            .values(used_count=VipRedeemCode.used_count + 1)
            .returning(VipRedeemCode.used_count)
            .execution_options(synchronize_session=False)
        )
        if taken.first() is None:
            await self.db.rollback()
            return vip_schemas.VipRedeemResult.failure(FailureReason.UNAVAILABLE, "Redeem code has been used up")

        try:
            new_expiry = await self._extend_expiry(user_id, months, days=days)
            self.db.add(VipRedeemHistory(
                code_id=code_id,
                user_id=user_id,
                months=months,
                days=days,
                vip_expire_date=new_expiry,
                created_at=now
            ))
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_unique_violation(e):
                return vip_schemas.VipRedeemResult.failure(
                    FailureReason.ALREADY_DONE, "You have already redeemed this code"
                )
            raise

        logger.info(f"User {user_id} redeemed VIP code {code}; expiry now {new_expiry.isoformat()}",
                    event_type="vip_code_redeemed",
                    user_id=user_id,
                    code_id=code_id,
                    months=months,
                    days=days,
                    vip_expire_date=new_expiry.isoformat())
        return vip_schemas.VipRedeemResult(
            success=True,
            message="VIP activated",
            months=months,
            days=days,
            plan_name=plan_name,
            vip_expire_date=new_expiry
        )

    @db_error_handler()
    async def create_redeem_codes(
        self,
        admin_id: str,
        code_type: VipRedeemCodeType,
        plan_id: Optional[int] = None,
        duration_months: Optional[int] = None,
        days: Optional[int] = None,
        max_uses: int = 1,
        expires_at: Optional[datetime] = None,
        quantity: int = 1,
        code: Optional[str] = None
    ) -> vip_schemas.VipRedeemCodesResult:
        """
        Issue ``quantity`` redeem codes of one kind.

        Only the field matching ``code_type`` is stored. A custom ``code`` is
        accepted for a single code; a taken code fails with ``ALREADY_DONE``.
        """
        code_type = VipRedeemCodeType(code_type)
        if quantity < 1 or max_uses < 1:
            return vip_schemas.VipRedeemCodesResult.failure(FailureReason.INVALID_INPUT, "Quantity and max uses must be positive")
        if code and quantity != 1:
            return vip_schemas.VipRedeemCodesResult.failure(FailureReason.INVALID_INPUT, "A custom code can only be issued once")

        values = dict(code_type=code_type.value, max_uses=max_uses, expires_at=expires_at, created_by=admin_id)
        if code_type == VipRedeemCodeType.PLAN:
            plan = await self.db.get(VipPlan, plan_id) if plan_id is not None else None
            if plan is None:
                return vip_schemas.VipRedeemCodesResult.failure(FailureReason.NOT_FOUND, "Plan not found")
            values["plan_id"] = plan.id
        elif code_type == VipRedeemCodeType.DURATION:
            if not duration_months or duration_months < 1:
                return vip_schemas.VipRedeemCodesResult.failure(FailureReason.INVALID_INPUT, "Duration in months is required")
            values["duration_months"] = duration_months
        else:
            if not days or days < 1:
                return vip_schemas.VipRedeemCodesResult.failure(FailureReason.INVALID_INPUT, "Number of days is required")
            values["days"] = days

        now = utc_now()
        codes = [code.strip().upper()] if code else [generate_redeem_code() for _ in range(quantity)]
        rows = [VipRedeemCode(code=value, created_at=now, **values) for value in codes]
        self.db.add_all(rows)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_unique_violation(e):
                return vip_schemas.VipRedeemCodesResult.failure(FailureReason.ALREADY_DONE, "Code already exists")
            raise

        logger.info(f"Admin {admin_id} issued {len(rows)} VIP redeem codes ({code_type.value})",
                    event_type="vip_codes_created",
                    admin_id=admin_id,
                    code_type=code_type.value,
                    quantity=len(rows))
        return vip_schemas.VipRedeemCodesResult(
            success=True,
            message=f"Created {len(rows)} codes",
            codes=[vip_schemas.VipRedeemCodeResponse.model_validate(row) for row in rows]
        )

    async def list_redeem_codes(self, limit: int = 20) -> List[VipRedeemCode]:
        result = await self.db.execute(
            select(VipRedeemCode)
            .order_by(desc(VipRedeemCode.created_at), desc(VipRedeemCode.id))
            .limit(clamp_limit(limit))
        )
        return list(result.scalars().all())
