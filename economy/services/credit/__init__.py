"""Credit service module: balances, ledger and redeem codes."""

from economy.services.credit.base import BaseCreditService
from economy.services.credit.redeem import RedeemCodeService
from economy.log.logging import logger


class CreditService:
    """
    Facade over the credit ledger.

    - BaseCreditService: balance, consume, recharge, admin adjustment, history
    - RedeemCodeService: credit redeem codes
    """

    def __init__(self, db):
        self.db = db
        self.base_service = BaseCreditService(db)
        self.redeem_service = RedeemCodeService(db, self.base_service)

    async def get_balance(self, user_id):
        logger.debug(f"Getting credit balance: User {user_id}", event_type="get_credit_balance", user_id=user_id)
        return await self.base_service.get_balance(user_id)

    async def check_balance(self, user_id, units):
        logger.debug(f"Checking credit balance: User {user_id}, Units {units}",
                     event_type="check_credit_balance",
                     user_id=user_id,
                     units=units)
        return await self.base_service.check_balance(user_id, units)

    async def consume(self, user_id, units, **kwargs):
        logger.debug(f"Consuming credits: User {user_id}, Units {units}",
                     event_type="consume_credits",
                     user_id=user_id,
                     units=units)
        return await self.base_service.consume(user_id, units, **kwargs)

    async def recharge(self, user_id, units, **kwargs):
        logger.debug(f"Recharging credits: User {user_id}, Units {units}",
                     event_type="recharge_credits",
                     user_id=user_id,
                     units=units)
        return await self.base_service.recharge(user_id, units, **kwargs)

    async def adjust(self, user_id, delta, admin_id, note=None):
        logger.debug(f"Adjusting credits: User {user_id}, Delta {delta}",
                     event_type="adjust_credits",
                     user_id=user_id,
                     delta=delta,
                     admin_id=admin_id)
        return await self.base_service.adjust(user_id, delta, admin_id, note)

    async def get_transaction_history(self, user_id, skip=0, limit=20):
        return await self.base_service.get_transaction_history(user_id, skip=skip, limit=limit)

    async def redeem_code(self, user_id, code):
        logger.debug(f"Redeeming code: User {user_id}", event_type="redeem_code", user_id=user_id)
        return await self.redeem_service.redeem(user_id, code)


__all__ = ["CreditService", "BaseCreditService", "RedeemCodeService"]
