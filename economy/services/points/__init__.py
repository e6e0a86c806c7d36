"""Points service module: balances, daily check-in and exchange."""

from economy.services.credit.base import BaseCreditService
from economy.services.points.base import BasePointService
from economy.services.points.checkin import CheckInService
from economy.services.points.exchange import ExchangeService
from economy.log.logging import logger


class PointService:
    """
    Facade over the points engine.

    - BasePointService: balance, grants, history
    - CheckInService: daily check-in and streaks
    - ExchangeService: points-to-credits exchange
    """

    def __init__(self, db):
        self.db = db
        self.base_service = BasePointService(db)
        self.checkin_service = CheckInService(db, self.base_service)
        self.exchange_service = ExchangeService(db, self.base_service, BaseCreditService(db))

    async def get_balance(self, user_id):
        logger.debug(f"Getting point balance: User {user_id}", event_type="get_point_balance", user_id=user_id)
        return await self.base_service.get_balance(user_id)

    async def get_check_in_status(self, user_id):
        return await self.checkin_service.get_status(user_id)

    async def check_in(self, user_id):
        logger.debug(f"Check-in: User {user_id}", event_type="check_in", user_id=user_id)
        return await self.checkin_service.check_in(user_id)

    async def grant(self, user_id, points, **kwargs):
        logger.debug(f"Granting points: User {user_id}, Points {points}",
                     event_type="grant_points",
                     user_id=user_id,
                     points=points)
        return await self.base_service.grant(user_id, points, **kwargs)

    async def get_transaction_history(self, user_id, skip=0, limit=20):
        return await self.base_service.get_transaction_history(user_id, skip=skip, limit=limit)

    async def list_exchange_rates(self):
        return await self.exchange_service.list_rates()

    async def exchange(self, user_id, credits, rate_id=None, idempotency_key=None):
        logger.debug(f"Exchanging points: User {user_id}, Credits {credits}",
                     event_type="exchange_points",
                     user_id=user_id,
                     credits=credits,
                     rate_id=rate_id)
        return await self.exchange_service.exchange(user_id, credits, rate_id=rate_id,
                                                    idempotency_key=idempotency_key)

    async def get_exchange_history(self, user_id, limit=10):
        return await self.exchange_service.get_exchange_history(user_id, limit=limit)


__all__ = ["PointService", "BasePointService", "CheckInService", "ExchangeService"]
