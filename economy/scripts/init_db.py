"""
Create all tables and seed the default economy configuration.

Run with ``python -m economy.scripts.init_db``. Seeding is idempotent: a table
that already holds rows is left untouched.
"""

import asyncio
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from economy.core.base_model import Base
from economy.core.config import settings
from economy.log.logging import logger
from economy.models import CheckInRule, PointExchangeRate, ReferralCampaign, VipPlan

DEFAULT_CHECKIN_RULES = [
    (1, 10, "Daily check-in"),
    (3, 20, "3-day streak"),
    (7, 30, "7-day streak"),
    (14, 50, "14-day streak"),
    (30, 100, "30-day streak"),
]

DEFAULT_VIP_PLANS = [
    ("Monthly VIP", Decimal("19.90"), None, 1),
    ("Quarterly VIP", Decimal("49.90"), Decimal("59.70"), 3),
    ("Yearly VIP", Decimal("168.00"), Decimal("238.80"), 12),
]


def default_checkin_rules():
    return [
        CheckInRule(name=name, consecutive_days=days, points=points, sort_order=index)
        for index, (days, points, name) in enumerate(DEFAULT_CHECKIN_RULES)
    ]


def default_exchange_rates():
    return [
        PointExchangeRate(name="Standard", points_required=100, credits_received=1,
                          description="100 points for 1 credit", sort_order=0)
    ]


def default_referral_campaigns():
    return [
        ReferralCampaign(
            name="Default referral",
            inviter_reward=settings.REFERRAL_DEFAULT_INVITER_REWARD,
            invitee_reward=settings.REFERRAL_DEFAULT_INVITEE_REWARD,
            requirement_type=settings.REFERRAL_DEFAULT_REQUIREMENT,
            max_invites_per_user=settings.REFERRAL_DEFAULT_MAX_INVITES,
        )
    ]


def default_vip_plans():
    return [
        VipPlan(name=name, price=price, original_price=original, duration_months=months, sort_order=index)
        for index, (name, price, original, months) in enumerate(DEFAULT_VIP_PLANS)
    ]


async def _seed(session: AsyncSession, model, rows) -> int:
    existing = (await session.execute(select(func.count()).select_from(model))).scalar_one()
    if existing:
        logger.info(f"Skipping {model.__tablename__}: {existing} rows present",
                    event_type="seed_skipped", table=model.__tablename__)
        return 0
    session.add_all(rows)
    return len(rows)


async def seed_defaults(session: AsyncSession, with_vip_plans: bool = True) -> dict:
    """Insert default rules, rates, campaign and (optionally) VIP plans into empty tables."""
    seeded = {
        "check_in_rules": await _seed(session, CheckInRule, default_checkin_rules()),
        "point_exchange_rates": await _seed(session, PointExchangeRate, default_exchange_rates()),
        "referral_campaigns": await _seed(session, ReferralCampaign, default_referral_campaigns()),
    }
    if with_vip_plans:
        seeded["vip_plans"] = await _seed(session, VipPlan, default_vip_plans())
    await session.commit()
    logger.info("Default configuration seeded", event_type="seed_complete", **seeded)
    return seeded


async def init_db(engine: AsyncEngine, with_vip_plans: bool = True) -> dict:
    import economy.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created", event_type="tables_created")

    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        return await seed_defaults(session, with_vip_plans=with_vip_plans)


async def run():
    from economy.core.database import engine

    await init_db(engine)
    await engine.dispose()
    print("Database initialization completed successfully!")


if __name__ == "__main__":
    asyncio.run(run())
