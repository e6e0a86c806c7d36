"""Tests for the database seed and token scripts."""

from unittest.mock import patch

from sqlalchemy import func, select

from economy.core.security import verify_jwt_token
from economy.models import CheckInRule, PointExchangeRate, ReferralCampaign, VipPlan
from economy.models.user import User
from economy.scripts.init_db import init_db, seed_defaults
from economy.scripts.issue_token import issue_token
from economy.services.points import PointService


async def test_seed_is_idempotent(db):
    first = await seed_defaults(db)
    second = await seed_defaults(db)

    assert first == {"check_in_rules": 5, "point_exchange_rates": 1, "referral_campaigns": 1, "vip_plans": 3}
    assert set(second.values()) == {0}
    assert (await db.execute(select(func.count()).select_from(CheckInRule))).scalar_one() == 5


async def test_seed_without_vip_plans(db):
    seeded = await seed_defaults(db, with_vip_plans=False)

    assert "vip_plans" not in seeded
    assert (await db.execute(select(func.count()).select_from(VipPlan))).scalar_one() == 0


async def test_init_db_creates_and_seeds(engine, db):
    await init_db(engine)

    rates = await PointService(db).list_exchange_rates()
    assert [(r.points_required, r.credits_received) for r in rates] == [(100, 1)]
    assert (await db.execute(select(func.count()).select_from(ReferralCampaign))).scalar_one() == 1
    assert (await db.execute(select(func.count()).select_from(PointExchangeRate))).scalar_one() == 1


async def test_issue_token_mirrors_user(session_factory, db):
    with patch("economy.scripts.issue_token.AsyncSessionLocal", session_factory):
        token = await issue_token("dev-admin", admin=True)
        again = await issue_token("dev-admin")

    user = await db.get(User, "dev-admin")
    assert user.is_admin is True
    assert user.email == "dev-admin@example.com"
    assert verify_jwt_token(token)["sub"] == "dev-admin"
    assert verify_jwt_token(again)["sub"] == "dev-admin"
