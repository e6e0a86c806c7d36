"""Tests for referral codes, binding and rewards."""

import pytest
from sqlalchemy import select

from economy.models.referral import ReferralCampaign, ReferralReward, ReferralStatus, ReferralRelation
from economy.schemas.common import FailureReason
from economy.services.credit import CreditService
from economy.services.referral_service import ReferralService, inviter_reward_for_depth
from economy.services.utils import REFERRAL_CODE_ALPHABET

from tests.helpers import create_test_user


async def make_users(db, count):
    return [await create_test_user(db) for _ in range(count)]


async def invite(db, inviter, invitee):
    service = ReferralService(db)
    code = (await service.get_or_create_code(inviter.id)).code
    return await service.bind(invitee.id, code)


async def credits(db, user):
    return (await CreditService(db).get_balance(user.id)).balance


class TestCodes:
    async def test_code_is_stable(self, db, user):
        service = ReferralService(db)

        first = await service.get_or_create_code(user.id)
        second = await service.get_or_create_code(user.id)

        assert first.code == second.code
        assert len(first.code) == 8
        assert set(first.code) <= set(REFERRAL_CODE_ALPHABET)

    async def test_validate_code(self, db, user):
        service = ReferralService(db)
        code = (await service.get_or_create_code(user.id)).code

        valid = await service.validate_code(f" {code.lower()} ")
        missing = await service.validate_code("NOPE2345")

        assert valid.valid is True
        assert valid.inviter_id == user.id
        assert missing.reason == FailureReason.NOT_FOUND


class TestBind:
    async def test_bind(self, db):
        inviter, invitee = await make_users(db, 2)

        result = await invite(db, inviter, invitee)

        assert result.success is True
        assert result.inviter_id == inviter.id
        stats = await ReferralService(db).get_stats(inviter.id)
        assert stats.total_invites == 1
        assert stats.pending_invites == 1

    async def test_unknown_code(self, db, user):
        assert (await ReferralService(db).bind(user.id, "ZZZZ2222")).reason == FailureReason.NOT_FOUND

    async def test_own_code(self, db, user):
        code = (await ReferralService(db).get_or_create_code(user.id)).code

        result = await ReferralService(db).bind(user.id, code)

        assert result.reason == FailureReason.INVALID_INPUT

    async def test_invitee_binds_once(self, db):
        first, second, invitee = await make_users(db, 3)
        await invite(db, first, invitee)

        result = await invite(db, second, invitee)

        assert result.reason == FailureReason.ALREADY_DONE
        assert (await ReferralService(db).get_stats(second.id)).total_invites == 0

    async def test_cycle_is_refused(self, db):
        a, b, c = await make_users(db, 3)
        await invite(db, a, b)
        await invite(db, b, c)

        result = await invite(db, c, a)

        assert result.reason == FailureReason.INVALID_INPUT

    async def test_invite_cap(self, db):
        inviter, *invitees = await make_users(db, 5)

        results = [await invite(db, inviter, invitee) for invitee in invitees]

        assert [r.success for r in results] == [True, True, True, False]
        assert results[-1].reason == FailureReason.RATE_LIMITED
        assert (await ReferralService(db).get_stats(inviter.id)).total_invites == 3

    async def test_campaign_cap_overrides_default(self, db):
        db.add(ReferralCampaign(name="tight", inviter_reward=10, invitee_reward=5, max_invites_per_user=1))
        await db.commit()
        inviter, first, second = await make_users(db, 3)

        assert (await invite(db, inviter, first)).success is True
        assert (await invite(db, inviter, second)).reason == FailureReason.RATE_LIMITED


class TestRewards:
    @pytest.mark.parametrize("depth, expected", [(0, 10), (1, 5), (2, 0), (3, 0)])
    def test_inviter_reward_for_depth(self, depth, expected):
        assert inviter_reward_for_depth(10, depth) == expected

    async def test_direct_invite_pays_both(self, db):
        inviter, invitee = await make_users(db, 2)
        await invite(db, inviter, invitee)

        result = await ReferralService(db).complete_task(invitee.id, "verified_email")

        assert result.success is True
        assert (result.inviter_reward, result.invitee_reward, result.level) == (10, 5, 0)
        assert await credits(db, inviter) == 10
        assert await credits(db, invitee) == 5
        stats = await ReferralService(db).get_stats(inviter.id)
        assert stats.successful_invites == 1
        assert stats.pending_invites == 0
        assert stats.total_rewards == 10

    async def test_rewards_shrink_with_depth(self, db):
        a, b, c, d, e = await make_users(db, 5)
        for inviter, invitee in ((a, b), (b, c), (c, d), (d, e)):
            await invite(db, inviter, invitee)
        service = ReferralService(db)

        levels = [await service.complete_task(u.id, "verified_email") for u in (b, c, d, e)]

        assert [(r.level, r.inviter_reward, r.invitee_reward) for r in levels] == [
            (0, 10, 5),
            (1, 5, 5),
            (2, 0, 5),
            (3, 0, 0),
        ]
        assert await credits(db, d) == 5
        assert await credits(db, e) == 0
        relation = (await db.execute(
            select(ReferralRelation).where(ReferralRelation.invitee_id == e.id)
            .execution_options(populate_existing=True)
        )).scalar_one()
        assert relation.status == ReferralStatus.COMPLETED.value

    async def test_wrong_task_type(self, db):
        inviter, invitee = await make_users(db, 2)
        await invite(db, inviter, invitee)

        result = await ReferralService(db).complete_task(invitee.id, "first_generation")

        assert result.reason == FailureReason.INVALID_INPUT
        assert await credits(db, inviter) == 0

    async def test_complete_twice_pays_once(self, db):
        inviter, invitee = await make_users(db, 2)
        await invite(db, inviter, invitee)
        service = ReferralService(db)

        await service.complete_task(invitee.id, "verified_email")
        again = await service.complete_task(invitee.id, "verified_email")

        assert again.reason == FailureReason.ALREADY_DONE
        assert await credits(db, inviter) == 10
        rewards = (await db.execute(select(ReferralReward))).scalars().all()
        assert sorted(r.reward_type for r in rewards) == ["invitee", "inviter"]

    async def test_unbound_invitee(self, db, user):
        assert (await ReferralService(db).complete_task(user.id, "verified_email")).reason == FailureReason.NOT_FOUND

    async def test_campaign_rewards(self, db):
        db.add(ReferralCampaign(name="launch", inviter_reward=100, invitee_reward=50,
                                requirement_type="first_generation"))
        await db.commit()
        inviter, invitee = await make_users(db, 2)
        await invite(db, inviter, invitee)

        result = await ReferralService(db).complete_task(invitee.id, "first_generation")

        assert (result.inviter_reward, result.invitee_reward) == (100, 50)
