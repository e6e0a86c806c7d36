"""Referral codes, invitation binding and reward issuance."""

from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from economy.core.clock import utc_now
from economy.core.config import settings
from economy.core.db_utils import dialect_insert, is_unique_violation
from economy.core.exceptions import LedgerStoreError
from economy.models.credit import CreditTransactionType
from economy.models.referral import (ReferralCode, ReferralRelation, ReferralReward, ReferralCampaign,
                                     ReferralStatus, ReferralRewardType)
from economy.schemas import referral_schemas
from economy.schemas.common import FailureReason
from economy.log.logging import logger

from economy.services.credit.base import BaseCreditService
from economy.services.decorators import db_error_handler
from economy.services.utils import generate_referral_code

CODE_GENERATION_ATTEMPTS = 10
# Inviters this many levels below the root of a chain earn nothing
MAX_REWARD_DEPTH = 3


def inviter_reward_for_depth(base_reward: int, depth: int) -> int:
    """Full reward at depth 0, half at depth 1, nothing deeper."""
    if depth == 0:
        return base_reward
    if depth == 1:
        return base_reward // 2
    return 0


class ReferralService:
    """
    Referral codes and the inviter/invitee graph.

    Each invitee is bound at most once. Completing the campaign task pays
    both parties in credits, scaled down by how deep the inviter sits in an
    existing referral chain.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.credit_service = BaseCreditService(db)

    async def get_code(self, user_id: str) -> Optional[ReferralCode]:
        result = await self.db.execute(
            select(ReferralCode)
            .where(ReferralCode.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_code(self, code: str) -> Optional[ReferralCode]:
        result = await self.db.execute(
            select(ReferralCode)
            .where(ReferralCode.code == code.strip().upper())
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @db_error_handler()
    async def get_or_create_code(self, user_id: str) -> referral_schemas.ReferralCodeResponse:
        """
        Return the user's code, creating one on first use.

        Generated codes that collide with an existing one are retried; the
        insert ignores conflicts, so a concurrent first call for the same user
        simply wins.
        """
        existing = await self.get_code(user_id)
        if existing is not None:
            return referral_schemas.ReferralCodeResponse(user_id=user_id, code=existing.code)

        for attempt in range(CODE_GENERATION_ATTEMPTS):
            candidate = generate_referral_code()
            result = await self.db.execute(
                dialect_insert(self.db, ReferralCode)
                .values(user_id=user_id, code=candidate, created_at=utc_now())
                .on_conflict_do_nothing()
                .returning(ReferralCode.code)
            )
            inserted = result.scalar_one_or_none()
            await self.db.commit()
            if inserted is not None:
                logger.info(f"Referral code created for user {user_id}",
                            event_type="referral_code_created",
                            user_id=user_id,
                            attempt=attempt + 1)
                return referral_schemas.ReferralCodeResponse(user_id=user_id, code=inserted)

            existing = await self.get_code(user_id)
            if existing is not None:
                return referral_schemas.ReferralCodeResponse(user_id=user_id, code=existing.code)
            logger.debug(f"Referral code collision on attempt {attempt + 1}",
                         event_type="referral_code_collision",
                         user_id=user_id)

        raise LedgerStoreError("get_or_create_code",
                               RuntimeError(f"No free referral code after {CODE_GENERATION_ATTEMPTS} attempts"))

    async def validate_code(self, code: str) -> referral_schemas.ValidateCodeResponse:
        referral_code = await self.find_code(code) if code and code.strip() else None
        if referral_code is None:
            return referral_schemas.ValidateCodeResponse.failure(FailureReason.NOT_FOUND, "Referral code not found")
        return referral_schemas.ValidateCodeResponse(success=True, valid=True, inviter_id=referral_code.user_id)

    async def active_campaign(self) -> referral_schemas.CampaignConfig:
        """The first active campaign by sort order, or the configured defaults."""
        result = await self.db.execute(
            select(ReferralCampaign)
            .where(ReferralCampaign.is_active.is_(True))
            .order_by(ReferralCampaign.sort_order, ReferralCampaign.id)
            .limit(1)
        )
        campaign = result.scalar_one_or_none()
        if campaign is None:
            return referral_schemas.CampaignConfig(
                name="default",
                inviter_reward=settings.REFERRAL_DEFAULT_INVITER_REWARD,
                invitee_reward=settings.REFERRAL_DEFAULT_INVITEE_REWARD,
                requirement_type=settings.REFERRAL_DEFAULT_REQUIREMENT,
                max_invites_per_user=settings.REFERRAL_DEFAULT_MAX_INVITES
            )
        return referral_schemas.CampaignConfig(
            id=campaign.id,
            name=campaign.name,
            inviter_reward=campaign.inviter_reward,
            invitee_reward=campaign.invitee_reward,
            requirement_type=campaign.requirement_type,
            max_invites_per_user=campaign.max_invites_per_user
        )

    async def ancestors(self, user_id: str) -> List[str]:
        """Inviters above ``user_id``, nearest first."""
        chain = []
        current = user_id
        while True:
            inviter_id = (await self.db.execute(
                select(ReferralRelation.inviter_id).where(ReferralRelation.invitee_id == current)
            )).scalar_one_or_none()
            if inviter_id is None or inviter_id in chain or inviter_id == user_id:
                break
            chain.append(inviter_id)
            current = inviter_id
        return chain

    @db_error_handler()
    async def bind(self, invitee_id: str, code: str) -> referral_schemas.ReferralBindResult:
        """
        Bind ``invitee_id`` to the owner of ``code``.

        The inviter's invite count is taken with a conditional update against
        the campaign cap, and the relation's unique ``invitee_id`` makes a
        second bind fail, so concurrent binds can't exceed either limit.
        """
        referral_code = await self.find_code(code) if code and code.strip() else None
        if referral_code is None:
            return referral_schemas.ReferralBindResult.failure(FailureReason.NOT_FOUND, "Referral code not found")

        inviter_id = referral_code.user_id
        code_id = referral_code.id
        code_value = referral_code.code
        if inviter_id == invitee_id:
            return referral_schemas.ReferralBindResult.failure(FailureReason.INVALID_INPUT, "You cannot use your own code")

        bound = (await self.db.execute(
            select(ReferralRelation.id).where(ReferralRelation.invitee_id == invitee_id)
        )).first()
        if bound is not None:
            return referral_schemas.ReferralBindResult.failure(FailureReason.ALREADY_DONE, "Already bound to an inviter")

        if invitee_id in await self.ancestors(inviter_id):
            return referral_schemas.ReferralBindResult.failure(
                FailureReason.INVALID_INPUT, "Binding would create a referral cycle"
            )

        campaign = await self.active_campaign()
        taken = await self.db.execute(
            update(ReferralCode)
            .where(ReferralCode.id == code_id, ReferralCode.total_invites < campaign.max_invites_per_user)
            .values(total_invites=ReferralCode.total_invites + 1)
            .returning(ReferralCode.total_invites)
            .execution_options(synchronize_session=False)
        )
        if taken.first() is None:
            await self.db.rollback()
            logger.warning(f"Inviter {inviter_id} reached the invite cap of {campaign.max_invites_per_user}",
                           event_type="referral_cap_reached",
                           inviter_id=inviter_id,
                           invitee_id=invitee_id)
            return referral_schemas.ReferralBindResult.failure(
                FailureReason.RATE_LIMITED, "This referral code has reached its invite limit"
            )

        relation = ReferralRelation(
            inviter_id=inviter_id,
            invitee_id=invitee_id,
            referral_code=code_value,
            status=ReferralStatus.PENDING.value,
            created_at=utc_now()
        )
        try:
            self.db.add(relation)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_unique_violation(e):
                return referral_schemas.ReferralBindResult.failure(FailureReason.ALREADY_DONE, "Already bound to an inviter")
            raise

        logger.info(f"User {invitee_id} bound to inviter {inviter_id}",
                    event_type="referral_bound",
                    inviter_id=inviter_id,
                    invitee_id=invitee_id,
                    relation_id=relation.id)
        return referral_schemas.ReferralBindResult(
            success=True,
            message="Referral bound",
            relation_id=relation.id,
            inviter_id=inviter_id
        )

    async def _reward(self, user_id: str, relation_id: int, reward_type: ReferralRewardType, amount: int,
                      level: int) -> None:
        await self.credit_service._apply_recharge(
            user_id,
            amount,
            transaction_type=CreditTransactionType.REFERRAL_REWARD,
            related_id=str(relation_id),
            related_type="referral",
            description=f"Referral reward ({reward_type.value})"
        )
        self.db.add(ReferralReward(
            user_id=user_id,
            relation_id=relation_id,
            reward_type=reward_type.value,
            amount=amount,
            level=level,
            created_at=utc_now()
        ))

    @db_error_handler()
    async def complete_task(self, invitee_id: str, task_type: str) -> referral_schemas.ReferralTaskResult:
        """
        Mark the invitee's qualifying task done and pay the rewards.

        The relation moves ``pending -> completed`` with a conditional update,
        so rewards are paid once even if the hook fires twice.
        """
        relation = (await self.db.execute(
            select(ReferralRelation).where(ReferralRelation.invitee_id == invitee_id)
        )).scalar_one_or_none()
        if relation is None:
            return referral_schemas.ReferralTaskResult.failure(FailureReason.NOT_FOUND, "No referral for this user")
        if relation.status != ReferralStatus.PENDING.value:
            return referral_schemas.ReferralTaskResult.failure(FailureReason.ALREADY_DONE, "Referral already completed")

        campaign = await self.active_campaign()
        if task_type != campaign.requirement_type:
            return referral_schemas.ReferralTaskResult.failure(
                FailureReason.INVALID_INPUT,
                f"Task {task_type} does not qualify; {campaign.requirement_type} is required"
            )

        relation_id = relation.id
        inviter_id = relation.inviter_id
        completed = await self.db.execute(
            update(ReferralRelation)
            .where(ReferralRelation.id == relation_id, ReferralRelation.status == ReferralStatus.PENDING.value)
            .values(status=ReferralStatus.COMPLETED.value, completed_at=utc_now())
            .returning(ReferralRelation.id)
            .execution_options(synchronize_session=False)
        )
        if completed.first() is None:
            await self.db.rollback()
            return referral_schemas.ReferralTaskResult.failure(FailureReason.ALREADY_DONE, "Referral already completed")

        depth = len(await self.ancestors(inviter_id))
        inviter_reward = 0
        invitee_reward = 0
        if depth < MAX_REWARD_DEPTH:
            inviter_reward = inviter_reward_for_depth(campaign.inviter_reward, depth)
            invitee_reward = campaign.invitee_reward
            if inviter_reward > 0:
                await self._reward(inviter_id, relation_id, ReferralRewardType.INVITER, inviter_reward, depth)
            if invitee_reward > 0:
                await self._reward(invitee_id, relation_id, ReferralRewardType.INVITEE, invitee_reward, depth)

        await self.db.execute(
            update(ReferralCode)
            .where(ReferralCode.user_id == inviter_id)
            .values(
                successful_invites=ReferralCode.successful_invites + 1,
                total_rewards=ReferralCode.total_rewards + inviter_reward
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        logger.info(f"Referral {relation_id} completed: inviter {inviter_id} +{inviter_reward}, "
                    f"invitee {invitee_id} +{invitee_reward}",
                    event_type="referral_completed",
                    relation_id=relation_id,
                    inviter_id=inviter_id,
                    invitee_id=invitee_id,
                    inviter_reward=inviter_reward,
                    invitee_reward=invitee_reward,
                    level=depth)
        return referral_schemas.ReferralTaskResult(
            success=True,
            message="Referral rewards issued" if depth < MAX_REWARD_DEPTH else "Referral completed without rewards",
            inviter_id=inviter_id,
            inviter_reward=inviter_reward,
            invitee_reward=invitee_reward,
            level=depth
        )

    async def get_stats(self, user_id: str) -> referral_schemas.ReferralStatsResponse:
        code = await self.get_code(user_id)
        pending = (await self.db.execute(
            select(func.count()).select_from(ReferralRelation).where(
                ReferralRelation.inviter_id == user_id,
                ReferralRelation.status == ReferralStatus.PENDING.value
            )
        )).scalar_one()
        if code is None:
            return referral_schemas.ReferralStatsResponse(user_id=user_id, pending_invites=pending)
        return referral_schemas.ReferralStatsResponse(
            user_id=user_id,
            code=code.code,
            total_invites=code.total_invites,
            successful_invites=code.successful_invites,
            pending_invites=pending,
            total_rewards=code.total_rewards
        )
