"""Pydantic schemas for referral codes and rewards."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from economy.schemas.common import OperationResult


class ReferralCodeResponse(BaseModel):
    user_id: str
    code: str


class ValidateCodeResponse(OperationResult):
    valid: bool = False
    inviter_id: Optional[str] = None


class BindReferralRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=16)

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class CompleteTaskRequest(BaseModel):
    invitee_id: str
    task_type: str = Field("verified_email", max_length=50)


class ReferralBindResult(OperationResult):
    relation_id: Optional[int] = None
    inviter_id: Optional[str] = None


class ReferralTaskResult(OperationResult):
    inviter_id: Optional[str] = None
    inviter_reward: int = 0
    invitee_reward: int = 0
    level: int = 0


class ReferralStatsResponse(BaseModel):
    user_id: str
    code: Optional[str] = None
    total_invites: int = 0
    successful_invites: int = 0
    pending_invites: int = 0
    total_rewards: int = 0


class CampaignConfig(BaseModel):
    """Effective campaign: an active row or the configured defaults."""
    id: Optional[int] = None
    name: str
    inviter_reward: int
    invitee_reward: int
    requirement_type: str
    max_invites_per_user: int
