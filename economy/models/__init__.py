# economy/models/__init__.py
from economy.models.user import User, UserRole
from economy.models.credit import (CreditAccount, CreditTransaction, CreditTransactionType,
                                   CreditRedeemCode, CreditRedeemHistory, RedeemCodeStatus)
from economy.models.points import (PointAccount, PointTransaction, PointTransactionType, PointSource,
                                   CheckInRecord, CheckInRule, PointExchangeRate, PointExchangeHistory)
from economy.models.rate_limit import GenerationRateLimit
from economy.models.vip import (VipPlan, VipOrder, VipOrderStatus, VipStatus, VipRedeemCode, VipRedeemCodeType,
                                VipRedeemHistory)
from economy.models.referral import (ReferralCode, ReferralRelation, ReferralReward, ReferralCampaign,
                                     ReferralStatus, ReferralRewardType)

__all__ = [
    'User',
    'UserRole',
    'CreditAccount',
    'CreditTransaction',
    'CreditTransactionType',
    'CreditRedeemCode',
    'CreditRedeemHistory',
    'RedeemCodeStatus',
    'PointAccount',
    'PointTransaction',
    'PointTransactionType',
    'PointSource',
    'CheckInRecord',
    'CheckInRule',
    'PointExchangeRate',
    'PointExchangeHistory',
    'GenerationRateLimit',
    'VipPlan',
    'VipOrder',
    'VipOrderStatus',
    'VipStatus',
    'VipRedeemCode',
    'VipRedeemCodeType',
    'VipRedeemHistory',
    'ReferralCode',
    'ReferralRelation',
    'ReferralReward',
    'ReferralCampaign',
    'ReferralStatus',
    'ReferralRewardType',
]
