"""Referral program module.

Provides referral attribution, multi-level reward distribution and claims.
"""

from referral_api.referrals.ancestors import Ancestor, ancestors_of
from referral_api.referrals.codes import new_unique_code
from referral_api.referrals.routes import router as referrals_router
from referral_api.referrals.service import (
    claim_rewards,
    get_program_stats,
    get_user_summary,
    record_deposit,
    register_user,
)

__all__ = [
    "Ancestor",
    "ancestors_of",
    "claim_rewards",
    "get_program_stats",
    "get_user_summary",
    "new_unique_code",
    "record_deposit",
    "referrals_router",
    "register_user",
]
