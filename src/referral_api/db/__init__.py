"""Database module for the API.

Provides SQLAlchemy models, async session management and the
transaction scope used by referral operations.
"""

from referral_api.db.database import (
    Base,
    get_db,
    init_db,
    seed_reward_levels,
    transaction,
)
from referral_api.db.models import (
    Deposit,
    ReferralEdge,
    Reward,
    RewardLevel,
    User,
)

__all__ = [
    "Base",
    "Deposit",
    "ReferralEdge",
    "Reward",
    "RewardLevel",
    "User",
    "get_db",
    "init_db",
    "seed_reward_levels",
    "transaction",
]
