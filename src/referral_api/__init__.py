"""API package for the referral rewards service.

This FastAPI application handles:
- Signup under an optional referrer (POST /api/register)
- Deposits with multi-level reward fan-out (POST /api/deposit)
- Reward claims (POST /api/rewards/claim)
"""

from referral_api.main import app

__all__ = ["app"]
