"""Referral code allocation.

Codes are 6-digit numeric strings. A drawn code is checked against the
users table and re-drawn until it is free.
"""

import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_api.db.models import User

CODE_MIN = 100000
CODE_MAX = 999999


def generate_referral_code() -> str:
    """Draw a uniformly random code in 100000-999999."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


async def code_exists(db: AsyncSession, code: str) -> bool:
    """Check whether a referral code is already taken."""
    result = await db.execute(select(User.id).where(User.referral_code == code))
    return result.first() is not None


async def new_unique_code(db: AsyncSession) -> str:
    """Allocate a referral code not used by any existing user.

    Performs one existence check per draw. With 900,000 possible codes a
    free one is found almost immediately; a concurrent insert of the same
    code is still caught by the unique constraint on users.referral_code.
    """
    while True:
        code = generate_referral_code()
        if not await code_exists(db, code):
            return code
