"""Referral core: registration, reward fan-out, claims and summaries.

Every operation takes the caller's AsyncSession. Mutating operations run
inside ``transaction()`` so a failure at any step rolls back everything
the operation wrote.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_api.config import get_settings
from referral_api.db.database import transaction
from referral_api.db.models import Deposit, ReferralEdge, Reward, RewardLevel, User
from referral_api.errors import (
    DuplicateEmailError,
    InternalError,
    InvalidReferralCodeError,
    NoPendingRewardsError,
    UserNotFoundError,
    ValidationError,
)
from referral_api.referrals.ancestors import ancestors_of
from referral_api.referrals.codes import new_unique_code
from referral_api.security.email_validator import is_valid_email, normalize_email

logger = logging.getLogger("referral-api.referrals")

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

# Largest amount a Numeric(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")

# Whole-registration retries after a unique-constraint race on insert
REGISTRATION_ATTEMPTS = 3


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary amount to cents."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    """Render a monetary amount with exactly two decimals."""
    return f"{quantize_money(value):.2f}"


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RegisteredUser:
    """Newly created user as returned to the caller."""

    id: UUID
    email: str
    referral_code: str
    referral_link: str


@dataclass
class ReferralEntry:
    """A user referred by the summary's subject, at some level."""

    level: int
    referred_email: str
    total_deposits: Decimal
    created_at: datetime


@dataclass
class RewardEntry:
    """A reward credited to the summary's subject."""

    id: UUID
    from_email: str
    level: int
    deposit_amount: Decimal
    reward_amount: Decimal
    claimed: bool
    created_at: datetime


@dataclass
class UserSummary:
    """User totals plus their referral and reward history."""

    id: UUID
    email: str
    referral_code: str
    referral_link: str
    total_deposits: Decimal
    total_earnings: Decimal
    pending_rewards: str
    referrals: list[ReferralEntry] = field(default_factory=list)
    rewards: list[RewardEntry] = field(default_factory=list)


@dataclass
class ProgramStats:
    """Program-wide counters."""

    total_users: int
    total_deposits: int
    total_deposit_amount: Decimal
    total_rewards: int


# =============================================================================
# Input Checks
# =============================================================================


def require_email(email: str | None) -> str:
    """Normalize an email and reject anything that is not an address."""
    normalized = normalize_email(email or "")
    if not is_valid_email(normalized):
        raise ValidationError("Valid email is required")
    return normalized


def require_amount(amount: Any) -> Decimal:
    """Coerce a deposit amount to cents, rejecting non-positive values."""
    if isinstance(amount, bool):
        raise ValidationError("Amount must be a positive number")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError("Amount must be a positive number") from e
    if not value.is_finite():
        raise ValidationError("Amount must be a positive number")
    if value > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}")
    try:
        value = quantize_money(value)
    except InvalidOperation as e:
        raise ValidationError("Amount must be a positive number") from e
    if value <= 0:
        raise ValidationError("Amount must be a positive number")
    if value > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}")
    return value


async def _user_id_for(db: AsyncSession, email: str) -> UUID:
    result = await db.execute(select(User.id).where(User.email == email))
    user_id = result.scalar_one_or_none()
    if user_id is None:
        raise UserNotFoundError()
    return user_id


async def _email_taken(db: AsyncSession, email: str) -> bool:
    result = await db.execute(select(User.id).where(User.email == email))
    return result.first() is not None


async def load_reward_schedule(db: AsyncSession) -> dict[int, Decimal]:
    """Read the level -> percentage schedule."""
    result = await db.execute(select(RewardLevel.level, RewardLevel.percentage))
    return {row.level: Decimal(row.percentage) for row in result.all()}


def calculate_reward(amount: Decimal, percentage: Decimal) -> Decimal:
    """Reward for one ancestor: ``amount * percentage / 100`` in cents."""
    return quantize_money(amount * percentage / Decimal(100))


# =============================================================================
# Registration
# =============================================================================


class _RegistrationConflict(Exception):
    """Unique constraint hit while inserting the user row."""


async def _create_user(
    db: AsyncSession, email: str, referral_code: str | None
) -> User:
    if await _email_taken(db, email):
        raise DuplicateEmailError()

    referrer_id = None
    if referral_code is not None:
        result = await db.execute(
            select(User.id).where(User.referral_code == referral_code)
        )
        referrer_id = result.scalar_one_or_none()
        if referrer_id is None:
            raise InvalidReferralCodeError()

    user = User(
        email=email,
        referral_code=await new_unique_code(db),
        referred_by=referrer_id,
        total_deposits=ZERO,
        total_earnings=ZERO,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as e:
        raise _RegistrationConflict() from e

    if referrer_id is not None:
        ancestors = await ancestors_of(db, user.id)
        db.add_all(
            ReferralEdge(
                referrer_id=ancestor.user_id,
                referred_id=user.id,
                level=ancestor.level,
            )
            for ancestor in ancestors
        )
        await db.flush()
        logger.info(f"User {user.id} attached under {len(ancestors)} ancestor(s)")

    return user


async def register_user(
    db: AsyncSession,
    email: str,
    referral_code: str | None = None,
) -> RegisteredUser:
    """Create a user, optionally under the owner of ``referral_code``.

    The user row and its ancestor edges are written in one transaction.

    Args:
        db: Database session.
        email: Address of the new user (case-insensitive).
        referral_code: Code of the referrer; blank means no referrer.

    Returns:
        The created user with its own code and registration link.

    Raises:
        ValidationError: Email is malformed.
        DuplicateEmailError: Email is already registered.
        InvalidReferralCodeError: Code does not belong to any user.
        InternalError: Store failure, or code races exhausted the retries.
    """
    email = require_email(email)
    code = (referral_code or "").strip() or None

    for attempt in range(1, REGISTRATION_ATTEMPTS + 1):
        try:
            async with transaction(db, "Registration"):
                user = await _create_user(db, email, code)
        except _RegistrationConflict:
            async with transaction(db, "Registration"):
                taken = await _email_taken(db, email)
            if taken:
                raise DuplicateEmailError() from None
            logger.warning(
                f"Referral code collision on registration attempt {attempt}, retrying"
            )
            continue

        logger.info(f"Registered user {user.id} with code {user.referral_code}")
        return RegisteredUser(
            id=user.id,
            email=user.email,
            referral_code=user.referral_code,
            referral_link=get_settings().referral_link(user.referral_code),
        )

    logger.error(f"Registration gave up after {REGISTRATION_ATTEMPTS} attempts")
    raise InternalError("Registration failed")


# =============================================================================
# Deposits and Reward Fan-out
# =============================================================================


async def record_deposit(db: AsyncSession, email: str, amount: Any) -> Deposit:
    """Record a deposit and credit every materialized ancestor.

    Rewards follow the referral edges written at signup, not a fresh walk
    of the parent chain. A level with no configured percentage still gets
    a reward row, worth 0.00.

    Raises:
        ValidationError: Email or amount is malformed.
        UserNotFoundError: No user with this email.
        InternalError: Store failure.
    """
    email = require_email(email)
    value = require_amount(amount)

    async with transaction(db, "Deposit"):
        user_id = await _user_id_for(db, email)

        deposit = Deposit(user_id=user_id, amount=value)
        db.add(deposit)
        await db.flush()

        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(total_deposits=User.total_deposits + value)
        )

        edges = await db.execute(
            select(ReferralEdge.referrer_id, ReferralEdge.level)
            .where(ReferralEdge.referred_id == user_id)
            .order_by(ReferralEdge.level)
        )
        schedule = await load_reward_schedule(db)

        rewards = [
            Reward(
                user_id=edge.referrer_id,
                from_user_id=user_id,
                deposit_id=deposit.id,
                level=edge.level,
                deposit_amount=value,
                reward_amount=calculate_reward(
                    value, schedule.get(edge.level, Decimal("0"))
                ),
                claimed=False,
            )
            for edge in edges.all()
        ]
        db.add_all(rewards)

    logger.info(
        f"Deposit {deposit.id} of {format_money(value)} by {user_id} "
        f"created {len(rewards)} reward(s)"
    )
    return deposit


# =============================================================================
# Claims
# =============================================================================


async def claim_rewards(db: AsyncSession, email: str) -> Decimal:
    """Claim every pending reward of a user exactly once.

    The user row is locked first so concurrent claims for the same user
    run one after the other. Only rewards this call flips from unclaimed
    to claimed are added to earnings, so a claim that loses a race finds
    nothing left.

    Returns:
        Sum of the rewards claimed, in cents.

    Raises:
        ValidationError: Email is malformed.
        UserNotFoundError: No user with this email.
        NoPendingRewardsError: Nothing left to claim.
        InternalError: Store failure.
    """
    email = require_email(email)

    async with transaction(db, "Claim"):
        result = await db.execute(
            select(User.id).where(User.email == email).with_for_update()
        )
        user_id = result.scalar_one_or_none()
        if user_id is None:
            raise UserNotFoundError()

        claimed = await db.execute(
            update(Reward)
            .where(Reward.user_id == user_id)
            .where(Reward.claimed.is_(False))
            .values(claimed=True)
            .returning(Reward.reward_amount)
        )
        amounts = claimed.scalars().all()
        if not amounts:
            raise NoPendingRewardsError()

        total = quantize_money(sum(amounts, ZERO))

        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(total_earnings=User.total_earnings + total)
        )

    logger.info(
        f"User {user_id} claimed {len(amounts)} reward(s) worth {format_money(total)}"
    )
    return total


# =============================================================================
# Read Path
# =============================================================================


async def get_user_summary(db: AsyncSession, email: str) -> UserSummary:
    """Load a user's totals, referred users and rewards.

    Referrals are ordered by level, newest first within a level; rewards
    newest first. ``pending_rewards`` is the sum of unclaimed rewards.
    """
    email = require_email(email)

    async with transaction(db, "User lookup"):
        result = await db.execute(
            select(User)
            .where(User.email == email)
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError()

        referrals_result = await db.execute(
            select(
                ReferralEdge.level,
                ReferralEdge.created_at,
                User.email,
                User.total_deposits,
            )
            .join(User, User.id == ReferralEdge.referred_id)
            .where(ReferralEdge.referrer_id == user.id)
            .order_by(ReferralEdge.level, ReferralEdge.created_at.desc())
        )
        referrals = [
            ReferralEntry(
                level=row.level,
                referred_email=row.email,
                total_deposits=row.total_deposits,
                created_at=row.created_at,
            )
            for row in referrals_result.all()
        ]

        rewards_result = await db.execute(
            select(Reward, User.email)
            .join(User, User.id == Reward.from_user_id)
            .where(Reward.user_id == user.id)
            .order_by(Reward.created_at.desc())
        )
        rewards = [
            RewardEntry(
                id=reward.id,
                from_email=from_email,
                level=reward.level,
                deposit_amount=reward.deposit_amount,
                reward_amount=reward.reward_amount,
                claimed=reward.claimed,
                created_at=reward.created_at,
            )
            for reward, from_email in rewards_result.all()
        ]

    pending = sum((r.reward_amount for r in rewards if not r.claimed), ZERO)

    return UserSummary(
        id=user.id,
        email=user.email,
        referral_code=user.referral_code,
        referral_link=get_settings().referral_link(user.referral_code),
        total_deposits=user.total_deposits,
        total_earnings=user.total_earnings,
        pending_rewards=format_money(pending),
        referrals=referrals,
        rewards=rewards,
    )


async def get_program_stats(db: AsyncSession) -> ProgramStats:
    """Count users, deposits and rewards, and total the deposited amount."""
    async with transaction(db, "Stats"):
        total_users = await db.scalar(select(func.count(User.id)))
        total_deposits = await db.scalar(select(func.count(Deposit.id)))
        deposit_sum = await db.scalar(select(func.sum(Deposit.amount)))
        total_rewards = await db.scalar(select(func.count(Reward.id)))

    return ProgramStats(
        total_users=total_users or 0,
        total_deposits=total_deposits or 0,
        total_deposit_amount=quantize_money(Decimal(str(deposit_sum or 0))),
        total_rewards=total_rewards or 0,
    )
