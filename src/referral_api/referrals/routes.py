"""Referral program API routes.

Provides registration, deposits, reward claims, the per-user summary and
program stats. Request bodies are shape-checked by pydantic; business
rules live in referral_api.referrals.service.
"""

from datetime import datetime
from decimal import Decimal
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from referral_api.db.database import get_db
from referral_api.errors import InternalError, ReferralError
from referral_api.referrals.service import (
    claim_rewards,
    format_money,
    get_program_stats,
    get_user_summary,
    record_deposit,
    register_user,
)

router = APIRouter(prefix="/api", tags=["Referrals"])


# =============================================================================
# Request/Response Models
# =============================================================================


class RegisterRequest(BaseModel):
    """Request body for signup."""

    email: str
    referral_code: str | None = None


class DepositRequest(BaseModel):
    """Request body for recording a deposit."""

    email: str
    amount: Decimal


class ClaimRequest(BaseModel):
    """Request body for claiming pending rewards."""

    email: str


class RegisteredUserResponse(BaseModel):
    """Created user with their own referral link."""

    id: str
    email: str
    referral_code: str
    referral_link: str


class RegisterResponse(BaseModel):
    """Signup response."""

    success: bool
    user: RegisteredUserResponse


class DepositResponse(BaseModel):
    """Deposit response."""

    success: bool
    message: str


class ClaimResponse(BaseModel):
    """Claim response; amount is rendered with two decimals."""

    success: bool
    claimed_amount: str
    message: str


class UserTotals(BaseModel):
    """User totals and link."""

    id: str
    email: str
    referral_code: str
    referral_link: str
    total_deposits: Decimal
    total_earnings: Decimal
    pending_rewards: str


class ReferralItem(BaseModel):
    """A referred user at some level."""

    level: int
    referred_email: str
    total_deposits: Decimal
    created_at: datetime


class RewardItem(BaseModel):
    """A reward credited to the user."""

    id: str
    from_email: str
    level: int
    deposit_amount: Decimal
    reward_amount: Decimal
    claimed: bool
    created_at: datetime


class UserSummaryResponse(BaseModel):
    """User totals with referral and reward history."""

    user: UserTotals
    referrals: list[ReferralItem]
    rewards: list[RewardItem]


class StatsResponse(BaseModel):
    """Program-wide counters."""

    total_users: int
    total_deposits: int
    total_deposit_amount: str
    total_rewards: int


def _raise_http(error: ReferralError, internal_detail: str) -> NoReturn:
    """Map a referral error to an HTTP error without leaking internals."""
    if isinstance(error, InternalError):
        raise HTTPException(status_code=500, detail=internal_detail) from error
    raise HTTPException(status_code=error.status_code, detail=error.message) from error


# =============================================================================
# Routes
# =============================================================================


@router.post("/register", response_model=RegisterResponse)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    """Create a user, optionally under a referrer.

    The new user's ancestors (up to the level cap) are recorded so that
    their future deposits reward those ancestors.
    """
    try:
        user = await register_user(db, request.email, request.referral_code)
    except ReferralError as e:
        _raise_http(e, "Registration failed")

    return RegisterResponse(
        success=True,
        user=RegisteredUserResponse(
            id=str(user.id),
            email=user.email,
            referral_code=user.referral_code,
            referral_link=user.referral_link,
        ),
    )


@router.get("/user/{email}", response_model=UserSummaryResponse)
async def get_user(
    email: str,
    db: AsyncSession = Depends(get_db),
):
    """Get a user's totals, referred users and rewards."""
    try:
        summary = await get_user_summary(db, email)
    except ReferralError as e:
        _raise_http(e, "Failed to fetch user data")

    return UserSummaryResponse(
        user=UserTotals(
            id=str(summary.id),
            email=summary.email,
            referral_code=summary.referral_code,
            referral_link=summary.referral_link,
            total_deposits=summary.total_deposits,
            total_earnings=summary.total_earnings,
            pending_rewards=summary.pending_rewards,
        ),
        referrals=[
            ReferralItem(
                level=entry.level,
                referred_email=entry.referred_email,
                total_deposits=entry.total_deposits,
                created_at=entry.created_at,
            )
            for entry in summary.referrals
        ],
        rewards=[
            RewardItem(
                id=str(entry.id),
                from_email=entry.from_email,
                level=entry.level,
                deposit_amount=entry.deposit_amount,
                reward_amount=entry.reward_amount,
                claimed=entry.claimed,
                created_at=entry.created_at,
            )
            for entry in summary.rewards
        ],
    )


@router.post("/deposit", response_model=DepositResponse)
async def deposit(
    request: DepositRequest,
    db: AsyncSession = Depends(get_db),
):
    """Record a deposit and distribute rewards to the depositor's ancestors."""
    try:
        await record_deposit(db, request.email, request.amount)
    except ReferralError as e:
        _raise_http(e, "Deposit failed")

    return DepositResponse(
        success=True,
        message="Deposit recorded and rewards calculated",
    )


@router.post("/rewards/claim", response_model=ClaimResponse)
async def claim(
    request: ClaimRequest,
    db: AsyncSession = Depends(get_db),
):
    """Claim all pending rewards into the user's earnings."""
    try:
        total = await claim_rewards(db, request.email)
    except ReferralError as e:
        _raise_http(e, "Failed to claim rewards")

    return ClaimResponse(
        success=True,
        claimed_amount=format_money(total),
        message="Rewards claimed successfully",
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(db: AsyncSession = Depends(get_db)):
    """Get program-wide counters."""
    try:
        program_stats = await get_program_stats(db)
    except ReferralError as e:
        _raise_http(e, "Failed to fetch stats")

    return StatsResponse(
        total_users=program_stats.total_users,
        total_deposits=program_stats.total_deposits,
        total_deposit_amount=format_money(program_stats.total_deposit_amount),
        total_rewards=program_stats.total_rewards,
    )
