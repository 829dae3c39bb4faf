"""SQLAlchemy models for users, referral edges, deposits and rewards.

Monetary columns are Numeric(12, 2) and map to Decimal on both sides.
Timestamps are set application-side so they are available right after
flush without a round trip.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_api.db.database import Base

MONEY = Numeric(12, 2)


def utcnow() -> datetime:
    """Current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


# =============================================================================
# User Model
# =============================================================================


class User(Base):
    """Program member with running deposit and earning totals."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    referral_code: Mapped[str] = mapped_column(String(6), unique=True, nullable=False)

    # Immediate parent in the referral tree (weak reference)
    referred_by: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL")
    )

    # Running totals
    total_deposits: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0.00")
    )
    total_earnings: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0.00")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("ix_users_referred_by", "referred_by"),
    )


# =============================================================================
# Referral Edge Model
# =============================================================================


class ReferralEdge(Base):
    """Materialized ancestor row: referred user's deposits reward referrer.

    Written once per ancestor at signup and never updated.
    """

    __tablename__ = "referrals"

    referred_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), primary_key=True
    )
    level: Mapped[int] = mapped_column(Integer, primary_key=True)
    referrer_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("level >= 1", name="ck_referrals_level_positive"),
        CheckConstraint("referrer_id <> referred_id", name="ck_referrals_not_self"),
        Index("ix_referrals_referrer_id", "referrer_id"),
    )


# =============================================================================
# Deposit Model
# =============================================================================


class Deposit(Base):
    """Append-only record of a user's deposit."""

    __tablename__ = "deposits"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_deposits_amount_positive"),
        Index("ix_deposits_user_id", "user_id"),
    )


# =============================================================================
# Reward Models
# =============================================================================


class Reward(Base):
    """Credit owed to an ancestor for one descendant deposit."""

    __tablename__ = "rewards"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )  # beneficiary
    from_user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )  # depositor
    deposit_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("deposits.id"), nullable=False
    )

    level: Mapped[int] = mapped_column(Integer, nullable=False)
    deposit_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    reward_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("deposit_id", "user_id", name="uq_rewards_deposit_beneficiary"),
        Index("ix_rewards_user_id_claimed", "user_id", "claimed"),
        Index("ix_rewards_from_user_id", "from_user_id"),
    )


class RewardLevel(Base):
    """Percentage paid to the ancestor at a given level.

    Operator-managed configuration; the referral core only reads it.
    """

    __tablename__ = "reward_levels"

    level: Mapped[int] = mapped_column(Integer, primary_key=True)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
