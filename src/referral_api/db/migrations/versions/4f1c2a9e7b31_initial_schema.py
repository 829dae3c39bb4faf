"""initial_schema

Revision ID: 4f1c2a9e7b31
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4f1c2a9e7b31"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create initial database schema."""
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("referral_code", sa.String(6), unique=True, nullable=False),
        sa.Column(
            "referred_by",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
        ),
        # Running totals
        sa.Column("total_deposits", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_earnings", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_referred_by", "users", ["referred_by"])

    # Materialized ancestor edges
    op.create_table(
        "referrals",
        sa.Column(
            "referred_id", sa.Uuid(), sa.ForeignKey("users.id"), primary_key=True
        ),
        sa.Column("level", sa.Integer, primary_key=True),
        sa.Column("referrer_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("level >= 1", name="ck_referrals_level_positive"),
        sa.CheckConstraint("referrer_id <> referred_id", name="ck_referrals_not_self"),
    )
    op.create_index("ix_referrals_referrer_id", "referrals", ["referrer_id"])

    # Deposits table
    op.create_table(
        "deposits",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_deposits_amount_positive"),
    )
    op.create_index("ix_deposits_user_id", "deposits", ["user_id"])

    # Rewards table
    op.create_table(
        "rewards",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "from_user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "deposit_id", sa.Uuid(), sa.ForeignKey("deposits.id"), nullable=False
        ),
        sa.Column("level", sa.Integer, nullable=False),
        sa.Column("deposit_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("reward_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("claimed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "deposit_id", "user_id", name="uq_rewards_deposit_beneficiary"
        ),
    )
    op.create_index("ix_rewards_user_id_claimed", "rewards", ["user_id", "claimed"])
    op.create_index("ix_rewards_from_user_id", "rewards", ["from_user_id"])

    # Reward schedule (operator-managed)
    reward_levels = op.create_table(
        "reward_levels",
        sa.Column("level", sa.Integer, primary_key=True),
        sa.Column("percentage", sa.Numeric(5, 2), nullable=False),
    )
    op.bulk_insert(
        reward_levels,
        [
            {"level": 1, "percentage": 10},
            {"level": 2, "percentage": 5},
            {"level": 3, "percentage": 2},
        ],
    )


def downgrade() -> None:
    """Drop all tables in reverse order."""
    op.drop_table("reward_levels")
    op.drop_table("rewards")
    op.drop_table("deposits")
    op.drop_table("referrals")
    op.drop_table("users")
