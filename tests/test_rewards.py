"""Tests for deposits and multi-level reward fan-out."""

from decimal import Decimal

import pytest
from sqlalchemy import delete, func, select, update

from referral_api.db.models import Deposit, Reward, RewardLevel, User
from referral_api.errors import UserNotFoundError, ValidationError
from referral_api.referrals.ancestors import ancestors_of
from referral_api.referrals.service import (
    calculate_reward,
    record_deposit,
    register_user,
    require_amount,
)


@pytest.fixture
async def chain(db):
    """A -> B -> C, each registered with the previous user's code."""
    a = await register_user(db, "a@example.com")
    b = await register_user(db, "b@example.com", referral_code=a.referral_code)
    c = await register_user(db, "c@example.com", referral_code=b.referral_code)
    return a, b, c


async def total_deposits(db, email: str) -> Decimal:
    return await db.scalar(select(User.total_deposits).where(User.email == email))


async def rewards_from(db, user_id) -> list[Reward]:
    result = await db.execute(
        select(Reward)
        .where(Reward.from_user_id == user_id)
        .order_by(Reward.level)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


# =============================================================================
# Reward Calculation
# =============================================================================


class TestCalculateReward:
    """Tests for the per-ancestor reward amount."""

    def test_percentage_of_amount(self):
        """10% of 100.00 is 10.00."""
        assert calculate_reward(Decimal("100.00"), Decimal("10")) == Decimal("10.00")

    def test_rounds_to_cents(self):
        """Fractions of a cent are rounded half up."""
        assert calculate_reward(Decimal("33.33"), Decimal("10")) == Decimal("3.33")
        assert calculate_reward(Decimal("0.25"), Decimal("2")) == Decimal("0.01")

    def test_zero_percentage(self):
        """A zero rate gives a zero reward."""
        assert calculate_reward(Decimal("50.00"), Decimal("0")) == Decimal("0.00")


class TestRequireAmount:
    """Tests for deposit amount validation."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (100, Decimal("100.00")),
            ("25.5", Decimal("25.50")),
            (Decimal("0.015"), Decimal("0.02")),
            (12.34, Decimal("12.34")),
            ("9999999999.99", Decimal("9999999999.99")),
        ],
    )
    def test_accepts_positive_amounts(self, raw, expected):
        """Positive numbers are coerced to cents."""
        assert require_amount(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [
            0,
            -5,
            "-0.01",
            "abc",
            None,
            True,
            "NaN",
            "Infinity",
            "0.001",
            "1e30",
            "10000000000",
            "9999999999.995",
        ],
    )
    def test_rejects_invalid_amounts(self, raw):
        """Zero, negative, non-numeric, non-finite and oversized amounts fail."""
        with pytest.raises(ValidationError):
            require_amount(raw)


# =============================================================================
# Deposits
# =============================================================================


class TestRecordDeposit:
    """Tests for recording deposits and distributing rewards."""

    async def test_rewards_each_ancestor_by_level(self, db, chain):
        """A deposit by C rewards B at 10% and A at 5%."""
        a, b, c = chain

        await record_deposit(db, "c@example.com", Decimal("100"))

        rewards = await rewards_from(db, c.id)
        assert [(r.user_id, r.level, r.reward_amount) for r in rewards] == [
            (b.id, 1, Decimal("10.00")),
            (a.id, 2, Decimal("5.00")),
        ]
        assert all(r.deposit_amount == Decimal("100.00") for r in rewards)
        assert all(r.claimed is False for r in rewards)

    async def test_no_reward_for_depositor(self, db, chain):
        """The depositor never rewards itself."""
        _, _, c = chain

        await record_deposit(db, "c@example.com", 100)

        count = await db.scalar(
            select(func.count(Reward.id)).where(Reward.user_id == c.id)
        )
        assert count == 0

    async def test_reward_count_matches_ancestors(self, db, chain):
        """One reward row per resolved ancestor."""
        for user in chain:
            await record_deposit(db, user.email, 10)
            expected = len(await ancestors_of(db, user.id))
            assert len(await rewards_from(db, user.id)) == expected

    async def test_total_deposits_increase_exactly(self, db, chain):
        """Running totals grow by exactly the deposited amounts."""
        await record_deposit(db, "c@example.com", "40.10")
        await record_deposit(db, "c@example.com", Decimal("9.90"))

        assert await total_deposits(db, "c@example.com") == Decimal("50.00")
        assert await total_deposits(db, "b@example.com") == Decimal("0.00")

    async def test_deposit_row_appended(self, db, chain):
        """Each call appends a deposit row."""
        _, _, c = chain

        first = await record_deposit(db, "c@example.com", 5)
        second = await record_deposit(db, "c@example.com", 5)

        assert first.id != second.id
        count = await db.scalar(
            select(func.count(Deposit.id)).where(Deposit.user_id == c.id)
        )
        assert count == 2

    async def test_root_deposit_creates_no_rewards(self, db, chain):
        """A user with no ancestors only gets the deposit recorded."""
        a, _, _ = chain

        await record_deposit(db, "a@example.com", 100)

        assert await rewards_from(db, a.id) == []
        assert await total_deposits(db, "a@example.com") == Decimal("100.00")

    async def test_missing_schedule_level_pays_zero(self, db, chain):
        """An ancestor level absent from the schedule gets a 0.00 reward."""
        a, b, c = chain
        await db.execute(delete(RewardLevel).where(RewardLevel.level == 2))
        await db.commit()

        await record_deposit(db, "c@example.com", 100)

        rewards = await rewards_from(db, c.id)
        assert [(r.user_id, r.reward_amount) for r in rewards] == [
            (b.id, Decimal("10.00")),
            (a.id, Decimal("0.00")),
        ]

    async def test_uses_edges_recorded_at_signup(self, db, chain):
        """Later parent-pointer changes do not alter attribution."""
        a, b, c = chain
        await db.execute(
            update(User).where(User.id == b.id).values(referred_by=None)
        )
        await db.commit()

        await record_deposit(db, "c@example.com", 100)

        rewards = await rewards_from(db, c.id)
        assert [(r.user_id, r.level) for r in rewards] == [(b.id, 1), (a.id, 2)]

    async def test_email_lookup_case_insensitive(self, db, chain):
        """Deposits accept any casing of the registered email."""
        await record_deposit(db, "C@Example.com", 1)

        assert await total_deposits(db, "c@example.com") == Decimal("1.00")


class TestRecordDepositRejections:
    """Tests for rejected deposits."""

    async def test_unknown_user(self, db, chain):
        """Deposits for unknown emails fail and write nothing."""
        with pytest.raises(UserNotFoundError):
            await record_deposit(db, "nobody@example.com", 100)

        assert await db.scalar(select(func.count(Deposit.id))) == 0
        assert await db.scalar(select(func.count(Reward.id))) == 0

    @pytest.mark.parametrize("amount", [0, -10, "abc"])
    async def test_invalid_amount(self, db, chain, amount):
        """Invalid amounts fail before any write."""
        with pytest.raises(ValidationError):
            await record_deposit(db, "c@example.com", amount)

        assert await total_deposits(db, "c@example.com") == Decimal("0.00")
        assert await db.scalar(select(func.count(Deposit.id))) == 0
