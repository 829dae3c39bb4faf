"""Shared fixtures: in-memory SQLite store, sessions and an ASGI client."""

import os
import sys
from decimal import Decimal
from itertools import count
from pathlib import Path

# Configure before the app module builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from referral_api.db.database import Base, get_db, seed_reward_levels
from referral_api.db.models import User
from referral_api.main import app

REWARD_SCHEDULE = {1: Decimal("10"), 2: Decimal("5"), 3: Decimal("2")}


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """Session with the default reward schedule (10% / 5% / 2%) seeded."""
    async with session_factory() as session:
        await seed_reward_levels(session, REWARD_SCHEDULE)
        yield session


@pytest.fixture
async def client(session_factory, db):
    """HTTP client against the app, using the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Insert a user row directly, bypassing registration.

    Lets tests build parent-pointer shapes registration would never
    produce (cycles, dangling parents).
    """
    codes = count(100000)

    async def _make_user(email: str, referred_by=None) -> User:
        user = User(
            email=email,
            referral_code=str(next(codes)),
            referred_by=referred_by,
            total_deposits=Decimal("0.00"),
            total_earnings=Decimal("0.00"),
        )
        db.add(user)
        await db.flush()
        return user

    return _make_user
