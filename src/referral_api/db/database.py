"""Database connection, session and transaction management.

Provides the async SQLAlchemy engine, the per-request session dependency
and the transaction scope every mutating referral operation runs in.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from referral_api.config import get_settings
from referral_api.errors import InternalError, ReferralError

logger = logging.getLogger("referral-api.db")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine for PostgreSQL (asyncpg) or SQLite (aiosqlite)."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False)
    return create_async_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


engine = build_engine(get_settings().database_url)

# Async session factory
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session.

    The session (and its pooled connection) is released on every exit
    path; anything left uncommitted is rolled back.

    Usage:
        @router.post("/deposit")
        async def deposit(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def transaction(
    db: AsyncSession, operation: str
) -> AsyncGenerator[AsyncSession, None]:
    """Run a block as one atomic unit of work on ``db``.

    Commits when the block finishes. On any error the transaction is
    rolled back before the error propagates; referral errors pass through
    unchanged and store failures are logged and surfaced as InternalError.

    Args:
        db: Session injected by the caller.
        operation: Short label used in log lines and the InternalError.
    """
    try:
        yield db
        await db.commit()
    except ReferralError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"{operation} failed, transaction rolled back")
        raise InternalError(f"{operation} failed") from e
    except BaseException:
        await db.rollback()
        raise


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Initialize database tables.

    Creates all tables defined in models if they don't exist.
    For production, use Alembic migrations instead.
    """
    # Register models on Base.metadata
    from referral_api.db import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed_reward_levels(db: AsyncSession, schedule: dict) -> int:
    """Insert the default reward schedule when reward_levels is empty.

    The schedule is operator-managed configuration; existing rows are
    never touched.

    Returns:
        Number of rows inserted.
    """
    from referral_api.db.models import RewardLevel

    existing = await db.execute(select(RewardLevel.level).limit(1))
    if existing.first() is not None:
        return 0

    db.add_all(
        RewardLevel(level=level, percentage=percentage)
        for level, percentage in sorted(schedule.items())
    )
    await db.commit()
    logger.info(f"Seeded {len(schedule)} reward level(s)")
    return len(schedule)
