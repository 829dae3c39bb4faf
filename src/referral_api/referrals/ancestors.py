"""Ancestor resolution over the referred_by parent pointers."""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_api.config import get_settings
from referral_api.db.models import User

MAX_REFERRAL_LEVELS = get_settings().max_referral_levels


@dataclass(frozen=True)
class Ancestor:
    """A user reachable upward from another, and how far away it is."""

    user_id: UUID
    level: int


async def _parent_of(db: AsyncSession, user_id: UUID) -> tuple[bool, UUID | None]:
    """Return (exists, referred_by) for a user id."""
    result = await db.execute(select(User.referred_by).where(User.id == user_id))
    row = result.first()
    if row is None:
        return False, None
    return True, row.referred_by


async def ancestors_of(
    db: AsyncSession,
    user_id: UUID,
    max_levels: int = MAX_REFERRAL_LEVELS,
) -> list[Ancestor]:
    """Walk the parent chain of a user, nearest ancestor first.

    The walk stops at the level cap, at a null parent, at a parent id with
    no user row, or when a user would be visited twice. Runs on the
    caller's session so it reads the caller's transaction snapshot.

    Args:
        db: Session of the surrounding transaction.
        user_id: User whose ancestors to resolve.
        max_levels: Maximum number of ancestors to return.

    Returns:
        Ancestors with levels 1..k (k <= max_levels); empty for a root user.
    """
    ancestors: list[Ancestor] = []
    visited = {user_id}

    exists, parent_id = await _parent_of(db, user_id)
    if not exists:
        return ancestors

    while parent_id is not None and len(ancestors) < max_levels:
        if parent_id in visited:
            break  # cycle
        exists, next_parent_id = await _parent_of(db, parent_id)
        if not exists:
            break  # dangling pointer
        visited.add(parent_id)
        ancestors.append(Ancestor(user_id=parent_id, level=len(ancestors) + 1))
        parent_id = next_parent_id

    return ancestors
