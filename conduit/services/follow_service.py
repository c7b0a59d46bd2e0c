"""
Follow graph: directed follow edges between users.

Edges live in the ``follow`` association table keyed by
``(follower_id, followee_id)``; the composite primary key is the
uniqueness authority.  ``follow`` is idempotent: re-following an
already-followed user is accepted silently, including when two requests
race to insert the same edge.
"""
import logging
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.models import Follow, User

logger = logging.getLogger(__name__)


async def is_following(db: AsyncSession, follower: User, followee: User) -> bool:
    q = select(Follow).where(
        Follow.follower_id == follower.id,
        Follow.followee_id == followee.id,
    )
    result = await db.execute(q)
    return result.scalar_one_or_none() is not None


async def follow(db: AsyncSession, follower: User, followee: User) -> None:
    """
    Create the edge *follower* -> *followee* unless it already exists.

    The existence check is only a fast path.  The insert runs inside a
    SAVEPOINT so that a concurrent duplicate rejected by the primary key
    rolls back just this insert and is treated as "already following".
    """
    if await is_following(db, follower, followee):
        return
    try:
        async with db.begin_nested():
            db.add(Follow(follower_id=follower.id, followee_id=followee.id))
    except IntegrityError:
        logger.info(
            "Follow edge %s -> %s created concurrently; keeping the existing row",
            follower.username, followee.username,
        )
        return
    logger.info("%s now follows %s", follower.username, followee.username)


async def unfollow(db: AsyncSession, follower: User, followee: User) -> None:
    """Remove the edge if present; removing an absent edge is a no-op."""
    result = await db.execute(
        delete(Follow).where(
            Follow.follower_id == follower.id,
            Follow.followee_id == followee.id,
        )
    )
    if result.rowcount:
        logger.info("%s unfollowed %s", follower.username, followee.username)


async def following_of(db: AsyncSession, user: User) -> list[User]:
    """Return the users *user* follows, ordered by username."""
    q = (
        select(User)
        .join(Follow, Follow.followee_id == User.id)
        .where(Follow.follower_id == user.id)
        .order_by(User.username)
    )
    result = await db.execute(q)
    return list(result.scalars().all())


async def followees_among(
    db: AsyncSession, follower: User, user_ids: Iterable[int]
) -> set[int]:
    """Return the subset of *user_ids* that *follower* follows (one query)."""
    ids = set(user_ids)
    if not ids:
        return set()
    q = select(Follow.followee_id).where(
        Follow.follower_id == follower.id,
        Follow.followee_id.in_(ids),
    )
    result = await db.execute(q)
    return set(result.scalars().all())
