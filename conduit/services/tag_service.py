"""
Tag catalog: the global, deduplicated set of tag names.

Tags are created lazily the first time an article references them and
are never deleted.  The unique constraint on ``tags.name`` is the
authority: when two requests race to create the same name, the loser's
insert is rolled back to its SAVEPOINT and the winner's row is re-read.
"""
import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.models import Tag

logger = logging.getLogger(__name__)


def normalize_names(names: Iterable[str]) -> set[str]:
    """Strip whitespace and drop blanks and duplicates."""
    return {n.strip() for n in names if n and n.strip()}


async def _tags_by_name(db: AsyncSession, names: set[str]) -> list[Tag]:
    result = await db.execute(select(Tag).where(Tag.name.in_(names)))
    return list(result.scalars().all())


async def ensure_tags(db: AsyncSession, names: Iterable[str]) -> list[Tag]:
    """
    Return a Tag for every name in *names*, creating the missing ones.

    Existing tags are read in a single query; each missing name is
    inserted inside its own SAVEPOINT.  Result is ordered by name.
    """
    wanted = normalize_names(names)
    if not wanted:
        return []

    found = {tag.name: tag for tag in await _tags_by_name(db, wanted)}

    for name in sorted(wanted - found.keys()):
        tag = Tag(name=name)
        try:
            async with db.begin_nested():
                db.add(tag)
        except IntegrityError:
            # Someone else just created it; theirs is the row to use.
            logger.info("Tag %r created concurrently; re-reading", name)
            result = await db.execute(select(Tag).where(Tag.name == name))
            tag = result.scalar_one()
        found[name] = tag

    return [found[name] for name in sorted(found)]


async def list_tags(db: AsyncSession) -> list[str]:
    result = await db.execute(select(Tag.name).order_by(Tag.name))
    return list(result.scalars().all())
