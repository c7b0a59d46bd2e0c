"""
Favorite tracker: which users favorited which articles.

Unlike follow edges, favorites are strict: favoriting twice or
unfavoriting something never favorited is a ``ConflictError``.  The
``(user_id, article_id)`` primary key decides between concurrent
favorites; the losing request observes the same conflict.
"""
import logging
from typing import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.exceptions import ConflictError
from conduit.models import Article, ArticleFavorite, User

logger = logging.getLogger(__name__)

_ALREADY_FAVORITED = "you already favorited this article."
_NOT_FAVORITED = "you have not favorited this article."


async def is_favorited(db: AsyncSession, user: User, article: Article) -> bool:
    q = select(ArticleFavorite.article_id).where(
        ArticleFavorite.user_id == user.id,
        ArticleFavorite.article_id == article.id,
    )
    result = await db.execute(q)
    return result.first() is not None


async def favorite(db: AsyncSession, user: User, article: Article) -> None:
    if await is_favorited(db, user, article):
        raise ConflictError(_ALREADY_FAVORITED)
    try:
        async with db.begin_nested():
            db.add(ArticleFavorite(user_id=user.id, article_id=article.id))
    except IntegrityError as exc:
        logger.info("Concurrent favorite of %s by %s rejected", article.slug, user.username)
        raise ConflictError(_ALREADY_FAVORITED) from exc
    logger.info("%s favorited %s", user.username, article.slug)


async def unfavorite(db: AsyncSession, user: User, article: Article) -> None:
    """Delete the favorite row; zero affected rows means there was none."""
    result = await db.execute(
        delete(ArticleFavorite).where(
            ArticleFavorite.user_id == user.id,
            ArticleFavorite.article_id == article.id,
        )
    )
    if not result.rowcount:
        raise ConflictError(_NOT_FAVORITED)
    logger.info("%s unfavorited %s", user.username, article.slug)


async def count_for(db: AsyncSession, article: Article) -> int:
    q = (
        select(func.count())
        .select_from(ArticleFavorite)
        .where(ArticleFavorite.article_id == article.id)
    )
    return (await db.execute(q)).scalar_one()


async def counts_for(db: AsyncSession, article_ids: Iterable[int]) -> dict[int, int]:
    """Favorite counts for many articles in one GROUP BY; missing ids count 0."""
    ids = set(article_ids)
    if not ids:
        return {}
    q = (
        select(ArticleFavorite.article_id, func.count())
        .where(ArticleFavorite.article_id.in_(ids))
        .group_by(ArticleFavorite.article_id)
    )
    counts = {article_id: count for article_id, count in (await db.execute(q)).all()}
    return {article_id: counts.get(article_id, 0) for article_id in ids}


async def favorited_among(db: AsyncSession, user: User, article_ids: Iterable[int]) -> set[int]:
    """Return the subset of *article_ids* that *user* has favorited."""
    ids = set(article_ids)
    if not ids:
        return set()
    q = select(ArticleFavorite.article_id).where(
        ArticleFavorite.user_id == user.id,
        ArticleFavorite.article_id.in_(ids),
    )
    return set((await db.execute(q)).scalars().all())
