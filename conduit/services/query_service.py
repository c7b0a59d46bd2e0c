"""
Article query service: read-side composition.

Joins the article store, the favorite tracker and the follow graph to
answer listing queries and decorates each article with viewer-relative
flags.  Those flags (``favorited``, author ``following``) are computed
here per request and never stored on the entities.  An anonymous viewer
(``viewer=None``) always sees both flags as false.

Lists are decorated in batch: one favorites-count query, one favorited
query and one following query per page, instead of three per article.
"""
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from conduit.models import Article, User
from conduit.schemas import ArticleFacets
from conduit.services import article_service, favorite_service, follow_service
from conduit.services.user_service import profile_to_dict


@dataclass(frozen=True)
class ArticleInfo:
    article: Article
    favorites_count: int = 0
    favorited: bool = False
    following: bool = False


def _isoformat(value) -> str | None:
    return value.isoformat() if value else None


def article_info_to_dict(info: ArticleInfo) -> dict:
    """Serialise an ArticleInfo to the public article shape."""
    article = info.article
    return {
        "slug": article.slug,
        "title": article.title,
        "description": article.description,
        "body": article.content,
        "tagList": [t.name for t in article.tags],
        "createdAt": _isoformat(article.created_at),
        "updatedAt": _isoformat(article.updated_at),
        "favorited": info.favorited,
        "favoritesCount": info.favorites_count,
        "author": profile_to_dict(article.author, info.following),
    }


async def article_info(
    db: AsyncSession, article: Article, viewer: User | None = None
) -> ArticleInfo:
    favorites_count = await favorite_service.count_for(db, article)
    if viewer is None:
        return ArticleInfo(article, favorites_count)

    return ArticleInfo(
        article,
        favorites_count,
        favorited=await favorite_service.is_favorited(db, viewer, article),
        following=await follow_service.is_following(db, viewer, article.author),
    )


async def _decorate(
    db: AsyncSession, articles: Sequence[Article], viewer: User | None
) -> list[ArticleInfo]:
    article_ids = [a.id for a in articles]
    counts = await favorite_service.counts_for(db, article_ids)
    favorited: set[int] = set()
    following: set[int] = set()
    if viewer is not None:
        favorited = await favorite_service.favorited_among(db, viewer, article_ids)
        following = await follow_service.followees_among(db, viewer, {a.author_id for a in articles})

    return [
        ArticleInfo(
            a,
            counts.get(a.id, 0),
            favorited=a.id in favorited,
            following=a.author_id in following,
        )
        for a in articles
    ]


async def list_articles(
    db: AsyncSession, facets: ArticleFacets, viewer: User | None = None
) -> list[ArticleInfo]:
    """Global listing filtered by *facets*, decorated for *viewer*."""
    articles = await article_service.list_by_facets(db, facets)
    return await _decorate(db, articles, viewer)


async def feed(db: AsyncSession, viewer: User, facets: ArticleFacets) -> list[ArticleInfo]:
    """
    Articles by the authors *viewer* follows, newest first.

    Following nobody yields an empty feed.
    """
    authors = await follow_service.following_of(db, viewer)
    if not authors:
        return []
    articles = await article_service.list_by_authors(db, authors, facets)
    return await _decorate(db, articles, viewer)


async def count_feed(db: AsyncSession, viewer: User, facets: ArticleFacets) -> int:
    authors = await follow_service.following_of(db, viewer)
    return await article_service.count_by_authors(db, authors, facets)
