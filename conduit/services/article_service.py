"""
Article service: the article store.

Design notes
------------
- Titles are unique across all articles; the slug is derived from the
  title and is unique too.  Application checks run first (fast path) but
  the unique constraints decide: every insert/rename runs inside a
  SAVEPOINT and an ``IntegrityError`` becomes ``ConflictError``.
- Only the author may edit or delete an article.  The ownership check
  runs before anything is touched, so a rejected edit changes nothing.
- Relationships are ``lazy="noload"``; ``_load_articles`` eager-loads the
  author (``joinedload``) and tags (``selectinload``) with
  ``populate_existing`` so callers always see fresh tag lists after
  ``attach_tags``.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
import logging
import re
from typing import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from conduit.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from conduit.models import Article, ArticleFavorite, ArticleTag, Tag, User
from conduit.schemas import ArticleCreate, ArticleFacets, ArticleUpdate
from conduit.services import tag_service

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

_TITLE_TAKEN = "title is already exists."


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def _slug_for(title: str) -> str:
    slug = slugify(title)
    if not slug:
        raise InvalidInputError("title must contain at least one letter or digit.")
    return slug


def _newest_first(q):
    return q.order_by(Article.created_at.desc(), Article.id.desc())


def _facet_filters(facets: ArticleFacets) -> list:
    """Translate tag / author / favorited facets into WHERE clauses."""
    filters = []
    if facets.tag:
        filters.append(
            Article.id.in_(
                select(ArticleTag.article_id)
                .join(Tag, Tag.id == ArticleTag.tag_id)
                .where(Tag.name == facets.tag)
            )
        )
    if facets.author:
        filters.append(
            Article.author_id.in_(select(User.id).where(User.username == facets.author))
        )
    if facets.favorited:
        filters.append(
            Article.id.in_(
                select(ArticleFavorite.article_id)
                .join(User, User.id == ArticleFavorite.user_id)
                .where(User.username == facets.favorited)
            )
        )
    return filters


async def _load_articles(db: AsyncSession, q) -> list[Article]:
    q = q.options(joinedload(Article.author), selectinload(Article.tags)).execution_options(
        populate_existing=True
    )
    result = await db.execute(q)
    return list(result.unique().scalars().all())


async def _title_taken(db: AsyncSession, title: str, exclude_id: int | None = None) -> bool:
    q = select(Article.id).where(
        (Article.title == title) | (Article.slug == slugify(title))
    )
    if exclude_id is not None:
        q = q.where(Article.id != exclude_id)
    result = await db.execute(q.limit(1))
    return result.first() is not None


def _require_author(requester: User, article: Article, action: str) -> None:
    if not article.is_author(requester):
        logger.warning(
            "User %s tried to %s article %s written by someone else",
            requester.username, action, article.slug,
        )
        raise ForbiddenError(f"you can't {action} articles written by others.")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_article_by_slug(db: AsyncSession, slug: str) -> Article:
    articles = await _load_articles(db, select(Article).where(Article.slug == slug))
    if not articles:
        raise NotFoundError("article not found.")
    return articles[0]


async def list_by_facets(db: AsyncSession, facets: ArticleFacets) -> list[Article]:
    q = _newest_first(select(Article).where(*_facet_filters(facets)))
    return await _load_articles(db, q.offset(facets.offset).limit(facets.limit))


async def count_by_facets(db: AsyncSession, facets: ArticleFacets) -> int:
    q = select(func.count()).select_from(Article).where(*_facet_filters(facets))
    return (await db.execute(q)).scalar_one()


async def list_by_authors(
    db: AsyncSession, authors: Iterable[User], facets: ArticleFacets
) -> list[Article]:
    """
    Articles written by any of *authors*, filtered and paged by *facets*,
    newest first.

    An empty author set yields an empty list, never "all articles".
    """
    author_ids = {a.id for a in authors}
    if not author_ids:
        return []
    q = _newest_first(
        select(Article).where(Article.author_id.in_(list(author_ids)), *_facet_filters(facets))
    )
    return await _load_articles(db, q.offset(facets.offset).limit(facets.limit))


async def count_by_authors(
    db: AsyncSession, authors: Iterable[User], facets: ArticleFacets
) -> int:
    author_ids = {a.id for a in authors}
    if not author_ids:
        return 0
    q = (
        select(func.count())
        .select_from(Article)
        .where(Article.author_id.in_(list(author_ids)), *_facet_filters(facets))
    )
    return (await db.execute(q)).scalar_one()


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_article(db: AsyncSession, author: User, data: ArticleCreate) -> Article:
    """
    Persist a new article written by *author*.

    Raises ``InvalidInputError`` when the title has nothing to build a slug
    from and ``ConflictError`` when the title (or the slug derived from it)
    is already used by another article.
    """
    slug = _slug_for(data.title)
    if await _title_taken(db, data.title):
        raise ConflictError(_TITLE_TAKEN)

    article = Article(
        title=data.title,
        slug=slug,
        description=data.description,
        content=data.body,
        author_id=author.id,
    )
    try:
        async with db.begin_nested():
            db.add(article)
    except IntegrityError as exc:
        logger.info("Title %r rejected by unique constraint", data.title)
        raise ConflictError(_TITLE_TAKEN) from exc
    logger.info("Article %s created by %s", article.slug, author.username)
    return article


async def edit_title(db: AsyncSession, requester: User, article: Article, title: str) -> Article:
    _require_author(requester, article, "edit")
    if title == article.title:
        return article
    slug = _slug_for(title)
    if await _title_taken(db, title, exclude_id=article.id):
        raise ConflictError(_TITLE_TAKEN)

    # Assigned inside the SAVEPOINT: begin_nested() flushes pending state first.
    try:
        async with db.begin_nested():
            article.title = title
            article.slug = slug
    except IntegrityError as exc:
        logger.info("Title %r rejected by unique constraint", title)
        raise ConflictError(_TITLE_TAKEN) from exc
    return article


async def edit_description(
    db: AsyncSession, requester: User, article: Article, description: str
) -> Article:
    _require_author(requester, article, "edit")
    article.description = description
    await db.flush()
    return article


async def edit_content(db: AsyncSession, requester: User, article: Article, content: str) -> Article:
    _require_author(requester, article, "edit")
    article.content = content
    await db.flush()
    return article


async def update_article(
    db: AsyncSession, requester: User, article: Article, data: ArticleUpdate
) -> Article:
    """
    Apply every field present in *data*.

    Only fields explicitly set in the request payload are touched
    (``model_dump(exclude_unset=True)``).  Tags are attached, never
    detached.  Returns the article reloaded with its current tags.
    """
    _require_author(requester, article, "edit")
    changes = data.model_dump(exclude_unset=True)

    if changes.get("title") is not None:
        await edit_title(db, requester, article, changes["title"])
    if changes.get("description") is not None:
        await edit_description(db, requester, article, changes["description"])
    if changes.get("body") is not None:
        await edit_content(db, requester, article, changes["body"])
    if changes.get("tag_list"):
        await attach_tags(db, article, changes["tag_list"])

    return await reload(db, article)


async def delete_article(db: AsyncSession, requester: User, article: Article) -> None:
    """Delete *article* and its tag associations and favorites."""
    _require_author(requester, article, "delete")

    await db.execute(delete(ArticleTag).where(ArticleTag.article_id == article.id))
    await db.execute(delete(ArticleFavorite).where(ArticleFavorite.article_id == article.id))
    await db.delete(article)
    await db.flush()
    logger.info("Article %s deleted by %s", article.slug, requester.username)


async def _associations(db: AsyncSession, article: Article, tag_ids: Iterable[int]) -> set[ArticleTag]:
    result = await db.execute(
        select(ArticleTag)
        .where(ArticleTag.article_id == article.id, ArticleTag.tag_id.in_(list(tag_ids)))
        .options(joinedload(ArticleTag.tag))
    )
    return set(result.scalars().all())


async def attach_tags(db: AsyncSession, article: Article, names: Iterable[str]) -> set[ArticleTag]:
    """
    Attach the tags named in *names* to *article*; return all of its
    current associations for those tags (existing plus new).

    Idempotent: associations already present are left alone, so calling
    twice with the same names creates no duplicate rows.
    """
    tags = await tag_service.ensure_tags(db, names)
    if not tags:
        return set()
    tags_by_id = {tag.id: tag for tag in tags}

    attached = await _associations(db, article, tags_by_id)
    attached_ids = {at.tag_id for at in attached}

    for tag_id in sorted(tags_by_id.keys() - attached_ids):
        association = ArticleTag(article_id=article.id, tag_id=tag_id, tag=tags_by_id[tag_id])
        try:
            async with db.begin_nested():
                db.add(association)
        except IntegrityError:
            logger.info("Tag %s attached to %s concurrently; re-reading", tag_id, article.slug)
            result = await db.execute(
                select(ArticleTag)
                .where(ArticleTag.article_id == article.id, ArticleTag.tag_id == tag_id)
                .options(joinedload(ArticleTag.tag))
            )
            association = result.scalar_one()
        attached.add(association)

    return attached


async def reload(db: AsyncSession, article: Article) -> Article:
    """Re-read *article* with fresh author and tag collections."""
    articles = await _load_articles(db, select(Article).where(Article.id == article.id))
    return articles[0]
