from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import FacetParams, get_current_user, get_optional_user
from conduit.models import User
from conduit.schemas import (
    ArticleCreateRequest,
    ArticleEnvelope,
    ArticleListResponse,
    ArticleUpdateRequest,
)
from conduit.services import article_service, favorite_service, query_service
from conduit.services.query_service import article_info_to_dict

router = APIRouter(prefix="/api/articles", tags=["articles"])


async def _article_envelope(db: AsyncSession, article, viewer: User | None) -> dict:
    info = await query_service.article_info(db, article, viewer)
    return {"article": article_info_to_dict(info)}


@router.get("", response_model=ArticleListResponse)
async def list_articles(
    params: FacetParams = Depends(),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    facets = params.facets
    infos = await query_service.list_articles(db, facets, viewer)
    return {
        "articles": [article_info_to_dict(i) for i in infos],
        "articlesCount": await article_service.count_by_facets(db, facets),
    }


# Declared before "/{slug}" so "feed" is not captured as a slug.
@router.get("/feed", response_model=ArticleListResponse)
async def feed(
    params: FacetParams = Depends(),
    viewer: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    infos = await query_service.feed(db, viewer, params.facets)
    return {
        "articles": [article_info_to_dict(i) for i in infos],
        "articlesCount": await query_service.count_feed(db, viewer, params.facets),
    }


@router.get("/{slug}", response_model=ArticleEnvelope)
async def get_article(
    slug: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article_by_slug(db, slug)
    return await _article_envelope(db, article, viewer)


@router.post("", status_code=201, response_model=ArticleEnvelope)
async def create_article(
    data: ArticleCreateRequest,
    author: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.create_article(db, author, data.article)
    await article_service.attach_tags(db, article, data.article.tag_list)
    article = await article_service.reload(db, article)
    return await _article_envelope(db, article, author)


@router.put("/{slug}", response_model=ArticleEnvelope)
async def update_article(
    slug: str,
    data: ArticleUpdateRequest,
    requester: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article_by_slug(db, slug)
    article = await article_service.update_article(db, requester, article, data.article)
    return await _article_envelope(db, article, requester)


@router.delete("/{slug}", status_code=204)
async def delete_article(
    slug: str,
    requester: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article_by_slug(db, slug)
    await article_service.delete_article(db, requester, article)


@router.post("/{slug}/favorite", response_model=ArticleEnvelope)
async def favorite_article(
    slug: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article_by_slug(db, slug)
    await favorite_service.favorite(db, user, article)
    return await _article_envelope(db, article, user)


@router.delete("/{slug}/favorite", response_model=ArticleEnvelope)
async def unfavorite_article(
    slug: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article_by_slug(db, slug)
    await favorite_service.unfavorite(db, user, article)
    return await _article_envelope(db, article, user)
