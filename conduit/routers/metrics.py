from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from conduit.database import get_db
from conduit.models import Article, ArticleFavorite, Follow, Tag, User
from conduit.schemas import MetricsResponse

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):
    total_articles = await _count(db, Article)
    total_favorites = await _count(db, ArticleFavorite)

    avg_favorites = total_favorites / total_articles if total_articles > 0 else 0

    return MetricsResponse(
        total_users=await _count(db, User),
        total_articles=total_articles,
        total_tags=await _count(db, Tag),
        total_favorites=total_favorites,
        total_follows=await _count(db, Follow),
        avg_favorites_per_article=round(avg_favorites, 2),
    )
