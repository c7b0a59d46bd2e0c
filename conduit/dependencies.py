from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.config import settings
from conduit.database import get_db
from conduit.exceptions import NotFoundError, UnauthorizedError
from conduit.models import User
from conduit.schemas import ArticleFacets
from conduit.security import decode_token
from conduit.services import user_service

# auto_error=False: anonymous requests reach the handler, which decides.
bearer_scheme = HTTPBearer(auto_error=False)


class FacetParams:
    """
    Reusable FastAPI dependency that parses article listing facets.

    Usage in a router::

        @router.get("/articles")
        async def list_articles(params: FacetParams = Depends()):
            facets = params.facets

    Attributes
    ----------
    tag, author, favorited:
        Optional filters: tag name, author username, and the username of
        a user who favorited the article.
    limit:
        Page size, clamped to ``settings.MAX_PAGE_SIZE`` regardless of
        the value supplied by the caller.
    offset:
        Number of articles to skip.
    """

    def __init__(
        self,
        tag: str | None = Query(None, description="Only articles carrying this tag."),
        author: str | None = Query(None, description="Only articles by this username."),
        favorited: str | None = Query(None, description="Only articles favorited by this username."),
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            description="Number of articles returned.",
        ),
        offset: int = Query(0, ge=0, description="Number of articles skipped."),
    ) -> None:
        self.tag = tag
        self.author = author
        self.favorited = favorited
        self.limit = min(limit, settings.MAX_PAGE_SIZE)
        self.offset = offset

    @property
    def facets(self) -> ArticleFacets:
        return ArticleFacets(
            tag=self.tag,
            author=self.author,
            favorited=self.favorited,
            limit=self.limit,
            offset=self.offset,
        )


async def _user_from_credentials(db: AsyncSession, credentials: HTTPAuthorizationCredentials) -> User:
    payload = decode_token(credentials.credentials)
    try:
        return await user_service.get_user_by_id(db, int(payload["sub"]))
    except (NotFoundError, ValueError) as exc:
        raise UnauthorizedError("user not found for token.") from exc


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """The authenticated caller; 401 when the bearer token is missing or invalid."""
    if credentials is None:
        raise UnauthorizedError("authentication required.")
    return await _user_from_credentials(db, credentials)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """The caller if a bearer token was sent, else None (anonymous)."""
    if credentials is None:
        return None
    return await _user_from_credentials(db, credentials)


def bearer_token(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> str | None:
    return credentials.credentials if credentials else None
