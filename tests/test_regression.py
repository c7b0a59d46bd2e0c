"""
Regression tests for the storage-authoritative uniqueness handling.

The application-level existence checks are only a fast path.  These tests
switch the fast path off (as if a concurrent request had inserted the
same row between the check and the insert) and assert that the unique
constraints still produce the documented outcome instead of a raw
IntegrityError:

1. tag creation race      -> re-read the winner's tag, no duplicate
2. article-tag race       -> re-read the association, no duplicate
3. follow race            -> silently idempotent, one edge
4. favorite race          -> ConflictError, one favorite
5. article title race     -> ConflictError, on create and on rename
6. username rename race   -> ConflictError
7. the outer transaction stays usable after each recovered conflict
8. listing decoration is batched (no N+1); CORS stays credential-free
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.exceptions import ConflictError
from conduit.models import ArticleFavorite, ArticleTag, Follow, Tag, User
from conduit.schemas import ArticleCreate, ArticleFacets, UserUpdate
from conduit.services import (
    article_service,
    favorite_service,
    follow_service,
    tag_service,
    user_service,
)


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _nothing_exists(*args, **kwargs):
    return []


async def _never(*args, **kwargs):
    return False


async def _write(db: AsyncSession, author, title: str):
    return await article_service.create_article(
        db, author, ArticleCreate(title=title, description="", body="b")
    )


@pytest.mark.asyncio
async def test_tag_creation_race_rereads_existing(db_session: AsyncSession, monkeypatch):
    await db_session.execute(insert(Tag).values(name="dragons"))
    monkeypatch.setattr(tag_service, "_tags_by_name", _nothing_exists)

    tags = await tag_service.ensure_tags(db_session, ["dragons", "training"])

    assert [t.name for t in tags] == ["dragons", "training"]
    assert all(t.id is not None for t in tags)
    assert await _count(db_session, Tag) == 2


@pytest.mark.asyncio
async def test_article_tag_race_rereads_association(db_session: AsyncSession, make_user, monkeypatch):
    jake = await make_user("jake")
    article = await _write(db_session, jake, "Raced")
    [tag] = await tag_service.ensure_tags(db_session, ["dragons"])
    await db_session.execute(insert(ArticleTag).values(article_id=article.id, tag_id=tag.id))

    async def _no_associations(*args, **kwargs):
        return set()

    monkeypatch.setattr(article_service, "_associations", _no_associations)

    attached = await article_service.attach_tags(db_session, article, ["dragons"])

    assert {(at.article_id, at.tag_id) for at in attached} == {(article.id, tag.id)}
    assert await _count(db_session, ArticleTag) == 1


@pytest.mark.asyncio
async def test_follow_race_is_idempotent(db_session: AsyncSession, make_user, monkeypatch):
    jake = await make_user("jake")
    james = await make_user("james")
    await db_session.execute(insert(Follow).values(follower_id=jake.id, followee_id=james.id))
    monkeypatch.setattr(follow_service, "is_following", _never)

    await follow_service.follow(db_session, jake, james)

    assert await _count(db_session, Follow) == 1


@pytest.mark.asyncio
async def test_favorite_race_conflicts(db_session: AsyncSession, make_user, monkeypatch):
    jake = await make_user("jake")
    article = await _write(db_session, jake, "Contested")
    await db_session.execute(insert(ArticleFavorite).values(user_id=jake.id, article_id=article.id))
    monkeypatch.setattr(favorite_service, "is_favorited", _never)

    with pytest.raises(ConflictError):
        await favorite_service.favorite(db_session, jake, article)

    assert await favorite_service.count_for(db_session, article) == 1


@pytest.mark.asyncio
async def test_title_race_conflicts(db_session: AsyncSession, make_user, monkeypatch):
    jake = await make_user("jake")
    await _write(db_session, jake, "How to train your dragon")
    monkeypatch.setattr(article_service, "_title_taken", _never)

    with pytest.raises(ConflictError):
        await _write(db_session, jake, "How to train your dragon")


@pytest.mark.asyncio
async def test_title_rename_race_conflicts(db_session: AsyncSession, make_user, monkeypatch):
    jake = await make_user("jake")
    await _write(db_session, jake, "How to train your dragon")
    other = await _write(db_session, jake, "Another article")
    monkeypatch.setattr(article_service, "_title_taken", _never)

    with pytest.raises(ConflictError):
        await article_service.edit_title(db_session, jake, other, "How to train your dragon")

    await db_session.refresh(other)
    assert (other.title, other.slug) == ("Another article", "another-article")

    await _write(db_session, jake, "Written after the rename")
    await db_session.commit()
    assert await article_service.count_by_facets(db_session, ArticleFacets()) == 3


@pytest.mark.asyncio
async def test_username_rename_race_conflicts(db_session: AsyncSession, make_user, monkeypatch):
    await make_user("jake")
    james = await make_user("james")
    monkeypatch.setattr(user_service, "_identity_taken", _never)

    with pytest.raises(ConflictError):
        await user_service.update_user(db_session, james, UserUpdate(username="jake"))

    await db_session.refresh(james)
    assert james.username == "james"

    await user_service.update_user(db_session, james, UserUpdate(bio="still here"))
    await db_session.commit()
    assert (await user_service.get_user_by_username(db_session, "james")).bio == "still here"
    assert await _count(db_session, User) == 2


@pytest.mark.asyncio
async def test_session_usable_after_recovered_conflict(db_session: AsyncSession, make_user, monkeypatch):
    jake = await make_user("jake")
    article = await _write(db_session, jake, "Still fine")
    await db_session.execute(insert(ArticleFavorite).values(user_id=jake.id, article_id=article.id))
    monkeypatch.setattr(favorite_service, "is_favorited", _never)

    with pytest.raises(ConflictError):
        await favorite_service.favorite(db_session, jake, article)

    # Work done before the conflict is intact and new work still succeeds.
    await _write(db_session, jake, "Written after the conflict")
    await db_session.commit()
    assert await article_service.count_by_facets(db_session, ArticleFacets()) == 2


# ---------------------------------------------------------------------------
# HTTP: listing cost does not grow with page size, CORS
# ---------------------------------------------------------------------------

async def _register(client: AsyncClient, username: str) -> str:
    resp = await client.post("/api/users", json={"user": {
        "username": username,
        "email": f"{username}@example.com",
        "password": f"{username}-password",
    }})
    return resp.json()["user"]["token"]


@pytest.mark.asyncio
async def test_listing_query_count_independent_of_page_size(async_client: AsyncClient):
    """Decoration is batched: 1 article and 5 articles cost the same queries."""
    jake = await _register(async_client, "jake")
    headers = {"Authorization": f"Bearer {jake}"}
    james = await _register(async_client, "james")
    await async_client.post("/api/profiles/jake/follow", headers={"Authorization": f"Bearer {james}"})
    for i in range(5):
        await async_client.post("/api/articles", headers=headers, json={"article": {
            "title": f"Article {i}", "description": "", "body": "b", "tagList": ["dragons"],
        }})

    one = await async_client.get("/api/articles", params={"limit": 1}, headers=headers)
    five = await async_client.get("/api/articles", params={"limit": 5}, headers=headers)

    assert len(five.json()["articles"]) == 5
    assert one.headers["x-query-count"] == five.headers["x-query-count"]


@pytest.mark.asyncio
async def test_cors_no_credentials_with_wildcard_origin(async_client: AsyncClient):
    resp = await async_client.options(
        "/api/articles",
        headers={
            "Origin": "https://example.com",
            "Access-Control-Request-Method": "GET",
        },
    )
    cred_header = resp.headers.get("access-control-allow-credentials", "").lower()
    assert cred_header != "true"
