"""
User endpoint tests: registration, login, the current-user endpoints,
bearer-token handling and the metrics endpoint.
"""
import pytest
from httpx import AsyncClient


async def _register(client: AsyncClient, username: str) -> dict:
    resp = await client.post("/api/users", json={"user": {
        "username": username,
        "email": f"{username}@example.com",
        "password": f"{username}-password",
    }})
    assert resp.status_code == 201
    return resp.json()["user"]


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Registration / login
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_register_returns_user_with_token(async_client: AsyncClient):
    user = await _register(async_client, "jake")
    assert user["username"] == "jake"
    assert user["email"] == "jake@example.com"
    assert user["bio"] is None
    assert user["image"] is None
    assert user["token"]


@pytest.mark.asyncio
async def test_register_duplicate_username_returns_409(async_client: AsyncClient):
    await _register(async_client, "jake")
    resp = await async_client.post("/api/users", json={"user": {
        "username": "jake", "email": "other@example.com", "password": "pw",
    }})
    assert resp.status_code == 409
    assert resp.json()["errors"]["body"]


@pytest.mark.asyncio
async def test_register_duplicate_email_returns_409(async_client: AsyncClient):
    await _register(async_client, "jake")
    resp = await async_client.post("/api/users", json={"user": {
        "username": "jacob", "email": "jake@example.com", "password": "pw",
    }})
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_register_missing_fields_returns_422(async_client: AsyncClient):
    resp = await async_client.post("/api/users", json={"user": {"username": "jake"}})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_login(async_client: AsyncClient):
    await _register(async_client, "jake")
    resp = await async_client.post("/api/users/login", json={"user": {
        "email": "jake@example.com", "password": "jake-password",
    }})
    assert resp.status_code == 200
    assert resp.json()["user"]["username"] == "jake"
    assert resp.json()["user"]["token"]


@pytest.mark.asyncio
async def test_login_wrong_password_returns_401(async_client: AsyncClient):
    await _register(async_client, "jake")
    resp = await async_client.post("/api/users/login", json={"user": {
        "email": "jake@example.com", "password": "wrong",
    }})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_login_unknown_email_returns_401(async_client: AsyncClient):
    resp = await async_client.post("/api/users/login", json={"user": {
        "email": "ghost@example.com", "password": "whatever",
    }})
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_current_user(async_client: AsyncClient):
    user = await _register(async_client, "jake")
    resp = await async_client.get("/api/user", headers=_auth(user["token"]))
    assert resp.status_code == 200
    assert resp.json()["user"]["username"] == "jake"
    assert resp.json()["user"]["token"] == user["token"]


@pytest.mark.asyncio
async def test_current_user_requires_token(async_client: AsyncClient):
    resp = await async_client.get("/api/user")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_current_user_rejects_garbage_token(async_client: AsyncClient):
    resp = await async_client.get("/api/user", headers=_auth("not-a-jwt"))
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_update_current_user(async_client: AsyncClient):
    user = await _register(async_client, "jake")
    resp = await async_client.put("/api/user", headers=_auth(user["token"]), json={"user": {
        "bio": "I like to skateboard",
        "image": "https://i.stack.imgur.com/xHWG8.jpg",
    }})
    assert resp.status_code == 200
    updated = resp.json()["user"]
    assert updated["bio"] == "I like to skateboard"
    assert updated["image"] == "https://i.stack.imgur.com/xHWG8.jpg"
    assert updated["username"] == "jake"


@pytest.mark.asyncio
async def test_update_current_user_password_and_login(async_client: AsyncClient):
    user = await _register(async_client, "jake")
    await async_client.put("/api/user", headers=_auth(user["token"]), json={"user": {
        "password": "new-password",
    }})
    resp = await async_client.post("/api/users/login", json={"user": {
        "email": "jake@example.com", "password": "new-password",
    }})
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_update_current_user_taken_username_returns_409(async_client: AsyncClient):
    await _register(async_client, "james")
    user = await _register(async_client, "jake")
    resp = await async_client.put("/api/user", headers=_auth(user["token"]), json={"user": {
        "username": "james",
    }})
    assert resp.status_code == 409


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_metrics(async_client: AsyncClient):
    jake = await _register(async_client, "jake")
    await _register(async_client, "james")
    await async_client.post("/api/profiles/james/follow", headers=_auth(jake["token"]))
    await async_client.post("/api/articles", headers=_auth(jake["token"]), json={"article": {
        "title": "Counted", "description": "d", "body": "b", "tagList": ["dragons"],
    }})
    await async_client.post("/api/articles/counted/favorite", headers=_auth(jake["token"]))

    resp = await async_client.get("/api/metrics")
    assert resp.status_code == 200
    data = resp.json()
    assert data["total_users"] == 2
    assert data["total_articles"] == 1
    assert data["total_tags"] == 1
    assert data["total_favorites"] == 1
    assert data["total_follows"] == 1
    assert data["avg_favorites_per_article"] == 1.0
