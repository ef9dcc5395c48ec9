"""Tests for back-office authentication."""

import pytest

from services.auth_service.service import AuthService

EMAIL = "owner@shopfront.io"
PASSWORD = "s3cret-passphrase"


async def _bootstrap(database):
    async with database.session() as db:
        return await AuthService.bootstrap_admin(db, EMAIL, PASSWORD)


async def _login(client, password=PASSWORD):
    return await client.post("/auth/login", json={"email": EMAIL, "password": password})


@pytest.mark.asyncio
async def test_bootstrap_admin_only_when_no_users(database):
    first = await _bootstrap(database)
    second = await _bootstrap(database)

    assert first.username == "owner"
    assert first.role == "admin"
    assert second is None


@pytest.mark.asyncio
async def test_bootstrap_needs_credentials(database):
    async with database.session() as db:
        assert await AuthService.bootstrap_admin(db, None, None) is None


@pytest.mark.asyncio
async def test_login_and_me(client, database):
    await _bootstrap(database)

    response = await _login(client)
    assert response.status_code == 200
    token = response.json()["access_token"]

    me = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["data"]["email"] == EMAIL
    assert me.json()["data"]["last_login"] is not None


@pytest.mark.asyncio
async def test_login_token_opens_admin_routes(client, database):
    await _bootstrap(database)
    token = (await _login(client)).json()["access_token"]

    response = await client.get("/orders", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_wrong_password(client, database):
    await _bootstrap(database)

    response = await _login(client, password="wrong-password")

    assert response.status_code == 401
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_register_requires_admin(client, database):
    await _bootstrap(database)
    new_user = {"username": "clerk", "email": "clerk@shopfront.io", "password": "another-passphrase"}

    assert (await client.post("/auth/register", json=new_user)).status_code == 401

    token = (await _login(client)).json()["access_token"]
    headers = {"Authorization": f"Bearer {token}"}
    created = await client.post("/auth/register", json=new_user, headers=headers)
    assert created.status_code == 201
    assert created.json()["data"]["username"] == "clerk"

    duplicate = await client.post("/auth/register", json=new_user, headers=headers)
    assert duplicate.status_code == 409


@pytest.mark.asyncio
async def test_login_is_rate_limited(client, database):
    await _bootstrap(database)

    statuses = [(await _login(client, password="wrong-password")).status_code for _ in range(6)]

    assert statuses[:5] == [401] * 5
    assert statuses[5] == 429
