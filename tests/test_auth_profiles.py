"""Registration, login, profile editing and the health probe."""
from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services import friendship_service


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def _register(client, username: str, password: str = "hunter22", **extra):
    return client.post("/auth/register", json={"username": username, "password": password, **extra})


def test_register_login_and_me(client):
    created = _register(client, "maya", name="Maya", email="maya@coy.app")
    assert created.status_code == 201, created.text
    assert created.json()["token_type"] == "bearer"

    login = client.post("/auth/login", json={"username": "maya", "password": "hunter22"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["username"] == "maya"
    assert me.json()["email"] == "maya@coy.app"


def test_duplicate_username_and_bad_login(client):
    assert _register(client, "maya").status_code == 201
    assert _register(client, "MAYA").status_code == 409

    wrong = client.post("/auth/login", json={"username": "maya", "password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Invalid credentials"


def test_requests_without_token_are_rejected(client):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_profile_update_and_username_availability(authed_client, user_factory):
    maya = user_factory("maya")
    user_factory("taken")
    client = authed_client(maya)

    assert client.get("/profiles/username-available", params={"username": "taken"}).json()["available"] is False
    assert client.get("/profiles/username-available", params={"username": "maya"}).json()["available"] is True

    conflict = client.put("/profiles/me", json={"username": "taken"})
    assert conflict.status_code == 409

    updated = client.put("/profiles/me", json={"bio": "Film photographer", "username": "maya_shoots"})
    assert updated.status_code == 200, updated.text
    assert updated.json()["bio"] == "Film photographer"
    assert updated.json()["username"] == "maya_shoots"


def test_profile_lookup_hides_blocked_users(authed_client, db, user_factory):
    maya = user_factory("maya")
    theo = user_factory("theo")

    assert authed_client(maya).get("/profiles/theo").status_code == 200

    async def fake_call(*args, **kwargs):
        return {"success": True}

    asyncio.run(friendship_service.block_user(db, user=theo, blocked_id=maya.id, call=fake_call))

    assert authed_client(maya).get("/profiles/theo").status_code == 404
    assert authed_client(maya).get("/profiles/nobody").status_code == 404


def test_health_and_root(client):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json() == {"status": "ok", "database": "ok"}

    root = client.get("/api")
    assert root.json()["service"]
