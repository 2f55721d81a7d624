"""Shared-password gate tests."""

from datetime import UTC, datetime, timedelta

import pytest
from httpx import AsyncClient

from app.core.auth import decode_session_token, hash_password, issue_session_token, require_session
from app.core.config import settings
from app.main import app

COOKIE = settings.access.access_cookie_name


@pytest.fixture
def gate(monkeypatch):
    """Configure a shared password and remove the test bypass of the gate."""
    monkeypatch.setattr(settings.access, "access_password_hash", hash_password("s3cret"))
    app.dependency_overrides.pop(require_session, None)


async def test_pass_without_configured_hash_returns_500(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings.access, "access_password_hash", "")
    response = await client.post("/auth/pass", json={"password": "anything"})
    assert response.status_code == 500


async def test_wrong_password_returns_401(client: AsyncClient, gate):
    response = await client.post("/auth/pass", json={"password": "nope"})
    assert response.status_code == 401
    assert COOKIE not in response.cookies


async def test_correct_password_sets_session_cookie(client: AsyncClient, gate):
    response = await client.post("/auth/pass", json={"password": "s3cret"})
    assert response.status_code == 200
    assert response.json() == {"success": True}

    set_cookie = response.headers["set-cookie"]
    assert "httponly" in set_cookie.lower()
    claims = decode_session_token(response.cookies[COOKIE])
    assert claims["sub"] == "shared-access"
    assert claims["exp"] - claims["iat"] == settings.access.session_max_age_days * 86400


async def test_status_reflects_cookie(client: AsyncClient, gate):
    response = await client.get("/auth/status")
    assert response.json() == {"authenticated": False}

    client.cookies.set(COOKIE, issue_session_token())
    response = await client.get("/auth/status")
    assert response.json()["authenticated"] is True


async def test_protected_route_requires_cookie(client: AsyncClient, gate):
    response = await client.get("/api/v1/workflows")
    assert response.status_code == 401

    client.cookies.set(COOKIE, issue_session_token())
    response = await client.get("/api/v1/workflows")
    assert response.status_code == 200


async def test_expired_cookie_is_rejected(client: AsyncClient, gate):
    stale = issue_session_token(now=datetime.now(UTC) - timedelta(days=365))
    client.cookies.set(COOKIE, stale)
    response = await client.get("/api/v1/workflows")
    assert response.status_code == 401


async def test_health_is_public(client: AsyncClient, gate):
    response = await client.get("/health")
    assert response.status_code == 200


async def test_development_without_hash_bypasses_gate(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings.access, "access_password_hash", "")
    app.dependency_overrides.pop(require_session, None)
    response = await client.get("/api/v1/workflows")
    assert response.status_code == 200
