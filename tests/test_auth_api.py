"""Tests for the authentication API endpoints."""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from conftest import TEST_EMAIL, TEST_PASSWORD, bearer, login

from tokenvault.services.token_codec import TokenKind

pytestmark = pytest.mark.asyncio

NEW_PASSWORD = "Battery-Staple-77"


class TestLogin:
    async def test_login_success(self, async_client, app_user):
        response = await login(async_client)

        assert response.status_code == 200
        data = response.json()
        assert data["tokenType"] == "bearer"
        assert data["accessToken"] and data["refreshToken"]
        assert data["accessToken"] != data["refreshToken"]
        assert 0 < data["expiresIn"] <= 15 * 60
        assert data["accessExpiry"] < data["refreshExpiry"]
        assert "access_token" not in data

    async def test_login_response_headers(self, async_client, app_user):
        response = await login(async_client)

        assert response.headers["Cache-Control"] == "no-store"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"

    async def test_identifier_is_case_insensitive(self, async_client, app_user):
        response = await login(async_client, email="  GESTOR@Example.COM ")

        assert response.status_code == 200

    async def test_email_and_password_aliases(self, async_client, app_user):
        response = await async_client.post(
            "/auth/login", json={"email": TEST_EMAIL, "password": TEST_PASSWORD}
        )

        assert response.status_code == 200

    async def test_wrong_password(self, async_client, app_user):
        response = await login(async_client, password="Wrong-Password-1")

        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_CREDENTIALS"

    async def test_unknown_identifier_looks_like_wrong_password(self, async_client, app_user):
        unknown = await login(async_client, email="nobody@example.com")
        wrong = await login(async_client, password="Wrong-Password-1")

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()

    async def test_inactive_user(self, async_client, app_user_factory):
        await app_user_factory(is_active=False)

        response = await login(async_client)

        assert response.status_code == 401
        assert response.json()["error"] == "ACCOUNT_DISABLED"

    async def test_inactive_user_with_wrong_password(self, async_client, app_user_factory):
        await app_user_factory(is_active=False)

        response = await login(async_client, password="Wrong-Password-1")

        assert response.json()["error"] == "INVALID_CREDENTIALS"

    async def test_login_records_last_login(self, async_client, app_user):
        assert app_user.last_login_at is None

        await login(async_client)

        assert app_user.last_login_at is not None

    async def test_login_persists_session(self, async_client, app, app_user):
        await login(async_client)

        active = await app.state.session_registry.list_active(app_user.id, datetime.now(UTC))
        assert len(active) == 1

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"identifier": TEST_EMAIL},
            {"identifier": "", "secret": TEST_PASSWORD},
            {"identifier": TEST_EMAIL, "secret": 42},
        ],
    )
    async def test_invalid_body(self, async_client, body):
        response = await async_client.post("/auth/login", json=body)

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "VALIDATION_ERROR"
        assert data["errors"]


class TestLoginRateLimit:
    async def test_sixth_attempt_is_throttled(self, async_client, app_user):
        for _ in range(5):
            response = await login(async_client, password="Wrong-Password-1")
            assert response.status_code == 401

        response = await login(async_client)

        assert response.status_code == 429
        data = response.json()
        assert data["error"] == "TOO_MANY_LOGIN_ATTEMPTS"
        assert data["retry_after"] == 900
        assert response.headers["Retry-After"] == "900"
        assert response.headers["X-RateLimit-Remaining"] == "0"

    async def test_successful_logins_count_too(self, async_client, app_user):
        for _ in range(5):
            assert (await login(async_client)).status_code == 200

        assert (await login(async_client)).status_code == 429

    async def test_throttled_response_keeps_security_headers(self, async_client, app_user):
        for _ in range(6):
            response = await login(async_client, password="Wrong-Password-1")

        assert response.status_code == 429
        assert response.headers["Cache-Control"] == "no-store"

    async def test_other_routes_are_not_throttled(self, async_client):
        for _ in range(10):
            assert (await async_client.get("/health")).status_code == 200


class TestMe:
    async def test_me_returns_token_identity(self, async_client, app_user):
        tokens = (await login(async_client)).json()

        response = await async_client.get("/auth/me", headers=bearer(tokens["accessToken"]))

        assert response.status_code == 200
        data = response.json()
        assert data["ownerId"] == str(app_user.id)
        assert data["role"] == "GESTOR"
        assert len(data["tokenId"]) == 32


class TestChangePassword:
    async def test_change_password_revokes_all_sessions(self, async_client, app_user):
        first = (await login(async_client)).json()
        second = (await login(async_client)).json()

        response = await async_client.post(
            "/auth/change-password",
            json={"current_secret": TEST_PASSWORD, "new_secret": NEW_PASSWORD},
            headers=bearer(second["accessToken"]),
        )

        assert response.status_code == 200
        assert response.json()["revokedCount"] == 2
        for tokens in (first, second):
            refreshed = await async_client.post(
                "/tokens/refresh", json={"refresh_token": tokens["refreshToken"]}
            )
            assert refreshed.status_code == 401
        assert (await login(async_client, password=NEW_PASSWORD)).status_code == 200
        assert (await login(async_client)).status_code == 401

    async def test_wrong_current_password(self, async_client, app_user):
        tokens = (await login(async_client)).json()

        response = await async_client.post(
            "/auth/change-password",
            json={"current_secret": "Wrong-Password-1", "new_secret": NEW_PASSWORD},
            headers=bearer(tokens["accessToken"]),
        )

        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_CREDENTIALS"

    async def test_weak_new_password(self, async_client, app_user):
        tokens = (await login(async_client)).json()

        response = await async_client.post(
            "/auth/change-password",
            json={"current_secret": TEST_PASSWORD, "new_secret": "onlylowercase123"},
            headers=bearer(tokens["accessToken"]),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    async def test_short_new_password_rejected_by_schema(self, async_client, app_user):
        tokens = (await login(async_client)).json()

        response = await async_client.post(
            "/auth/change-password",
            json={"current_secret": TEST_PASSWORD, "new_secret": "Sh0rt!"},
            headers=bearer(tokens["accessToken"]),
        )

        assert response.status_code == 400

    async def test_requires_access_token(self, async_client):
        response = await async_client.post(
            "/auth/change-password",
            json={"current_secret": TEST_PASSWORD, "new_secret": NEW_PASSWORD},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "MISSING_TOKEN"

    async def test_unknown_owner(self, async_client, codec):
        token = codec.encode(
            {"sub": uuid.uuid4(), "jti": uuid.uuid4().hex, "role": "USER"},
            TokenKind.ACCESS,
            timedelta(minutes=5),
        ).token

        response = await async_client.post(
            "/auth/change-password",
            json={"current_secret": TEST_PASSWORD, "new_secret": NEW_PASSWORD},
            headers=bearer(token),
        )

        assert response.status_code == 401


class TestUnexpectedErrors:
    async def test_store_failure_is_generic_500_with_headers(self, async_client, app, caplog):
        app.state.identity_store.get_by_identifier = AsyncMock(
            side_effect=RuntimeError("connection pool exploded")
        )

        response = await login(async_client)

        assert response.status_code == 500
        assert response.json() == {
            "detail": "An unexpected error occurred",
            "error": "INTERNAL_ERROR",
        }
        assert "exploded" not in response.text
        assert response.headers["Cache-Control"] == "no-store"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "Content-Security-Policy" in response.headers
        assert "Unhandled error processing POST /auth/login" in caplog.text

    async def test_500_carries_cors_headers(self, async_client, app):
        app.state.identity_store.get_by_identifier = AsyncMock(side_effect=RuntimeError("boom"))

        response = await async_client.post(
            "/auth/login",
            json={"identifier": TEST_EMAIL, "secret": TEST_PASSWORD},
            headers={"Origin": "http://localhost:3000"},
        )

        assert response.status_code == 500
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
