"""Tests for admin login, session tokens and the API gate."""

from datetime import timedelta

import jwt
import pytest

from affiliatebase.api.app import is_public_route
from affiliatebase.core.time import utc_now
from affiliatebase.services.auth import (
    COOKIE_NAME, AuthConfigurationError, LoginThrottle, create_admin_token, verify_admin_token, verify_password,
)

from factories import ADMIN_PASSWORD, JWT_SECRET


class TestTokens:
    """Signed admin tokens."""

    def test_round_trip_claims(self, settings):
        claims = verify_admin_token(create_admin_token(settings), settings)
        assert claims["role"] == "admin"
        assert claims["jwtNumber"] == settings.jwt_number
        assert claims["iss"] == "affiliatebase"

    def test_expired_token_rejected(self, settings):
        token = create_admin_token(settings, now=utc_now() - timedelta(hours=25))
        assert verify_admin_token(token, settings) is None

    def test_bumped_jwt_number_revokes(self, settings):
        token = create_admin_token(settings)
        rotated = settings.model_copy(update={"jwt_number": settings.jwt_number + 1})
        assert verify_admin_token(token, rotated) is None

    def test_wrong_secret_rejected(self, settings):
        forged = jwt.encode({"role": "admin", "jwtNumber": 1}, "x" * 40, algorithm="HS256")
        assert verify_admin_token(forged, settings) is None
        assert verify_admin_token(None, settings) is None

    def test_missing_required_claims_rejected(self, settings):
        token = jwt.encode({"role": "admin", "jwtNumber": settings.jwt_number}, JWT_SECRET, algorithm="HS256")
        assert verify_admin_token(token, settings) is None

    def test_password_check(self, settings):
        assert verify_password(ADMIN_PASSWORD, settings) is True
        assert verify_password("wrong-password", settings) is False

    def test_unconfigured_password(self, settings):
        bare = settings.model_copy(update={"admin_password": None})
        with pytest.raises(AuthConfigurationError):
            verify_password("anything", bare)


class TestLoginThrottle:
    """In-process failed-login counting."""

    @pytest.mark.asyncio
    async def test_blocks_after_max_attempts(self):
        throttle = LoginThrottle(max_attempts=2, window_seconds=60)
        assert await throttle.retry_after("1.2.3.4") is None
        assert await throttle.register_failure("1.2.3.4") == 1
        assert await throttle.register_failure("1.2.3.4") == 0
        assert await throttle.retry_after("1.2.3.4") > 0
        assert await throttle.retry_after("5.6.7.8") is None

        await throttle.reset("1.2.3.4")
        assert await throttle.retry_after("1.2.3.4") is None

    @pytest.mark.asyncio
    async def test_expired_entries_evicted(self):
        clock = [1000.0]
        throttle = LoginThrottle(max_attempts=3, window_seconds=60, clock=lambda: clock[0])
        for index in range(50):
            await throttle.register_failure(f"10.0.0.{index}")
        assert len(throttle._attempts) == 50

        clock[0] += 61
        assert await throttle.register_failure("10.0.1.1") == 2

        assert list(throttle._attempts) == ["10.0.1.1"]

    @pytest.mark.asyncio
    async def test_stale_count_starts_over(self):
        clock = [0.0]
        throttle = LoginThrottle(max_attempts=2, window_seconds=60, clock=lambda: clock[0])
        await throttle.register_failure("1.2.3.4")
        await throttle.register_failure("1.2.3.4")

        clock[0] += 120

        assert await throttle.register_failure("1.2.3.4") == 1
        assert await throttle.retry_after("1.2.3.4") is None

    @pytest.mark.asyncio
    async def test_tracked_ips_capped(self):
        clock = [0.0]
        throttle = LoginThrottle(window_seconds=900, max_tracked=10, clock=lambda: clock[0])
        for index in range(25):
            clock[0] += 1
            await throttle.register_failure(f"10.0.0.{index}")

        assert len(throttle._attempts) == 10
        assert "10.0.0.24" in throttle._attempts
        assert "10.0.0.0" not in throttle._attempts


class TestLoginEndpoint:
    """POST/GET/DELETE /api/auth/login."""

    def test_login_sets_secure_cookie(self, client):
        response = client.post("/api/auth/login", json={"password": ADMIN_PASSWORD})

        assert response.status_code == 200
        cookie = response.headers["set-cookie"]
        assert COOKIE_NAME in cookie
        assert "HttpOnly" in cookie
        assert "Secure" in cookie
        assert "samesite=strict" in cookie.lower()
        assert client.get("/api/auth/login").json() == {"authenticated": True}

    def test_wrong_password(self, client):
        response = client.post("/api/auth/login", json={"password": "nope-nope"})
        assert response.status_code == 401
        assert response.json()["attemptsRemaining"] == 2
        assert client.get("/api/auth/login").json() == {"authenticated": False}

    def test_throttled_after_repeated_failures(self, client):
        for _ in range(3):
            client.post("/api/auth/login", json={"password": "nope-nope"})

        response = client.post("/api/auth/login", json={"password": ADMIN_PASSWORD})

        assert response.status_code == 429
        assert response.json()["retryAfter"] > 0

    def test_empty_password(self, client):
        assert client.post("/api/auth/login", json={"password": ""}).status_code == 400

    def test_logout_clears_session(self, admin_client):
        assert admin_client.delete("/api/auth/login").status_code == 200
        assert admin_client.get("/api/auth/login").json() == {"authenticated": False}

    def test_misconfigured_server(self, app, client, settings):
        app.state.settings = settings.model_copy(update={"admin_password": None})
        response = client.post("/api/auth/login", json={"password": ADMIN_PASSWORD})
        assert response.status_code == 500
        assert response.json()["error"] == "Server configuration error"


class TestApiGate:
    """Deny-by-default middleware over /api/*."""

    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/programs"),
        ("GET", "/api/programs/abc/stats"),
        ("POST", "/api/programs"),
        ("POST", "/api/programs/abc/view"),
        ("POST", "/api/track"),
        ("POST", "/api/track/search"),
        ("POST", "/api/validate-url"),
        ("POST", "/api/auth/login"),
        ("GET", "/api/featured/availability"),
        ("POST", "/api/webhooks/stripe"),
        ("GET", "/api/cron/rotate"),
        ("GET", "/robots.txt"),
        ("OPTIONS", "/api/admin/programs"),
    ])
    def test_public_routes(self, method, path):
        assert is_public_route(method, path) is True

    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/admin/programs"),
        ("PATCH", "/api/programs/abc"),
        ("DELETE", "/api/programs/abc"),
        ("GET", "/api/anything-new"),
        ("POST", "/api/programs/abc/boost"),
    ])
    def test_protected_routes(self, method, path):
        assert is_public_route(method, path) is False

    def test_admin_routes_need_cookie(self, client):
        response = client.get("/api/admin/programs")
        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}

    def test_unknown_api_path_denied(self, client):
        assert client.get("/api/not-a-route").status_code == 401

    def test_admin_routes_with_cookie(self, admin_client):
        assert admin_client.get("/api/admin/programs").status_code == 200

    def test_forged_cookie_denied(self, client):
        response = client.get("/api/admin/programs", headers={"Cookie": f"{COOKIE_NAME}=not-a-jwt"})
        assert response.status_code == 401
