"""Tests for security middleware — headers, request IDs, rate limiting.

Learn: Rate limiting is skipped in the app under test (no Redis
configured), so the rate limiter gets its own tiny app backed by
fakeredis.
"""

import fakeredis
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from myauth.db import redis as redis_module
from myauth.middleware import rate_limit
from myauth.middleware.rate_limit import RateLimitMiddleware, is_strict_path


@pytest.mark.asyncio
async def test_security_headers_on_health(client):
    """Health endpoint returns security headers."""
    r = await client.get("/api/health")
    assert r.status_code == 200
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["X-XSS-Protection"] == "1; mode=block"
    assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert "Cache-Control" not in r.headers


@pytest.mark.asyncio
async def test_auth_responses_are_not_cached(client):
    r = await client.post("/api/auth/logout")
    assert r.headers["Cache-Control"] == "no-store"
    assert r.headers["Pragma"] == "no-cache"


@pytest.mark.asyncio
async def test_error_responses_get_headers_too(client):
    r = await client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Cache-Control"] == "no-store"


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/api/health")
    r2 = await client.get("/api/health")
    assert "X-Request-ID" in r1.headers
    assert "X-Request-ID" in r2.headers
    # Each request gets a unique ID
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    custom_id = "test-trace-12345"
    r = await client.get(
        "/api/health",
        headers={"X-Request-ID": custom_id},
    )
    assert r.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_no_hsts_on_http(client):
    """HSTS header is NOT set on HTTP connections (only HTTPS)."""
    r = await client.get("/api/health")
    assert "Strict-Transport-Security" not in r.headers


# ═══════════════════════════════════════════════════════════
# Rate limiting
# ═══════════════════════════════════════════════════════════


def test_strict_paths():
    assert is_strict_path("/api/auth/login")
    assert is_strict_path("/api/auth/reset-password/abc.def.ghi")
    assert not is_strict_path("/api/auth/me")
    assert not is_strict_path("/api/health")


@pytest.fixture
def limited_app(monkeypatch):
    monkeypatch.setattr(redis_module, "_redis", fakeredis.FakeAsyncRedis(decode_responses=True))
    # Fixed clock: every request lands in the same window
    monkeypatch.setattr(rate_limit.time, "time", lambda: 1_700_000_000.0)

    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, default_rpm=5, auth_rpm=2)

    @app.post("/api/auth/login")
    async def login():
        return {"ok": True}

    @app.get("/api/auth/me")
    async def me():
        return {"ok": True}

    return app


@pytest.mark.asyncio
async def test_strict_limit_on_login(limited_app):
    transport = ASGITransport(app=limited_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        assert (await ac.post("/api/auth/login")).status_code == 200
        second = await ac.post("/api/auth/login")
        assert second.status_code == 200
        assert second.headers["X-RateLimit-Remaining"] == "0"

        blocked = await ac.post("/api/auth/login")
        assert blocked.status_code == 429
        assert blocked.json()["kind"] == "rate_limited"
        assert blocked.headers["Retry-After"] == "60"

        # Other endpoints have their own, looser bucket
        assert (await ac.get("/api/auth/me")).status_code == 200
