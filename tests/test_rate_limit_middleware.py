"""Integration tests for the rate limiting middleware."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.adapters.rate_limit.base import ClientOrigin, RateLimitConfig
from app.adapters.rate_limit.in_memory import InMemoryRateLimiter
from app.core.app_factory import create_app
from app.core.config import AppSettings
from app.core.exception_handlers import setup_exception_handlers
from app.core.rate_limit import parse_exempt_paths, rate_limit_middleware, retry_after_seconds


def _settings(**overrides) -> AppSettings:
    values = {
        "rate_limit_enabled": True,
        "rate_limit_window_ms": 1000,
        "rate_limit_max_requests": 2,
        "rate_limit_message": "Slow down.",
        "rate_limit_exempt_paths": "/health",
    }
    values.update(overrides)
    return AppSettings(**values)


@pytest.fixture
def client(clock) -> TestClient:
    return TestClient(create_app(_settings(), clock=clock))


def test_admitted_requests_carry_quota_headers(client: TestClient, clock) -> None:
    resp = client.get("/v1/rate-limit")

    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Limit"] == "2"
    assert resp.headers["X-RateLimit-Remaining"] == "1"
    assert resp.headers["X-RateLimit-Reset"] == str(clock.now + 1000)


def test_rejects_with_429_once_limit_exceeded(client: TestClient, clock) -> None:
    client.get("/v1/rate-limit")
    client.get("/v1/rate-limit")

    resp = client.get("/v1/rate-limit")

    assert resp.status_code == 429
    assert resp.json() == {"error": "Slow down."}
    assert resp.headers["X-RateLimit-Limit"] == "2"
    assert resp.headers["X-RateLimit-Remaining"] == "0"
    assert resp.headers["X-RateLimit-Reset"] == str(clock.now + 1000)
    assert resp.headers["Retry-After"] == "1"


def test_admits_again_after_window_elapses(client: TestClient, clock) -> None:
    for _ in range(3):
        client.get("/v1/rate-limit")

    clock.advance(1001)
    resp = client.get("/v1/rate-limit")

    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Remaining"] == "1"
    assert resp.headers["X-RateLimit-Reset"] == str(clock.now + 1000)


def test_status_route_reports_decision(client: TestClient, clock) -> None:
    body = client.get("/v1/rate-limit").json()

    assert body == {
        "enabled": True,
        "allowed": True,
        "limit": 2,
        "remaining": 1,
        "reset_time": clock.now + 1000,
    }


def test_exempt_paths_bypass_limiter(client: TestClient) -> None:
    for _ in range(5):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert "X-RateLimit-Limit" not in resp.headers

    assert client.get("/v1/rate-limit").status_code == 200


def test_rejected_response_keeps_request_id(client: TestClient) -> None:
    for _ in range(2):
        client.get("/v1/rate-limit")

    resp = client.get("/v1/rate-limit", headers={"X-Request-ID": "req-429"})

    assert resp.status_code == 429
    assert resp.headers["X-Request-ID"] == "req-429"


def test_disabled_limiter_registers_no_middleware(clock) -> None:
    app = create_app(_settings(rate_limit_enabled=False), clock=clock)
    client = TestClient(app)

    for _ in range(5):
        resp = client.get("/v1/rate-limit")
        assert resp.status_code == 200
        assert "X-RateLimit-Limit" not in resp.headers

    assert resp.json()["enabled"] is False
    assert app.state.rate_limiter is None


def test_limiter_is_owned_by_app_instance(clock) -> None:
    first = create_app(_settings(), clock=clock)
    second = create_app(_settings(), clock=clock)

    assert isinstance(first.state.rate_limiter, InMemoryRateLimiter)
    assert first.state.rate_limiter is not second.state.rate_limiter


def test_forwarded_header_used_when_peer_unknown(clock) -> None:
    limiter = InMemoryRateLimiter(RateLimitConfig(window_ms=1000, max_requests=1), clock=clock)
    app = FastAPI()
    app.middleware("http")(rate_limit_middleware(limiter))

    @app.get("/ping")
    def ping() -> dict:
        return {"ok": True}

    # TestClient always reports a peer address, so drive the ASGI scope directly.
    async def no_peer(scope, receive, send):
        scope = dict(scope, client=None)
        await app(scope, receive, send)

    client = TestClient(no_peer)

    assert client.get("/ping", headers={"X-Forwarded-For": "9.9.9.9, 10.0.0.1"}).status_code == 200
    assert client.get("/ping", headers={"X-Forwarded-For": "9.9.9.9"}).status_code == 429
    assert client.get("/ping", headers={"X-Forwarded-For": "8.8.8.8"}).status_code == 200


def test_parse_exempt_paths() -> None:
    assert parse_exempt_paths("/health, /docs ,") == frozenset({"/health", "/docs"})
    assert parse_exempt_paths("") == frozenset()
    assert parse_exempt_paths(None) == frozenset()


def test_failing_handler_still_discloses_quota(clock) -> None:
    limiter = InMemoryRateLimiter(RateLimitConfig(window_ms=1000, max_requests=5), clock=clock)
    app = FastAPI()
    setup_exception_handlers(app)
    app.middleware("http")(rate_limit_middleware(limiter))

    @app.get("/boom")
    def boom() -> dict:
        raise RuntimeError("handler failed")

    client = TestClient(app, raise_server_exceptions=False)
    resp = client.get("/boom")

    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "internal_server_error"
    assert "handler failed" not in resp.text
    assert resp.headers["X-RateLimit-Limit"] == "5"
    assert resp.headers["X-RateLimit-Remaining"] == "4"
    assert resp.headers["X-RateLimit-Reset"] == str(clock.now + 1000)


def test_retry_after_uses_limiter_clock(clock) -> None:
    limiter = InMemoryRateLimiter(RateLimitConfig(window_ms=5000, max_requests=1), clock=clock)
    app = FastAPI()
    app.middleware("http")(rate_limit_middleware(limiter))

    @app.get("/ping")
    def ping() -> dict:
        return {"ok": True}

    client = TestClient(app)
    client.get("/ping")
    clock.advance(1500)

    resp = client.get("/ping")

    assert resp.status_code == 429
    assert resp.headers["X-RateLimit-Reset"] == str(clock.now + 3500)
    assert resp.headers["Retry-After"] == "4"


def test_retry_after_seconds_rounds_up_from_check_time() -> None:
    decision = InMemoryRateLimiter(
        RateLimitConfig(window_ms=2500, max_requests=1), clock=lambda: 10_000
    ).check(ClientOrigin(peer_address="1.2.3.4"))

    assert decision.checked_at == 10_000
    assert retry_after_seconds(decision) == 3
