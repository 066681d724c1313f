"""Tests for the application factory and rate-limit administration routes."""

import threading

import pytest
from fastapi.testclient import TestClient

from gatekeeper.core.app_factory import create_app
from gatekeeper.core.config import RateLimitSettings
from gatekeeper.core.errors import ConfigurationAppError
from gatekeeper.core.keys import RequestIdentity
from gatekeeper.core.registry import LimiterProfile, default_profiles

ADMIN = {"X-Admin-Key": "test-admin-key-123"}
CLIENT_IP = {"X-Real-IP": "8.8.8.8"}


@pytest.fixture
def app(clock):
    return create_app(
        default_profiles(RateLimitSettings(max_requests=3)),
        clock=clock,
        configure_logs=False,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def registry(app, client):
    return app.state.limiters


def test_health_reports_profiles(client: TestClient) -> None:
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "rate_limit_profiles": 7}
    assert "X-RateLimit-Limit" not in resp.headers


def test_admin_routes_require_admin_key(client: TestClient) -> None:
    assert client.get("/v1/rate-limits/stats").status_code == 403
    assert client.get("/v1/rate-limits/stats", headers={"X-Admin-Key": "nope"}).status_code == 403


def test_stats_lists_every_profile(client: TestClient) -> None:
    resp = client.get("/v1/rate-limits/stats", headers={**ADMIN, **CLIENT_IP})

    assert resp.status_code == 200
    stats = {item["profile"]: item for item in resp.json()}
    assert set(stats) == {
        "general-api",
        "auth",
        "per-user-api",
        "contact-form",
        "newsletter",
        "performance-monitoring",
        "upload",
    }
    assert stats["general-api"]["total_checks"] == 1
    assert stats["newsletter"]["limit"] == 1
    assert stats["newsletter"]["window_ms"] == 86_400_000


def test_status_of_untouched_profile_is_untracked(client: TestClient) -> None:
    for _ in range(2):
        resp = client.get("/v1/rate-limits/contact-form/status", headers={**ADMIN, **CLIENT_IP})
        assert resp.status_code == 200
        assert resp.json()["tracked"] is False


def test_status_reflects_live_window_without_counting(client: TestClient, registry) -> None:
    contact = registry.get("contact-form")
    contact.check(RequestIdentity(headers=CLIENT_IP))

    resp = client.get("/v1/rate-limits/contact-form/status", headers={**ADMIN, **CLIENT_IP})

    body = resp.json()
    assert body["tracked"] is True
    assert body["allowed"] is True
    assert body["limit"] == 3
    assert body["remaining"] == 2
    assert body["reset_at"] == 3600
    assert contact.stats().total_checks == 1


def test_admin_reset_clears_caller_window(client: TestClient, registry) -> None:
    newsletter = registry.get("newsletter")
    newsletter.check(RequestIdentity(headers=CLIENT_IP))
    assert newsletter.check(RequestIdentity(headers=CLIENT_IP)).allowed is False

    resp = client.delete("/v1/rate-limits/newsletter/entries", headers={**ADMIN, **CLIENT_IP})

    assert resp.status_code == 200
    assert resp.json() == {"profile": "newsletter", "reset": True}
    assert newsletter.check(RequestIdentity(headers=CLIENT_IP)).allowed is True


def test_unknown_profile_returns_404(client: TestClient) -> None:
    resp = client.get("/v1/rate-limits/nope/status", headers={**ADMIN, **CLIENT_IP})

    assert resp.status_code == 404


def test_admin_routes_are_limited_by_general_api(client: TestClient) -> None:
    headers = {**ADMIN, **CLIENT_IP}
    remaining = [
        client.get("/v1/rate-limits/stats", headers=headers).headers["X-RateLimit-Remaining"]
        for _ in range(3)
    ]
    blocked = client.get("/v1/rate-limits/stats", headers=headers)

    assert remaining == ["2", "1", "0"]
    assert blocked.status_code == 429
    assert blocked.json() == {"success": False, "message": "rate limit exceeded"}
    assert int(blocked.headers["Retry-After"]) == 900
    assert blocked.headers.get("X-Request-ID")


def test_creating_app_starts_no_limiters(clock) -> None:
    threads_before = {t.name for t in threading.enumerate()}

    app = create_app(clock=clock, configure_logs=False)

    assert app.state.limiters is None
    started = {t.name for t in threading.enumerate()} - threads_before
    assert not any(name.startswith("rate-limit-reclaimer") for name in started)


def test_shutdown_destroys_registry(app) -> None:
    with TestClient(app) as client:
        registry = app.state.limiters
        assert client.get("/health").json()["rate_limit_profiles"] == 7

    assert app.state.limiters is None
    assert all(limiter.destroyed for _, limiter in registry.items())


def test_each_lifespan_serves_a_fresh_registry(app) -> None:
    headers = {**ADMIN, **CLIENT_IP}

    with TestClient(app) as client:
        first = app.state.limiters
        assert client.get("/v1/rate-limits/stats", headers=headers).status_code == 200

    with TestClient(app) as client:
        second = app.state.limiters
        resp = client.get("/v1/rate-limits/stats", headers=headers)

    assert resp.status_code == 200
    stats = {item["profile"]: item for item in resp.json()}
    assert stats["general-api"]["total_checks"] == 1
    assert second is not first
    assert all(limiter.destroyed for _, limiter in first.items())


def test_create_app_rejects_route_profile_missing_from_table(clock) -> None:
    with pytest.raises(ConfigurationAppError) as exc_info:
        create_app(
            [LimiterProfile("auth", window_ms=1000, max_requests=1)],
            clock=clock,
            configure_logs=False,
        )

    assert exc_info.value.code == "unknown_rate_limit_profile"
    assert exc_info.value.details["profile"] == "general-api"
    assert "/rate-limits" in exc_info.value.details["route"]


def test_openapi_marks_admin_routes(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    assert "AdminKeyAuth" in schema["components"]["securitySchemes"]
    stats_op = schema["paths"]["/v1/rate-limits/stats"]["get"]
    assert stats_op["security"] == [{"AdminKeyAuth": []}]
    assert "429" in stats_op["responses"]
    assert "security" not in schema["paths"]["/health"]["get"]
