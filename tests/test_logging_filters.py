"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from gatekeeper.core.logging import JsonFormatter, SensitiveDataFilter, hash_identifier


@pytest.fixture
def capture():
    """Logger wired to an in-memory stream with redaction enabled."""

    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    yield logger, stream
    logger.handlers.clear()


def test_sensitive_filter_redacts_admin_keys(capture):
    logger, stream = capture

    logger.info(
        "admin_auth.success",
        extra={"x-admin-key": "sk-secret-123", "admin_api_key": "another-secret", "safe": "visible"},
    )

    output = stream.getvalue()
    assert "sk-secret-123" not in output
    assert "another-secret" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_client_identifiers_are_redacted(capture):
    logger, stream = capture

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "client_ip": "203.0.113.9",
            "user_id": "alice@example.com",
            "limiter_key": "auth:ip:203.0.113.9",
            "key_hash": "abc123",
            "profile": "auth",
        },
    )

    record = json.loads(stream.getvalue())
    assert "203.0.113.9" not in stream.getvalue()
    assert "alice@example.com" not in stream.getvalue()
    assert record["key_hash"] == "abc123"
    assert record["profile"] == "auth"
    assert record["level"] == "warning"


def test_nested_forwarding_headers_are_redacted(capture):
    logger, stream = capture

    logger.info(
        "nested_event",
        extra={
            "headers": {
                "x-forwarded-for": "198.51.100.1, 10.0.0.1",
                "user-agent": "pytest",
            },
        },
    )

    output = stream.getvalue()
    assert "198.51.100.1" not in output
    assert "pytest" in output


def test_safe_rate_limit_fields_pass_through(capture):
    logger, stream = capture

    logger.info(
        "rate_limit.allowed",
        extra={"profile": "general-api", "limit": 100, "remaining": 99, "request_id": "req-1"},
    )

    record = json.loads(stream.getvalue())
    assert record["remaining"] == 99
    assert record["request_id"] == "req-1"
    assert "[REDACTED]" not in stream.getvalue()


def test_identifiers_are_hashed_consistently(capture):
    logger, stream = capture

    logger.warning("rate_limit.exceeded", extra={"client_ip": "203.0.113.9"})
    logger.warning("rate_limit.exceeded", extra={"client_ip": "203.0.113.9"})

    first, second = (json.loads(line) for line in stream.getvalue().splitlines())
    assert first["client_ip"].startswith("hash:")
    assert first["client_ip"] == second["client_ip"]


def test_filter_then_formatter_does_not_rehash(capture):
    logger, stream = capture

    logger.info("rate_limit.reset", extra={"limiter_key": "auth:ip:203.0.113.9"})

    record = json.loads(stream.getvalue())
    assert record["limiter_key"] == f"hash:{hash_identifier('auth:ip:203.0.113.9')}"


def test_exceptions_are_serialized(capture):
    logger, stream = capture

    try:
        raise RuntimeError("sweep blew up")
    except RuntimeError:
        logger.exception("rate_limit.sweep_failed")

    record = json.loads(stream.getvalue())
    assert record["event"] == "rate_limit.sweep_failed"
    assert "RuntimeError: sweep blew up" in record["exc_info"]
