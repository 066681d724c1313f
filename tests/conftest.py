"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are seeded before any import that might build
settings.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("APP_ADMIN_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_ADMIN_API_KEYS", "test-admin-key-123,test-admin-key-456")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Callable, Iterator  # noqa: E402

import pytest  # noqa: E402

from gatekeeper.adapters.rate_limit.in_memory import FixedWindowRateLimiter  # noqa: E402


class FakeClock:
    """Deterministic millisecond clock used to test window expiry."""

    def __init__(self, start: float = 0.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, ms: float) -> None:
        self.current += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_limiter(clock: FakeClock) -> Iterator[Callable[..., FixedWindowRateLimiter]]:
    """Build limiters on the fake clock and destroy them after the test."""

    created: list[FixedWindowRateLimiter] = []

    def _make(**kwargs) -> FixedWindowRateLimiter:
        kwargs.setdefault("clock", clock)
        limiter = FixedWindowRateLimiter(**kwargs)
        created.append(limiter)
        return limiter

    yield _make

    for limiter in created:
        limiter.destroy()
