"""Application-level exception types.

This module defines the errors raised by the admission-control engine and
its HTTP adapter, enabling consistent error handling, logging, and API
responses.

Denial of a request is *not* an error at the engine level: limiters return a
``CheckResult`` with ``allowed=False``. Only the HTTP adapter converts that
into ``RateLimitExceeded`` to short-circuit a route.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypedDict

if TYPE_CHECKING:
    from gatekeeper.adapters.rate_limit.base import CheckResult


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    field: str
    value: Any
    profile: str
    known_profiles: list[str]
    route: str


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ConfigurationAppError(AppError):
    """Raised when limiter or registry configuration is invalid.

    Always raised at construction, lookup, or application startup; never
    silently defaulted.
    """


class LimiterDestroyedError(AppError):
    """Raised when a destroyed limiter is used (caller lifecycle bug)."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class RateLimitExceeded(Exception):
    """Raised by the HTTP adapter to short-circuit a denied request.

    Carries the ``CheckResult`` so the exception handler can render the
    standard headers and 429 body.
    """

    def __init__(self, profile: str, result: CheckResult) -> None:
        super().__init__(f"rate limit exceeded for profile '{profile}'")
        self.profile = profile
        self.result = result
