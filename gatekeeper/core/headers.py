"""Rendering of admission decisions into HTTP headers and 429 payloads.

Pure functions: nothing here touches a limiter or its store, and nothing
here can change a decision already made by ``check()``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from gatekeeper.adapters.rate_limit.base import CheckResult

HTTP_TOO_MANY_REQUESTS = 429
RATE_LIMIT_EXCEEDED_MESSAGE = "rate limit exceeded"


@dataclass(frozen=True)
class RateLimitDecision:
    """Rendered form of a ``CheckResult``.

    Attributes:
        headers: Standard rate limit headers.
        status_code: 429 when the caller must short-circuit, else None.
        body: JSON body for the 429 response, else None.
    """

    headers: dict[str, str] = field(default_factory=dict)
    status_code: int | None = None
    body: dict[str, Any] | None = None

    @property
    def short_circuit(self) -> bool:
        return self.status_code is not None


def rate_limit_exceeded_body() -> dict[str, Any]:
    return {"success": False, "message": RATE_LIMIT_EXCEEDED_MESSAGE}


def build_rate_limit_headers(result: CheckResult) -> dict[str, str]:
    """Map a check result to the standard header set.

    ``X-RateLimit-Reset`` is expressed in epoch seconds, rounded up so clients
    never retry before the window actually resets.
    """
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(max(0, result.remaining)),
        "X-RateLimit-Reset": str(math.ceil(result.reset_at / 1000.0)),
    }
    if not result.allowed:
        headers["Retry-After"] = str(result.retry_after_seconds or 1)
    return headers


def render_decision(result: CheckResult) -> RateLimitDecision:
    headers = build_rate_limit_headers(result)
    if result.allowed:
        return RateLimitDecision(headers=headers)
    return RateLimitDecision(
        headers=headers,
        status_code=HTTP_TOO_MANY_REQUESTS,
        body=rate_limit_exceeded_body(),
    )
