"""Pydantic schemas for the rate-limit administration routes."""

from __future__ import annotations

import math

from pydantic import BaseModel, Field

from gatekeeper.adapters.rate_limit.base import CheckResult, LimiterStats


class LimiterStatusResponse(BaseModel):
    """Live window of the calling client for one profile."""

    profile: str = Field(..., description="Limiter profile name.")
    tracked: bool = Field(
        ..., description="False when the client has no live window for this profile."
    )
    allowed: bool | None = Field(
        default=None, description="Whether the next request would be admitted."
    )
    limit: int | None = Field(default=None, description="Max requests per window.")
    remaining: int | None = Field(default=None, description="Requests left in the window.")
    reset_at: int | None = Field(
        default=None, description="Window reset time in UNIX epoch seconds."
    )
    retry_after_seconds: int | None = Field(
        default=None, description="Seconds to wait when the next request would be denied."
    )

    @classmethod
    def from_result(cls, profile: str, result: CheckResult | None) -> "LimiterStatusResponse":
        if result is None:
            return cls(profile=profile, tracked=False)
        return cls(
            profile=profile,
            tracked=True,
            allowed=result.allowed,
            limit=result.limit,
            remaining=result.remaining,
            reset_at=math.ceil(result.reset_at / 1000.0),
            retry_after_seconds=result.retry_after_seconds,
        )


class LimiterStatsResponse(BaseModel):
    """Monitoring counters of one limiter."""

    profile: str
    limit: int = Field(..., description="Max requests per window.")
    window_ms: int = Field(..., description="Window size in milliseconds.")
    tracked_keys: int = Field(..., description="Entries currently held in the store.")
    total_checks: int = Field(..., description="Admission checks since startup.")
    denied_checks: int = Field(..., description="Checks that were denied since startup.")

    @classmethod
    def from_stats(cls, profile: str, stats: LimiterStats) -> "LimiterStatsResponse":
        return cls(
            profile=profile,
            limit=stats.limit,
            window_ms=stats.window_ms,
            tracked_keys=stats.tracked_keys,
            total_checks=stats.total_checks,
            denied_checks=stats.denied_checks,
        )


class ResetResponse(BaseModel):
    profile: str
    reset: bool = True
