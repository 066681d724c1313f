"""Administration routes for the limiter registry.

Status reads never count against the inspected profile: they go through
``Limiter.status()``, which peeks without mutating. The routes themselves are
counted against the general-api profile.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from gatekeeper.adapters.rate_limit.base import AbstractRateLimiter
from gatekeeper.core.auth import verify_admin_key
from gatekeeper.core.rate_limit import RateLimit, get_limiter_registry, request_identity
from gatekeeper.core.registry import GENERAL_API
from gatekeeper.schemas.rate_limit import (
    LimiterStatsResponse,
    LimiterStatusResponse,
    ResetResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/rate-limits",
    tags=["Rate limits"],
    dependencies=[Depends(verify_admin_key), Depends(RateLimit(GENERAL_API))],
)


def _lookup(request: Request, profile: str) -> AbstractRateLimiter:
    registry = get_limiter_registry(request)
    if profile not in registry:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown rate limit profile '{profile}'.",
        )
    return registry.get(profile)


@router.get("/stats", response_model=list[LimiterStatsResponse])
async def limiter_stats(request: Request) -> list[LimiterStatsResponse]:
    """Return monitoring counters for every profile."""

    registry = get_limiter_registry(request)
    return [
        LimiterStatsResponse.from_stats(name, limiter.stats())
        for name, limiter in registry.items()
    ]


@router.get("/{profile}/status", response_model=LimiterStatusResponse)
async def limiter_status(profile: str, request: Request) -> LimiterStatusResponse:
    """Return the caller's live window for ``profile`` without counting it."""

    limiter = _lookup(request, profile)
    return LimiterStatusResponse.from_result(profile, limiter.status(request_identity(request)))


@router.delete("/{profile}/entries", response_model=ResetResponse)
async def reset_limiter_entry(profile: str, request: Request) -> ResetResponse:
    """Clear the caller-identified window for ``profile`` (administrative override)."""

    limiter = _lookup(request, profile)
    limiter.reset(request_identity(request))
    logger.info("rate_limit.admin_reset", extra={"profile": profile})
    return ResetResponse(profile=profile)
