from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness check; never rate limited.

    Reports the number of limiter profiles attached to the running app so a
    missing registry is visible to load balancers and monitoring.
    """

    registry = getattr(request.app.state, "limiters", None)
    return {
        "status": "ok",
        "rate_limit_profiles": len(registry) if registry is not None else 0,
    }
