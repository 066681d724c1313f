"""Application factory for the FastAPI app.

Centralizes app construction (logging, middleware, handlers, routers,
limiter lifespan) so tests can build isolated apps with their own profile
tables and clocks.

The limiter registry is the only long-lived mutable state in the process.
``create_app`` only checks the routes against the profile table; each
lifespan startup builds a fresh registry, attaches it to
``app.state.limiters``, and destroys it on shutdown. Importing the module
that holds the app therefore starts no background threads, and an app can
be started and stopped repeatedly.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import FastAPI

from gatekeeper.adapters.rate_limit.base import Clock, wall_clock_ms
from gatekeeper.api.routes import health_router, rate_limits_router
from gatekeeper.core.config import settings
from gatekeeper.core.exception_handlers import setup_exception_handlers
from gatekeeper.core.logging import configure_logging
from gatekeeper.core.middleware import request_id_middleware
from gatekeeper.core.openapi import apply_openapi_customizations
from gatekeeper.core.rate_limit import validate_route_profiles
from gatekeeper.core.registry import LimiterProfile, LimiterRegistry, default_profiles

logger = logging.getLogger(__name__)


def _limiter_lifespan(
    profiles: tuple[LimiterProfile, ...],
    clock: Clock,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        registry = LimiterRegistry.from_profiles(
            profiles,
            reclaim_interval_ms=settings.rate_limit.reclaim_interval_ms,
            clock=clock,
        )
        app.state.limiters = registry
        try:
            yield
        finally:
            app.state.limiters = None
            registry.destroy_all()
            logger.info("rate_limit.registry_destroyed")

    return lifespan


def create_app(
    profiles: Iterable[LimiterProfile] | None = None,
    *,
    clock: Clock = wall_clock_ms,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        profiles: Limiter profile table; the built-in table (general-api
            tuned from settings) when omitted.
        clock: Time source for the limiters, in epoch milliseconds.
        configure_logs: Whether to (re)configure root logging.

    Returns:
        Configured FastAPI app. Its limiters exist only while the lifespan
        runs.

    Raises:
        ConfigurationAppError: If a route references a profile missing from
            the table.
    """
    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(settings.log)

    if profiles is None:
        profiles = default_profiles(settings.rate_limit)
    profiles = tuple(profiles)

    app = FastAPI(
        title="Gatekeeper API",
        description=(
            "In-process admission control: named fixed-window rate limit "
            "profiles with standard X-RateLimit-* headers and HTTP 429 denials."
        ),
        version="0.1.0",
        lifespan=_limiter_lifespan(profiles, clock),
    )
    app.state.limiters = None

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (admin security scheme, tags, 429 responses)
    apply_openapi_customizations(app)

    validate_route_profiles(app.routes, (profile.name for profile in profiles))

    return app
