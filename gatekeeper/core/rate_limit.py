"""Rate limiting dependency for FastAPI routes.

This module wires the limiter registry into the HTTP layer.

Design goals:
- Minimal coupling: routes declare a profile name via ``Depends(RateLimit(...))``.
- Registry injected, not global: the application lifespan builds it on
  startup, stores it on ``app.state.limiters`` and destroys it on shutdown.
- Misconfiguration fails at startup: ``validate_route_profiles`` checks every
  profile referenced by a route, including routes of included routers and
  mounted sub-applications, against the configured profile names.

Usage:
    @router.post("/contact", dependencies=[Depends(RateLimit(CONTACT_FORM))])
    async def contact(...): ...
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator

from fastapi import Request, Response
from fastapi.routing import APIRoute

from gatekeeper.adapters.rate_limit.base import CheckResult
from gatekeeper.core.config import settings
from gatekeeper.core.errors import ConfigurationAppError, RateLimitExceeded
from gatekeeper.core.headers import build_rate_limit_headers
from gatekeeper.core.keys import RequestIdentity
from gatekeeper.core.logging import hash_identifier
from gatekeeper.core.registry import LimiterRegistry
from gatekeeper.core.skip import SkipCondition

logger = logging.getLogger(__name__)


def get_limiter_registry(request: Request) -> LimiterRegistry:
    """Return the registry owned by the running application.

    Raises:
        ConfigurationAppError: If no registry is attached, i.e. the app is
            serving outside its lifespan.
    """

    registry = getattr(request.app.state, "limiters", None)
    if registry is None:
        raise ConfigurationAppError(
            code="rate_limit_registry_missing",
            message="no limiter registry is attached to the application",
            details={
                "hint": "Build the app with create_app() and run it under its lifespan"
            },
        )
    return registry


def request_identity(request: Request) -> RequestIdentity:
    return RequestIdentity.from_request(
        request,
        include_peer=settings.rate_limit.trust_peer_address,
    )


class RateLimit:
    """FastAPI dependency enforcing one limiter profile.

    When enabled, counts the request against the profile. Admitted responses
    get the X-RateLimit-* headers; denied requests raise ``RateLimitExceeded``,
    which the exception handler renders as HTTP 429. Requests matched by
    ``skip`` bypass the profile without being counted.
    """

    def __init__(self, profile: str, *, skip: SkipCondition | None = None) -> None:
        self.profile = profile
        self.skip = skip

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"RateLimit(profile={self.profile!r})"

    async def __call__(self, request: Request, response: Response) -> CheckResult | None:
        if not settings.rate_limit.enabled:
            return None

        limiter = get_limiter_registry(request).get(self.profile)

        if self.skip is not None and self.skip(request):
            logger.debug(
                "rate_limit.skipped",
                extra={"profile": self.profile, "route": request.url.path},
            )
            return None

        identity = request_identity(request)
        result = limiter.check(identity)
        key_hash = hash_identifier(limiter.derive_key(identity))

        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "profile": self.profile,
                    "key_hash": key_hash,
                    "limit": result.limit,
                    "remaining": result.remaining,
                },
            )
            if settings.rate_limit.include_headers:
                response.headers.update(build_rate_limit_headers(result))
            return result

        logger.warning(
            "rate_limit.exceeded",
            extra={
                "profile": self.profile,
                "key_hash": key_hash,
                "limit": result.limit,
                "route": request.url.path,
                "retry_after_s": result.retry_after_seconds,
            },
        )
        raise RateLimitExceeded(self.profile, result)


def _rate_limits_in(dependencies: Iterable[Any]) -> Iterator[str]:
    """Yield profiles of ``Depends(RateLimit(...))`` declarations."""

    for dependency in dependencies or ():
        call = getattr(dependency, "dependency", None)
        if isinstance(call, RateLimit):
            yield call.profile


def _child_routes(route: Any) -> Iterable[Any]:
    # Lazily included routers keep their routes on the original router;
    # Mount and flattened routers expose them directly.
    router = getattr(route, "original_router", None)
    if router is not None:
        return router.routes
    return getattr(route, "routes", None) or ()


def iter_route_profiles(routes: Iterable[Any], prefix: str = "") -> Iterator[tuple[str, str]]:
    """Yield ``(path, profile)`` for every RateLimit dependency on the routes.

    Descends into included routers and mounted applications, and picks up
    router-level ``dependencies`` declared on the inclusion itself.
    """

    for route in routes:
        path = prefix + (getattr(route, "path", None) or getattr(route, "prefix", None) or "")

        if isinstance(route, APIRoute):
            pending = list(route.dependant.dependencies)
            while pending:
                dependency = pending.pop()
                if isinstance(dependency.call, RateLimit):
                    yield path, dependency.call.profile
                pending.extend(dependency.dependencies)
            continue

        for profile in _rate_limits_in(getattr(route, "dependencies", None)):
            yield path, profile
        yield from iter_route_profiles(_child_routes(route), path)


def validate_route_profiles(routes: Iterable[Any], profile_names: Iterable[str]) -> None:
    """Fail fast when a route references a profile that is not configured.

    Raises:
        ConfigurationAppError: For the first unknown profile found.
    """

    known = sorted(set(profile_names))
    for path, profile in iter_route_profiles(routes):
        if profile not in known:
            logger.error(
                "rate_limit.unknown_route_profile",
                extra={"route": path, "profile": profile, "known_profiles": known},
            )
            raise ConfigurationAppError(
                code="unknown_rate_limit_profile",
                message=f"route '{path}' references unknown rate limit profile '{profile}'",
                details={"profile": profile, "known_profiles": known, "route": path},
            )
