"""Predicates that exempt a request from rate limiting.

A skip condition receives the incoming request and returns True when the
request must bypass its profile entirely: no counting and no headers.
Attach one with ``RateLimit(profile, skip=...)``; several can be merged
with ``combine_skip_conditions``.

Usage:
    skip = combine_skip_conditions(development_localhost, static_assets)

    @router.get("/assets/{name}", dependencies=[Depends(RateLimit(GENERAL_API, skip=skip))])
    async def asset(name: str): ...
"""

from __future__ import annotations

import ipaddress
import re
from typing import Callable

from fastapi import Request

from gatekeeper.core.auth import parse_api_keys
from gatekeeper.core.config import settings
from gatekeeper.core.keys import RequestIdentity, resolve_client_ip

SkipCondition = Callable[[Request], bool]

HEALTH_CHECK_PATHS = frozenset({"/health", "/api/health"})
STATIC_PATH_PREFIXES = ("/static/", "/_next/")
_STATIC_SUFFIX = re.compile(r"\.(css|js|png|jpg|jpeg|gif|svg|ico|woff|woff2)$", re.IGNORECASE)


def development_localhost(request: Request) -> bool:
    """Exempt loopback clients, but only when APP_ENV is development."""

    if settings.app_env != "development":
        return False
    identity = RequestIdentity.from_request(
        request,
        include_peer=settings.rate_limit.trust_peer_address,
    )
    try:
        return ipaddress.ip_address(resolve_client_ip(identity)).is_loopback
    except ValueError:
        # "unknown" clients are never exempt
        return False


def health_check(request: Request) -> bool:
    return request.url.path in HEALTH_CHECK_PATHS


def static_assets(request: Request) -> bool:
    path = request.url.path
    return path.startswith(STATIC_PATH_PREFIXES) or _STATIC_SUFFIX.search(path) is not None


def admin_key_holder(request: Request) -> bool:
    """Exempt callers presenting a configured ``X-Admin-Key``."""

    provided = request.headers.get("x-admin-key")
    return bool(provided) and provided in parse_api_keys(settings.app.admin_api_keys)


def combine_skip_conditions(*conditions: SkipCondition) -> SkipCondition:
    """Return a condition that skips when any of ``conditions`` does."""

    def combined(request: Request) -> bool:
        return any(condition(request) for condition in conditions)

    return combined
