"""Named limiter profiles and the registry that owns them.

The registry is built once by the application factory, stored on
``app.state.limiters`` and destroyed in the FastAPI lifespan. It is
read-only after construction: profiles cannot be added or removed at
runtime.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from gatekeeper.adapters.rate_limit.base import AbstractRateLimiter, Clock, wall_clock_ms
from gatekeeper.adapters.rate_limit.in_memory import (
    DEFAULT_RECLAIM_INTERVAL_MS,
    FixedWindowRateLimiter,
)
from gatekeeper.core.config import RateLimitSettings
from gatekeeper.core.errors import ConfigurationAppError
from gatekeeper.core.keys import KeyDeriver, KeyStrategy

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

GENERAL_API = "general-api"
AUTH = "auth"
PER_USER_API = "per-user-api"
CONTACT_FORM = "contact-form"
NEWSLETTER = "newsletter"
PERFORMANCE_MONITORING = "performance-monitoring"
UPLOAD = "upload"


@dataclass(frozen=True)
class LimiterProfile:
    """Static policy for one class of endpoint."""

    name: str
    window_ms: int
    max_requests: int
    key_strategy: KeyStrategy = KeyStrategy.IP
    key_prefix: str | None = None

    def key_deriver(self) -> KeyDeriver:
        return KeyDeriver(strategy=self.key_strategy, prefix=self.key_prefix)


def default_profiles(rate_limit_settings: RateLimitSettings) -> tuple[LimiterProfile, ...]:
    """Return the built-in profile table.

    Only general-api reads its window/max from settings.
    """
    return (
        LimiterProfile(
            GENERAL_API,
            window_ms=rate_limit_settings.window_ms,
            max_requests=rate_limit_settings.max_requests,
        ),
        LimiterProfile(AUTH, window_ms=15 * MINUTE_MS, max_requests=5, key_prefix="auth"),
        LimiterProfile(
            PER_USER_API,
            window_ms=MINUTE_MS,
            max_requests=60,
            key_strategy=KeyStrategy.USER_OR_IP,
            key_prefix="api",
        ),
        LimiterProfile(CONTACT_FORM, window_ms=HOUR_MS, max_requests=3, key_prefix="contact"),
        LimiterProfile(NEWSLETTER, window_ms=24 * HOUR_MS, max_requests=1, key_prefix="newsletter"),
        LimiterProfile(
            PERFORMANCE_MONITORING,
            window_ms=MINUTE_MS,
            max_requests=1000,
            key_prefix="performance",
        ),
        LimiterProfile(UPLOAD, window_ms=HOUR_MS, max_requests=10, key_prefix="upload"),
    )


class LimiterRegistry:
    """Fixed, named set of independently configured limiters."""

    def __init__(self, limiters: Mapping[str, AbstractRateLimiter]) -> None:
        self._limiters = MappingProxyType(dict(limiters))

    @classmethod
    def from_profiles(
        cls,
        profiles: Iterable[LimiterProfile],
        *,
        reclaim_interval_ms: int = DEFAULT_RECLAIM_INTERVAL_MS,
        clock: Clock = wall_clock_ms,
    ) -> LimiterRegistry:
        """Build one limiter per profile.

        Raises:
            ConfigurationAppError: On duplicate names or invalid limits. Any
                limiter already started is destroyed before raising.
        """
        limiters: dict[str, AbstractRateLimiter] = {}
        try:
            for profile in profiles:
                if profile.name in limiters:
                    raise ConfigurationAppError(
                        code="duplicate_rate_limit_profile",
                        message=f"rate limit profile '{profile.name}' is defined twice",
                        details={"profile": profile.name},
                    )
                limiters[profile.name] = FixedWindowRateLimiter(
                    max_requests=profile.max_requests,
                    window_ms=profile.window_ms,
                    key_deriver=profile.key_deriver(),
                    reclaim_interval_ms=reclaim_interval_ms,
                    name=profile.name,
                    clock=clock,
                )
        except ConfigurationAppError:
            for limiter in limiters.values():
                limiter.destroy()
            raise

        logger.info(
            "rate_limit.registry_built",
            extra={"profiles": sorted(limiters), "reclaim_interval_ms": reclaim_interval_ms},
        )
        return cls(limiters)

    def get(self, name: str) -> AbstractRateLimiter:
        try:
            return self._limiters[name]
        except KeyError:
            raise ConfigurationAppError(
                code="unknown_rate_limit_profile",
                message=f"unknown rate limit profile '{name}'",
                details={"profile": name, "known_profiles": sorted(self._limiters)},
            ) from None

    def names(self) -> list[str]:
        return sorted(self._limiters)

    def items(self) -> Iterator[tuple[str, AbstractRateLimiter]]:
        return iter(self._limiters.items())

    def __contains__(self, name: object) -> bool:
        return name in self._limiters

    def __len__(self) -> int:
        return len(self._limiters)

    def destroy_all(self) -> None:
        """Destroy every member limiter (idempotent)."""
        for limiter in self._limiters.values():
            limiter.destroy()

