"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: counting is delegated to ``ShardedWindowStore``; lifecycle and
  stats counters use their own locks.
- Lifecycle is ``active -> destroyed``. Any use after ``destroy()`` raises
  ``LimiterDestroyedError``.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Callable

from gatekeeper.adapters.rate_limit.base import (
    AbstractRateLimiter,
    AbstractWindowStore,
    CheckResult,
    Clock,
    LimiterStats,
    wall_clock_ms,
)
from gatekeeper.adapters.rate_limit.reclaimer import Reclaimer
from gatekeeper.adapters.rate_limit.window_store import ShardedWindowStore
from gatekeeper.core.errors import ConfigurationAppError, LimiterDestroyedError
from gatekeeper.core.keys import KeyDeriver, RequestIdentity
from gatekeeper.core.logging import hash_identifier

logger = logging.getLogger(__name__)

DEFAULT_RECLAIM_INTERVAL_MS = 5 * 60 * 1000


@dataclass(frozen=True)
class LimiterConfig:
    """Immutable limiter policy.

    Raises:
        ConfigurationAppError: If any numeric setting is not positive.
    """

    window_ms: int
    max_requests: int
    key_deriver: Callable[[RequestIdentity], str] = field(default_factory=KeyDeriver)
    reclaim_interval_ms: int = DEFAULT_RECLAIM_INTERVAL_MS

    def __post_init__(self) -> None:
        for name in ("window_ms", "max_requests", "reclaim_interval_ms"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationAppError(
                    code="invalid_limiter_config",
                    message=f"{name} must be > 0",
                    details={"field": name, "value": value},
                )


class FixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per key.

    The window for a key opens on its first request and lasts ``window_ms``.
    Every ``check()`` is counted, including denied ones; a request is allowed
    while the post-increment count is within ``max_requests``.
    """

    def __init__(
        self,
        *,
        max_requests: int,
        window_ms: int,
        key_deriver: Callable[[RequestIdentity], str] | None = None,
        reclaim_interval_ms: int = DEFAULT_RECLAIM_INTERVAL_MS,
        name: str = "default",
        clock: Clock = wall_clock_ms,
        store: AbstractWindowStore | None = None,
    ) -> None:
        """Initialize the limiter and start its reclaimer.

        Args:
            max_requests: Maximum number of allowed requests per window.
            window_ms: Size of the fixed window in milliseconds.
            key_deriver: Maps a request identity to a limiter key
                (defaults to IP-based keys).
            reclaim_interval_ms: Period of the background sweep.
            name: Profile name, used in logs.
            clock: Time source returning UNIX time in milliseconds.
            store: Counting table; a fresh sharded store when omitted. An
                injected store must use the same ``window_ms``.

        Raises:
            ConfigurationAppError: If any numeric setting is invalid.
        """
        self.config = LimiterConfig(
            window_ms=window_ms,
            max_requests=max_requests,
            key_deriver=key_deriver or KeyDeriver(),
            reclaim_interval_ms=reclaim_interval_ms,
        )
        self.name = name
        self._clock = clock
        if store is None:
            store = ShardedWindowStore(window_ms=window_ms)
        elif store.window_ms != window_ms:
            raise ConfigurationAppError(
                code="store_window_mismatch",
                message="store window_ms does not match the limiter window_ms",
                details={"field": "window_ms", "value": store.window_ms},
            )
        self._store: AbstractWindowStore | None = store
        self._lifecycle_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._total_checks = 0
        self._denied_checks = 0

        self._reclaimer: Reclaimer | None = Reclaimer(
            store,
            interval_ms=reclaim_interval_ms,
            clock=clock,
            name=f"rate-limit-reclaimer-{name}",
        )
        self._reclaimer.start()

    @property
    def destroyed(self) -> bool:
        return self._store is None

    @property
    def reclaimer(self) -> Reclaimer | None:
        return self._reclaimer

    def _require_store(self) -> AbstractWindowStore:
        store = self._store
        if store is None:
            raise LimiterDestroyedError(
                code="limiter_destroyed",
                message=f"rate limiter '{self.name}' was used after destroy()",
                details={"profile": self.name},
            )
        return store

    def _retry_after(self, reset_at: float, now: float) -> int:
        return max(1, math.ceil((reset_at - now) / 1000.0))

    def derive_key(self, identity: RequestIdentity) -> str:
        return self.config.key_deriver(identity)

    def check(self, identity: RequestIdentity) -> CheckResult:
        """Count one request and decide admission.

        This is the only operation that increments a counter.

        Args:
            identity: Request identity view.

        Returns:
            CheckResult with allowance decision and metadata.

        Raises:
            LimiterDestroyedError: If the limiter was destroyed.
        """
        store = self._require_store()
        key = self.derive_key(identity)
        now = self._clock()
        count, reset_at = store.increment(key, now)
        limit = self.config.max_requests
        allowed = count <= limit

        with self._stats_lock:
            self._total_checks += 1
            if not allowed:
                self._denied_checks += 1

        if allowed:
            return CheckResult(
                allowed=True,
                limit=limit,
                remaining=limit - count,
                reset_at=reset_at,
            )

        return CheckResult(
            allowed=False,
            limit=limit,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=self._retry_after(reset_at, now),
        )

    def reset(self, identity: RequestIdentity) -> None:
        store = self._require_store()
        key = self.derive_key(identity)
        store.clear(key)
        logger.info(
            "rate_limit.reset",
            extra={"profile": self.name, "key_hash": hash_identifier(key)},
        )

    def status(self, identity: RequestIdentity) -> CheckResult | None:
        """Report the live window for ``identity`` without counting.

        ``allowed`` tells whether the next ``check()`` would be admitted.

        Returns:
            CheckResult, or None when no live window exists for the key.
        """
        store = self._require_store()
        now = self._clock()
        window = store.peek(self.derive_key(identity), now)
        if window is None:
            return None

        count, reset_at = window
        limit = self.config.max_requests
        allowed = count < limit
        return CheckResult(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at=reset_at,
            retry_after_seconds=None if allowed else self._retry_after(reset_at, now),
        )

    def stats(self) -> LimiterStats:
        store = self._require_store()
        with self._stats_lock:
            total, denied = self._total_checks, self._denied_checks
        return LimiterStats(
            limit=self.config.max_requests,
            window_ms=self.config.window_ms,
            tracked_keys=len(store),
            total_checks=total,
            denied_checks=denied,
        )

    def destroy(self) -> None:
        """Stop the reclaimer and drop the store. Safe to call repeatedly.

        When this returns the reclaimer thread has exited, including when a
        sweep was running at the time of the call.
        """
        with self._lifecycle_lock:
            if self._store is None:
                return
            reclaimer, self._reclaimer = self._reclaimer, None
            if reclaimer is not None:
                reclaimer.stop()
            self._store = None

        logger.info("rate_limit.limiter_destroyed", extra={"profile": self.name})
