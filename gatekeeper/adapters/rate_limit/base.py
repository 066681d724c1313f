"""Rate limiter interfaces.

The API should depend on these abstractions (not the concrete
implementations) so the counting table can be swapped later with minimal
changes to the HTTP layer.

All timestamps exchanged here are UNIX epoch milliseconds.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from gatekeeper.core.keys import RequestIdentity


Clock = Callable[[], float]


def wall_clock_ms() -> float:
    """Default clock source: current UNIX time in milliseconds."""
    return time.time() * 1000.0


@dataclass(frozen=True)
class CheckResult:
    """Result of one admission decision.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch milliseconds when the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None = None


@dataclass(frozen=True)
class LimiterStats:
    """Monitoring snapshot of one limiter."""

    limit: int
    window_ms: int
    tracked_keys: int
    total_checks: int
    denied_checks: int


class AbstractWindowStore(ABC):
    """Interface for the key -> window counting table."""

    @property
    @abstractmethod
    def window_ms(self) -> int:
        """Window length applied to newly opened entries."""
        raise NotImplementedError

    @abstractmethod
    def increment(self, key: str, now: float) -> tuple[int, float]:
        """Atomically count one request for ``key``.

        Returns:
            Tuple of (count after increment, window reset timestamp).
        """
        raise NotImplementedError

    @abstractmethod
    def peek(self, key: str, now: float) -> tuple[int, float] | None:
        """Read the live window for ``key`` without mutating anything."""
        raise NotImplementedError

    @abstractmethod
    def clear(self, key: str) -> None:
        """Drop the entry for ``key`` if present."""
        raise NotImplementedError

    @abstractmethod
    def sweep_expired(self, now: float) -> int:
        """Remove every expired entry and return how many were removed."""
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def check(self, identity: RequestIdentity) -> CheckResult:
        """Count one request from ``identity`` and decide admission.

        Args:
            identity: Request identity view used to derive the limiter key.

        Returns:
            CheckResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def reset(self, identity: RequestIdentity) -> None:
        """Forget the counting window for ``identity``."""
        raise NotImplementedError

    @abstractmethod
    def status(self, identity: RequestIdentity) -> CheckResult | None:
        """Report the current window for ``identity`` without counting."""
        raise NotImplementedError

    @abstractmethod
    def derive_key(self, identity: RequestIdentity) -> str:
        """Return the limiter key this limiter uses for ``identity``."""
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> LimiterStats:
        raise NotImplementedError

    @abstractmethod
    def destroy(self) -> None:
        """Release background resources; the limiter is unusable afterwards."""
        raise NotImplementedError
