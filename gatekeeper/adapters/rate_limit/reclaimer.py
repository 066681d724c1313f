"""Background sweep of expired window entries.

The reclaimer only bounds memory: admission decisions never depend on it,
because the store treats expired entries as absent.
"""

from __future__ import annotations

import logging
import threading

from gatekeeper.adapters.rate_limit.base import AbstractWindowStore, Clock

logger = logging.getLogger(__name__)


class Reclaimer:
    """Periodic sweeper running on a daemon thread.

    Stopping is synchronous: once ``stop()`` returns, no sweep is running and
    none will start again.
    """

    def __init__(
        self,
        store: AbstractWindowStore,
        *,
        interval_ms: int,
        clock: Clock,
        name: str = "rate-limit-reclaimer",
    ) -> None:
        self._store = store
        self._interval_s = interval_ms / 1000.0
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        """Signal the thread and wait for an in-flight sweep to finish."""
        self._stop_event.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join()

    def run_once(self) -> int:
        """Sweep once and return the number of evicted entries.

        Failures are logged, never raised.
        """
        try:
            evicted = self._store.sweep_expired(self._clock())
        except Exception:
            logger.exception(
                "rate_limit.sweep_failed",
                extra={"reclaimer": self._thread.name},
            )
            return 0

        logger.debug(
            "rate_limit.sweep",
            extra={"reclaimer": self._thread.name, "evicted": evicted},
        )
        return evicted

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval_s):
            self.run_once()
