"""Sharded in-memory window store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: keys are hashed onto a fixed set of shards, each guarded by
  its own lock. Increments on one key are serialized by that key's shard
  lock; a sweep holds one shard lock at a time.
"""

from __future__ import annotations

import threading
import zlib
from dataclasses import dataclass

from gatekeeper.adapters.rate_limit.base import AbstractWindowStore
from gatekeeper.core.errors import ConfigurationAppError

DEFAULT_SHARD_COUNT = 16


@dataclass
class WindowEntry:
    count: int
    reset_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.reset_at


class _Shard:
    __slots__ = ("lock", "entries")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.entries: dict[str, WindowEntry] = {}


class ShardedWindowStore(AbstractWindowStore):
    """Fixed-window counting table keyed by limiter key.

    Worst-case request stall during a sweep is the time needed to scan a
    single shard, not the whole table.
    """

    def __init__(self, *, window_ms: int, shard_count: int = DEFAULT_SHARD_COUNT) -> None:
        """Initialize the store.

        Args:
            window_ms: Window length applied to new entries.
            shard_count: Number of independently locked partitions.

        Raises:
            ConfigurationAppError: If window_ms or shard_count are invalid.
        """
        if window_ms <= 0:
            raise ConfigurationAppError(
                code="invalid_window",
                message="window_ms must be > 0",
                details={"field": "window_ms", "value": window_ms},
            )
        if shard_count < 1:
            raise ConfigurationAppError(
                code="invalid_shard_count",
                message="shard_count must be >= 1",
                details={"field": "shard_count", "value": shard_count},
            )

        self._window_ms = window_ms
        self._shards = tuple(_Shard() for _ in range(shard_count))

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def _shard_for(self, key: str) -> _Shard:
        # crc32 is stable across processes, unlike hash() with PYTHONHASHSEED
        return self._shards[zlib.crc32(key.encode()) % len(self._shards)]

    def increment(self, key: str, now: float) -> tuple[int, float]:
        shard = self._shard_for(key)
        with shard.lock:
            entry = shard.entries.get(key)
            if entry is None or entry.is_expired(now):
                entry = WindowEntry(count=1, reset_at=now + self._window_ms)
                shard.entries[key] = entry
            else:
                entry.count += 1
            return entry.count, entry.reset_at

    def peek(self, key: str, now: float) -> tuple[int, float] | None:
        shard = self._shard_for(key)
        with shard.lock:
            entry = shard.entries.get(key)
            if entry is None or entry.is_expired(now):
                return None
            return entry.count, entry.reset_at

    def clear(self, key: str) -> None:
        shard = self._shard_for(key)
        with shard.lock:
            shard.entries.pop(key, None)

    def sweep_expired(self, now: float) -> int:
        """Remove expired entries shard by shard.

        Args:
            now: Current timestamp in epoch milliseconds.

        Returns:
            Number of entries evicted across all shards.
        """
        evicted = 0
        for shard in self._shards:
            with shard.lock:
                expired = [k for k, entry in shard.entries.items() if entry.is_expired(now)]
                for key in expired:
                    del shard.entries[key]
                evicted += len(expired)
        return evicted

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.entries)
        return total
