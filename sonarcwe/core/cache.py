"""TTL cache for rule metadata.

Rule records are reference data: the same rule keys show up on every
analysis of a project. The cache is an explicitly owned object handed to
the rule resolver, so its lifetime is whatever the owner decides (one
report pass, or one server process).
"""

import threading
import time
from collections.abc import Iterable
from typing import Any

from ..constants import DEFAULT_CACHE_TTL_SECONDS, RULE_CACHE_MAX_SIZE


class RuleCache:
    """Thread-safe mapping of rule key to resolved record, with TTL expiration."""

    def __init__(
        self, maxsize: int = RULE_CACHE_MAX_SIZE, ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS
    ):
        """Initialize the cache.

        Args:
            maxsize: Maximum number of rule records to keep
            ttl_seconds: Time-to-live in seconds; 0 disables caching
        """
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, tuple[Any, float]] = {}  # key -> (record, expire_time)
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0 and self.maxsize > 0

    def get(self, key: str) -> tuple[bool, Any]:
        """Look up one rule key.

        Returns:
            Tuple of (found, record). If found is False, record is None.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                record, expire_time = entry
                if time.time() < expire_time:
                    self._hits += 1
                    return True, record
                del self._entries[key]

            self._misses += 1
            return False, None

    def get_many(self, keys: Iterable[str]) -> tuple[dict[str, Any], list[str]]:
        """Split keys into cached records and keys that still need fetching."""
        found: dict[str, Any] = {}
        missing: list[str] = []
        for key in keys:
            hit, record = self.get(key)
            if hit:
                found[key] = record
            else:
                missing.append(key)
        return found, missing

    def set(self, key: str, record: Any) -> None:
        if not self.enabled:
            return

        with self._lock:
            if key not in self._entries and len(self._entries) >= self.maxsize:
                self._evict_expired()
                if len(self._entries) >= self.maxsize:
                    self._evict_oldest()

            self._entries[key] = (record, time.time() + self.ttl_seconds)

    def set_many(self, records: dict[str, Any]) -> None:
        for key, record in records.items():
            self.set(key, record)

    def _evict_expired(self) -> int:
        now = time.time()
        expired = [k for k, (_, exp) in self._entries.items() if exp <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _evict_oldest(self) -> None:
        if not self._entries:
            return
        oldest = min(self._entries, key=lambda k: self._entries[k][1])
        del self._entries[oldest]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, int | float]:
        """Get cache statistics.

        Returns:
            Dictionary with hits, misses, size, and hit rate
        """
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._entries),
                "maxsize": self.maxsize,
                "ttl_seconds": self.ttl_seconds,
                "hit_rate_percent": round(hit_rate, 2),
            }
