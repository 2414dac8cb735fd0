"""
Album Cache

Thread-safe in-memory key/value store used to memoize album listings.

- Lazy expiry: an entry is visible only while now < expires_at
- Absolute TTL by default, sliding TTL on request
- Optional entry bound, evicting the entry closest to expiry
- Explicitly constructed and injected; there is no module-level instance
"""

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


def album_cache_key(kind: str, *parts: Any) -> str:
    """
    Builds a cache key from every parameter that shapes the cached value.
    None parts are kept as an explicit marker so that (a, None) and (a,) differ.
    """
    rendered = ["-" if part is None else str(part) for part in parts]
    return ":".join([kind, *rendered])


@dataclass
class CacheEntry:
    """A cached value and the moment it stops being visible."""
    key: str
    value: Any
    expires_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class AlbumCache:
    """
    In-memory TTL cache.

    Concurrent misses for the same key each recompute and each call set();
    the last write wins. Reads and writes of different keys never block
    each other beyond the short critical section of the lock.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        sliding: bool = False,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl_seconds: Lifetime applied to every key
            sliding: Renew an entry's lifetime on every hit
            max_entries: Upper bound of stored entries, None for unbounded
            clock: Monotonic time source, replaceable in tests
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = float(ttl_seconds)
        self._sliding = sliding
        self._max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: str) -> Optional[Any]:
        """Returns the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now):
                del self._entries[key]
                self._misses += 1
                logger.debug(f"[AlbumCache] Expired: {key}")
                return None
            if self._sliding:
                entry.expires_at = now + entry.ttl
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self._ttl if ttl is None else float(ttl)
        with self._lock:
            now = self._clock()
            self._entries[key] = CacheEntry(
                key=key, value=value, expires_at=now + ttl, ttl=ttl
            )
            self._evict_if_needed(now)

    def invalidate(self, key: str) -> bool:
        """Drops a key. Returns whether anything was removed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def cleanup_expired(self) -> int:
        """
        Removes every expired entry.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            removed = self._purge_expired(self._clock())
        if removed:
            logger.info(f"[AlbumCache] Cleaned up {removed} expired entries")
        return removed

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    def stats(self) -> dict:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_seconds": self._ttl,
                "sliding": self._sliding,
                "max_entries": self._max_entries,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _evict_if_needed(self, now: float) -> None:
        # Caller holds the lock.
        if self._max_entries is None or len(self._entries) <= self._max_entries:
            return
        self._purge_expired(now)
        while len(self._entries) > self._max_entries:
            oldest = min(self._entries.values(), key=lambda e: e.expires_at)
            del self._entries[oldest.key]
            logger.info(f"[AlbumCache] Evicted: {oldest.key}")
