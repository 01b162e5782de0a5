"""In-memory response cache for announcement lookups."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry with metadata."""

    key: str
    data: T
    expires_at: Optional[float] = None
    last_accessed: float = field(default_factory=time.time)

    @property
    def is_expired(self) -> bool:
        """Check if entry has expired."""
        if self.expires_at is None:
            return False
        return time.time() > self.expires_at

    def touch(self) -> None:
        self.last_accessed = time.time()


@dataclass
class CacheStats:
    """Statistics for cache performance."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    entry_count: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": f"{self.hit_rate * 100:.1f}%",
            "evictions": self.evictions,
            "entry_count": self.entry_count,
        }


class ResponseCache(Generic[T]):
    """
    TTL cache with LRU eviction for filtered, projected API results.

    Values are stored as-is; callers cache immutable data only.

    Usage:
        cache = ResponseCache(default_ttl_seconds=1800)

        records = cache.get("announcements:reliance")
        if records is None:
            records = await fetch(...)
            cache.set("announcements:reliance", records)
    """

    def __init__(
        self,
        default_ttl_seconds: int = 1800,
        max_entries: int = 256,
    ):
        self.default_ttl_seconds = default_ttl_seconds
        self.max_entries = max_entries
        self._entries: dict[str, CacheEntry[T]] = {}
        self._stats = CacheStats()

    def get(self, key: str) -> Optional[T]:
        """Retrieve a cached value, or None on a miss or expiry."""
        entry = self._entries.get(key)
        if entry is not None:
            if not entry.is_expired:
                entry.touch()
                self._stats.hits += 1
                logger.debug(f"Cache hit: {key}")
                return entry.data
            del self._entries[key]
            self._stats.evictions += 1

        self._stats.misses += 1
        logger.debug(f"Cache miss: {key}")
        return None

    def set(self, key: str, data: T, ttl_seconds: Optional[int] = None) -> None:
        """
        Store a value in the cache.

        Args:
            key: Cache key
            data: Value to cache
            ttl_seconds: Time-to-live in seconds (uses default if not specified).
                0 means never expires, negative means already expired.
        """
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        if ttl < 0:
            expires_at = time.time() - 1
        elif ttl == 0:
            expires_at = None
        else:
            expires_at = time.time() + ttl

        if key not in self._entries:
            while len(self._entries) >= self.max_entries:
                self._evict_lru()

        self._entries[key] = CacheEntry(
            key=key,
            data=data,
            expires_at=expires_at,
        )
        self._stats.entry_count = len(self._entries)
        logger.debug(f"Cached: {key} (ttl={ttl}s)")

    def _evict_lru(self) -> None:
        """Evict least recently used entry."""
        if not self._entries:
            return

        lru_key = min(
            self._entries.keys(),
            key=lambda k: self._entries[k].last_accessed,
        )
        del self._entries[lru_key]
        self._stats.evictions += 1

    def invalidate_prefix(self, prefix: str) -> int:
        """Invalidate every entry whose key starts with prefix."""
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        self._stats.entry_count = len(self._entries)
        return len(keys)

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        return self._stats

    def __len__(self) -> int:
        return len(self._entries)
