"""
In-memory cache of normalized analysis results keyed by image fingerprint.

Single-node only: entries live in process memory and are lost on restart.
The cache is an optimization; callers must behave the same with it empty.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from cachetools import TTLCache

from snapmeal_api.models.nutrition import NutritionAnalysisResult
from snapmeal_api.models.provider_config import ProviderKind

logger = logging.getLogger(__name__)

FINGERPRINT_LENGTH = 32


def fingerprint_for(content_hash: str) -> str:
    """First 128 bits of the SHA-256 hex digest."""
    return content_hash[:FINGERPRINT_LENGTH]


@dataclass(frozen=True)
class CacheEntry:
    """A cached result and the provider call that produced it."""

    fingerprint: str
    payload: NutritionAnalysisResult
    created_at: datetime
    expires_at: datetime
    provider_kind: ProviderKind | None = None
    model_name: str | None = None
    config_version: int | None = None


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    evictions: int
    entries: int
    max_entries: int
    ttl_seconds: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total, 4) if total else 0.0

    def as_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "entries": self.entries,
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
            "hit_rate": self.hit_rate,
        }


class _EntryStore(TTLCache):
    """TTLCache that counts entries dropped to make room."""

    def __init__(self, maxsize: int, ttl: float, timer: Callable[[], float]):
        super().__init__(maxsize=maxsize, ttl=ttl, timer=timer)
        self.evictions = 0

    def popitem(self):
        key, value = super().popitem()
        self.evictions += 1
        logger.debug(f"Evicted least recently used entry {key}")
        return key, value


class AnalysisCache:
    """
    TTL + LRU cache of nutrition results, backed by ``cachetools.TTLCache``.

    Expired entries are dropped before every read and write, and in bulk by
    ``purge_expired`` (run periodically by the scheduler). When full, the
    least recently used entry makes room for a new one. TTLCache is not
    thread safe, so every operation holds a lock.

    Usage:
        cache = AnalysisCache(ttl_seconds=1800)
        cache.put(fingerprint_for(content_hash), result)
        result = cache.get(fingerprint_for(content_hash))
    """

    def __init__(
        self,
        ttl_seconds: int = 1800,
        max_entries: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_entries = max_entries
        self._entries = _EntryStore(max_entries, ttl_seconds, timer)
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._expired = 0

    def _expire(self) -> int:
        """Drop expired entries; caller holds the lock."""
        expired = self._entries.expire()
        self._expired += len(expired)
        for fingerprint, _ in expired:
            logger.debug(f"Cache entry expired for {fingerprint}")
        return len(expired)

    def lookup(self, fingerprint: str) -> CacheEntry | None:
        """Return the live entry, counting a hit or a miss."""
        with self._lock:
            self._expire()
            entry = self._entries.get(fingerprint)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry

    def get(self, fingerprint: str) -> NutritionAnalysisResult | None:
        """Return the cached payload, or None on a miss or expired entry."""
        entry = self.lookup(fingerprint)
        return entry.payload if entry is not None else None

    def put(
        self,
        fingerprint: str,
        payload: NutritionAnalysisResult,
        *,
        provider_kind: ProviderKind | None = None,
        model_name: str | None = None,
        config_version: int | None = None,
    ) -> None:
        """Insert or replace an entry; the newest write wins."""
        now = datetime.now(UTC)
        entry = CacheEntry(
            fingerprint=fingerprint,
            payload=payload,
            created_at=now,
            expires_at=now + self._ttl,
            provider_kind=provider_kind,
            model_name=model_name,
            config_version=config_version,
        )
        with self._lock:
            self._expire()
            self._entries[fingerprint] = entry

    def evict(self, fingerprint: str) -> bool:
        with self._lock:
            return self._entries.pop(fingerprint, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Analysis cache cleared")

    def purge_expired(self) -> int:
        """Remove all expired entries. Returns how many were removed."""
        with self._lock:
            removed = self._expire()

        if removed:
            logger.debug(f"Purged {removed} expired cache entries")
        return removed

    def inspect(self, fingerprint: str) -> CacheEntry | None:
        """Entry metadata without counting a hit."""
        with self._lock:
            self._expire()
            return self._entries.get(fingerprint)

    def stats(self) -> CacheStats:
        with self._lock:
            self._expire()
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._expired + self._entries.evictions,
                entries=len(self._entries),
                max_entries=self._max_entries,
                ttl_seconds=int(self._ttl.total_seconds()),
            )

    def __len__(self) -> int:
        with self._lock:
            self._expire()
            return len(self._entries)
