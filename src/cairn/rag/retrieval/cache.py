"""
Query result cache.

Bounded FIFO cache of RetrievalResponse objects with a TTL. Entries are
evicted in insertion order, which with a single TTL means the expired ones
are always at the front.
"""

import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from cairn.core.exceptions import CacheCorruptionError
from cairn.core.logging import logger
from cairn.core.tracing import MetricsCollector
from cairn.models.retrieval import RetrievalResponse


@dataclass
class QueryCacheEntry:
    key: str
    value: RetrievalResponse
    inserted_at: float


class QueryCache:
    """
    Cache for complete retrieval responses.

    Safe to share between threads: every operation holds a short lock.
    Reads do not refresh an entry's position (not LRU).
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            max_size: Maximum number of cached responses
            ttl_seconds: Time to live in seconds (default 1 hour)
            clock: Time source in seconds
        """
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, QueryCacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.metrics = MetricsCollector()

        logger.info("QueryCache initialized", max_size=max_size, ttl_seconds=ttl_seconds)

    @staticmethod
    def make_key(
        query: str,
        limit: int,
        strategy: str,
        threshold: float,
        max_context_length: Optional[int] = None,
        diversity: Optional[bool] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Deterministic key for a normalized query and its options.

        Every option that changes the response shape is part of the key.
        """
        return json.dumps(
            {
                "query": query,
                "limit": limit,
                "strategy": strategy,
                "threshold": threshold,
                "max_context_length": max_context_length,
                "diversity": diversity,
                "filters": filters or {},
            },
            sort_keys=True,
            default=str,
        )

    def _check(self, key: str, entry: Any) -> QueryCacheEntry:
        if (
            not isinstance(entry, QueryCacheEntry)
            or entry.key != key
            or not isinstance(entry.value, RetrievalResponse)
            or not isinstance(entry.inserted_at, (int, float))
        ):
            raise CacheCorruptionError(
                "Malformed query cache entry", context={"entry_type": type(entry).__name__}
            )
        return entry

    def _is_expired(self, entry: QueryCacheEntry, now: float) -> bool:
        return now - entry.inserted_at >= self.ttl_seconds

    def get(self, key: str) -> Optional[RetrievalResponse]:
        """
        Returns the cached response, or None if absent, expired or malformed.

        Expired and malformed entries are removed on the way.
        """
        with self._lock:
            raw = self._entries.get(key)
            if raw is None:
                self.metrics.increment("query_cache.misses")
                return None

            try:
                entry = self._check(key, raw)
            except CacheCorruptionError as e:
                del self._entries[key]
                self.metrics.increment("query_cache.corruptions")
                self.metrics.increment("query_cache.misses")
                logger.warning("Dropped corrupted cache entry", error=e.message, **e.context)
                return None

            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                self.metrics.increment("query_cache.expirations")
                self.metrics.increment("query_cache.misses")
                return None

            self.metrics.increment("query_cache.hits")
            return entry.value

    def put(self, key: str, value: RetrievalResponse) -> None:
        """Stores a response; when full, drops expired entries, then the oldest."""
        with self._lock:
            now = self._clock()
            self._entries.pop(key, None)

            if len(self._entries) >= self.max_size:
                self._purge_expired(now)
            if len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
                self.metrics.increment("query_cache.evictions")

            self._entries[key] = QueryCacheEntry(key=key, value=value, inserted_at=now)
            self.metrics.gauge("query_cache.size", len(self._entries))

    def _purge_expired(self, now: float) -> None:
        # Insertion order equals age order, so expired entries form a prefix
        while self._entries:
            key, entry = next(iter(self._entries.items()))
            if isinstance(entry, QueryCacheEntry) and not self._is_expired(entry, now):
                break
            del self._entries[key]
            self.metrics.increment("query_cache.expirations")

    def clear(self) -> None:
        with self._lock:
            size = len(self._entries)
            self._entries.clear()
            self.metrics.gauge("query_cache.size", 0)
        logger.debug("Query cache cleared", entries_removed=size)

    def __len__(self) -> int:
        return len(self._entries)

    def get_hit_rate(self) -> float:
        """Hit rate in [0.0, 1.0]."""
        hits = self.metrics.get("query_cache.hits")
        total = hits + self.metrics.get("query_cache.misses")
        return hits / total if total else 0.0

    def get_stats(self) -> Dict[str, Any]:
        metrics = self.metrics.get_metrics()
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "ttl_seconds": self.ttl_seconds,
            "hits": int(metrics.get("query_cache.hits", 0)),
            "misses": int(metrics.get("query_cache.misses", 0)),
            "hit_rate": self.get_hit_rate(),
            "evictions": int(metrics.get("query_cache.evictions", 0)),
            "expirations": int(metrics.get("query_cache.expirations", 0)),
            "corruptions": int(metrics.get("query_cache.corruptions", 0)),
        }
