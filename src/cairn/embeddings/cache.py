"""
Cache for embeddings.

LRU cache with TTL keyed by the preprocessed text, so repeated queries and
re-ingested chunks do not hit the provider again.
"""

import hashlib
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional, TypedDict

from cairn.core.logging import logger
from cairn.embeddings.types import EmbeddingVector


class CacheStats(TypedDict):
    """TypedDict for cache statistics."""

    size: int
    max_size: int
    ttl_seconds: float
    capacity_used: float


@dataclass
class CacheEntry:
    """Cache entry with TTL.

    Attributes:
        embedding: Stored embedding vector
        created_at: Creation timestamp (for TTL)
    """

    embedding: EmbeddingVector
    created_at: float


class EmbeddingCache:
    """LRU cache with TTL for embeddings.

    Uses OrderedDict for O(1) LRU eviction; a lock makes it safe to share
    between concurrent queries.

    Attributes:
        max_size: Maximum number of entries in cache
        ttl_seconds: Time to live in seconds for each entry
    """

    def __init__(
        self,
        max_size: int = 10000,
        ttl_seconds: float = 3600,
        namespace: str = "",
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the cache with configurable limits.

        Args:
            max_size: Maximum number of entries (default: 10000)
            ttl_seconds: TTL in seconds (default: 3600 = 1 hour)
            namespace: Folded into every key, e.g. the provider model name
            clock: Time source in seconds
        """
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.namespace = namespace
        self._clock = clock
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

        logger.info("EmbeddingCache initialized", max_size=max_size, ttl_seconds=ttl_seconds)

    def _generate_key(self, text: str) -> str:
        return hashlib.sha256(f"{self.namespace}||{text}".encode()).hexdigest()

    def get(self, text: str) -> Optional[EmbeddingVector]:
        """Gets embedding from cache if it exists and has not expired."""
        key = self._generate_key(text)

        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None

            if self._clock() - entry.created_at >= self.ttl_seconds:
                del self._cache[key]
                return None

            self._cache.move_to_end(key)
            return entry.embedding

    def set(self, text: str, embedding: EmbeddingVector) -> None:
        """Saves embedding in cache with LRU eviction if necessary."""
        key = self._generate_key(text)

        with self._lock:
            if key in self._cache:
                del self._cache[key]
            elif len(self._cache) >= self.max_size:
                self._cache.popitem(last=False)

            self._cache[key] = CacheEntry(embedding=embedding, created_at=self._clock())

    def clear(self) -> None:
        with self._lock:
            size = len(self._cache)
            self._cache.clear()
        logger.info("Embedding cache cleared", entries_removed=size)

    @property
    def size(self) -> int:
        return len(self._cache)

    def get_stats(self) -> CacheStats:
        size = self.size
        return {
            "size": size,
            "max_size": self.max_size,
            "ttl_seconds": self.ttl_seconds,
            "capacity_used": size / self.max_size,
        }
