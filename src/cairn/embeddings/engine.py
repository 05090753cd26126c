"""
Embedding engine.

Wraps an EmbeddingProvider with everything the retrieval pipeline needs
around the raw call: text preprocessing, a timeout, vector validation,
dimension pinning, caching and batching.
"""

import asyncio
import re
import threading
import time
from typing import List, Optional, Sequence, Union

from cairn.core.exceptions import (
    CairnError,
    DimensionMismatchError,
    EmbeddingTimeoutError,
    EmbeddingUnavailableError,
    InvalidVectorError,
    ValidationError,
)
from cairn.core.logging import logger
from cairn.core.secure_config import Settings
from cairn.core.tracing import MetricsCollector
from cairn.embeddings.cache import EmbeddingCache
from cairn.embeddings.types import EmbeddingProvider, EmbeddingVector


_WHITESPACE_RE = re.compile(r"\s+")


class EmbeddingEngine:
    """
    Text to EmbeddingVector, with a fixed dimension contract.

    The dimension is either given up front or discovered from the first
    successful provider call; after that any vector of another length is a
    DimensionMismatchError. The engine never retries: a failed or slow call
    is reported to the caller, who decides.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        dimension: Optional[int] = None,
        timeout_seconds: float = 30.0,
        batch_size: int = 100,
        max_text_length: int = 8000,
        cache: Optional[EmbeddingCache] = None,
    ):
        """
        Args:
            provider: External embedding capability
            dimension: Expected vector length (None = discover on first call)
            timeout_seconds: Upper bound for one provider call
            batch_size: Texts embedded concurrently by embed_many()
            max_text_length: Characters kept after preprocessing
            cache: Optional embedding cache
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self.batch_size = batch_size
        self.max_text_length = max_text_length
        self.cache = cache
        self.metrics = MetricsCollector()
        self._dimension = dimension
        self._dimension_lock = threading.Lock()

        logger.info(
            "EmbeddingEngine initialized",
            provider=type(provider).__name__,
            dimension=dimension,
            timeout_seconds=timeout_seconds,
            cache="enabled" if cache is not None else "disabled",
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, provider: Optional[EmbeddingProvider] = None
    ) -> "EmbeddingEngine":
        """Builds the engine (and, unless given, the provider) from configuration."""
        from cairn.embeddings import create_provider

        if provider is None:
            provider = create_provider(settings)

        cache = EmbeddingCache(
            max_size=settings.get("embeddings.cache_size", 10000),
            ttl_seconds=settings.get("embeddings.cache_ttl_seconds", 3600),
            namespace=f"{type(provider).__name__}:{settings.get('embeddings.model', '')}",
        )
        return cls(
            provider=provider,
            timeout_seconds=settings.get("embeddings.timeout_seconds", 30.0),
            batch_size=settings.get("embeddings.batch_size", 100),
            max_text_length=settings.get("embeddings.max_text_length", 8000),
            cache=cache,
        )

    @property
    def dimension(self) -> Optional[int]:
        """Pinned vector length, None until the first successful call."""
        return self._dimension

    def preprocess_text(self, text: str) -> str:
        """
        Trims, collapses whitespace and truncates to max_text_length.

        Raises:
            ValidationError: If nothing is left
        """
        if not isinstance(text, str):
            raise ValidationError("Text must be a string", context={"type": type(text).__name__})

        processed = _WHITESPACE_RE.sub(" ", text).strip()
        if not processed:
            raise ValidationError("Text must be a non-empty string")

        if len(processed) > self.max_text_length:
            processed = processed[: self.max_text_length]
        return processed

    async def embed(self, text: str) -> EmbeddingVector:
        """
        Embeds one text.

        Raises:
            ValidationError: Empty text
            EmbeddingTimeoutError: Provider slower than timeout_seconds
            EmbeddingUnavailableError: Provider failure or unusable vector
            DimensionMismatchError: Provider changed its output dimension
        """
        processed = self.preprocess_text(text)

        if self.cache is not None:
            cached = self.cache.get(processed)
            if cached is not None:
                self.metrics.increment("embeddings.cache_hits")
                return cached
            self.metrics.increment("embeddings.cache_misses")

        start = time.perf_counter()
        try:
            raw = await asyncio.wait_for(self.provider.embed(processed), self.timeout_seconds)
        except asyncio.TimeoutError as e:
            self.metrics.increment("embeddings.timeouts")
            logger.warning("Embedding provider timed out", timeout_seconds=self.timeout_seconds)
            raise EmbeddingTimeoutError(
                f"Embedding provider did not answer within {self.timeout_seconds}s",
                context={"timeout_seconds": self.timeout_seconds},
                cause=e,
            )
        except EmbeddingUnavailableError:
            self.metrics.increment("embeddings.errors")
            raise
        except Exception as e:
            self.metrics.increment("embeddings.errors")
            logger.error("Embedding provider failed", error=str(e), error_type=type(e).__name__)
            raise EmbeddingUnavailableError(
                "Embedding provider failed", context={"error": str(e)}, cause=e
            )

        vector = self._accept(raw)
        latency_ms = (time.perf_counter() - start) * 1000
        self.metrics.increment("embeddings.generated")
        self.metrics.increment("embeddings.total_latency_ms", latency_ms)

        if self.cache is not None:
            self.cache.set(processed, vector)

        return vector

    def _accept(self, raw: Union[Sequence[float], EmbeddingVector]) -> EmbeddingVector:
        """Validates the provider output and pins or checks the dimension."""
        try:
            vector = raw if isinstance(raw, EmbeddingVector) else EmbeddingVector(raw)
        except InvalidVectorError as e:
            self.metrics.increment("embeddings.errors")
            raise EmbeddingUnavailableError(
                f"Embedding provider returned an unusable vector: {e.message}", cause=e
            )

        with self._dimension_lock:
            if self._dimension is None:
                self._dimension = vector.dimension
                logger.info("Embedding dimension discovered", dimension=vector.dimension)
            elif vector.dimension != self._dimension:
                raise DimensionMismatchError(self._dimension, vector.dimension)

        return vector

    async def embed_many(
        self, texts: Sequence[str], return_exceptions: bool = False
    ) -> List[Union[EmbeddingVector, CairnError]]:
        """
        Embeds texts in batches of batch_size, each batch concurrently.

        Args:
            texts: Texts to embed
            return_exceptions: Put per-text CairnErrors in the output instead
                of raising the first one

        Returns:
            One entry per input text, in input order
        """
        results: List[Union[EmbeddingVector, CairnError]] = []

        for i in range(0, len(texts), self.batch_size):
            batch = texts[i : i + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.embed(text) for text in batch), return_exceptions=True
            )
            for outcome in outcomes:
                if isinstance(outcome, CairnError):
                    if not return_exceptions:
                        raise outcome
                    results.append(outcome)
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    results.append(outcome)

        logger.debug("Batch embedding completed", texts=len(texts), batch_size=self.batch_size)
        return results

    def get_stats(self) -> dict:
        metrics = self.metrics.get_metrics()
        generated = metrics.get("embeddings.generated", 0)
        return {
            "dimension": self._dimension,
            "generated": int(generated),
            "errors": int(metrics.get("embeddings.errors", 0)),
            "timeouts": int(metrics.get("embeddings.timeouts", 0)),
            "cache_hits": int(metrics.get("embeddings.cache_hits", 0)),
            "cache_misses": int(metrics.get("embeddings.cache_misses", 0)),
            "average_latency_ms": (
                metrics.get("embeddings.total_latency_ms", 0) / generated if generated else 0.0
            ),
            "cache": self.cache.get_stats() if self.cache is not None else None,
        }

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    async def aclose(self) -> None:
        """Releases provider resources (HTTP sessions)."""
        close = getattr(self.provider, "aclose", None)
        if close is not None:
            await close()
