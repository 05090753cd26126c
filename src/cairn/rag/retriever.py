"""
Knowledge retriever.

Single entry point of the engine: ingests chunks into both indexes, answers
queries through the full pipeline and removes sources. Components are
composed directly; nothing is published on a bus.
"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from cairn.core.exceptions import CairnError, ValidationError
from cairn.core.logging import PerformanceLogger, logger
from cairn.core.secure_config import Settings
from cairn.core.tracing import MetricsCollector, tracer
from cairn.embeddings.engine import EmbeddingEngine
from cairn.embeddings.types import EmbeddingProvider, EmbeddingVector, to_array
from cairn.models.chunk import Chunk
from cairn.models.retrieval import (
    IngestFailure,
    IngestResult,
    RemovalResult,
    RetrievalMetadata,
    RetrievalOptions,
    RetrievalResponse,
)
from cairn.rag.retrieval.cache import QueryCache
from cairn.rag.retrieval.context import ContextAssembler
from cairn.rag.retrieval.diversity import DiversityFilter
from cairn.rag.retrieval.filters import SearchFilters
from cairn.rag.retrieval.hybrid_search import HybridSearch, SearchOutcome, StrategySelector
from cairn.rag.retrieval.keyword_index import KeywordIndex, tokenize
from cairn.rag.retrieval.query import QueryProcessor
from cairn.rag.retrieval.rerank import Reranker
from cairn.rag.retrieval.vector_index import SearchIndex, SimilarityMetric, VectorIndex


class KnowledgeRetriever:
    """
    Retrieval engine facade.

    Pipeline for retrieve():
    1. QueryProcessor normalizes the query (EmptyQueryError before any search)
    2. QueryCache lookup
    3. StrategySelector picks semantic, keyword or hybrid
    4. HybridSearch produces candidates (keyword fallback if degraded)
    5. Metadata filters, Reranker, DiversityFilter, limit
    6. ContextAssembler packs the context block
    7. Response cached (never when degraded) and returned

    Ingest and removal are serialized by one writer lock so both indexes
    always hold the same chunks. Searches take no lock.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        embeddings: Optional[EmbeddingEngine] = None,
        provider: Optional[EmbeddingProvider] = None,
        vector_index: Optional[SearchIndex] = None,
        keyword_index: Optional[KeywordIndex] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            settings: Configuration (default: Settings() from .cairn/env)
            embeddings: Ready embedding engine; built from settings if omitted
            provider: Provider for the engine built from settings
            vector_index: Any SearchIndex; exact VectorIndex if omitted
            keyword_index: Keyword index; a fresh one if omitted
            clock: Time source of the query cache
        """
        self.settings = settings or Settings()
        config = self.settings

        self.embeddings = embeddings or EmbeddingEngine.from_settings(config, provider)
        self.vector_index: SearchIndex = vector_index or VectorIndex(
            metric=SimilarityMetric(config.get("vector_index.metric", "cosine"))
        )
        self.keyword_index = keyword_index or KeywordIndex()

        self.default_limit: int = config.get("retrieval.default_limit", 10)
        self.max_limit: int = config.get("retrieval.max_limit", 100)
        self.similarity_threshold: float = config.get("retrieval.similarity_threshold", 0.7)
        self.enable_diversity: bool = config.get("retrieval.enable_diversity", True)
        self.enable_reranking: bool = config.get("retrieval.enable_reranking", True)
        self.max_context_length: int = config.get("retrieval.max_context_length", 4000)

        self.query_processor = QueryProcessor.from_settings(config)
        self.selector = StrategySelector(
            specific_terms=config.get("retrieval.strategy.specific_terms", []),
            keyword_max_tokens=config.get("retrieval.strategy.keyword_max_tokens", 3),
            semantic_min_tokens=config.get("retrieval.strategy.semantic_min_tokens", 10),
        )
        self.hybrid_search = HybridSearch.from_settings(
            config, self.vector_index, self.keyword_index, self.embeddings
        )
        self.filters = SearchFilters()
        self.reranker = Reranker(
            exact_match_boost=config.get("retrieval.rerank.exact_match_boost", 1.2),
            term_coverage_boost=config.get("retrieval.rerank.term_coverage_boost", 0.3),
        )
        self.diversity = DiversityFilter(config.get("retrieval.diversity_threshold", 0.8))
        self.assembler = ContextAssembler(self.max_context_length)

        self.cache: Optional[QueryCache] = None
        if config.get("cache.enabled", True):
            self.cache = QueryCache(
                max_size=config.get("cache.max_size", 1000),
                ttl_seconds=config.get("cache.ttl_seconds", 3600),
                clock=clock,
            )

        self.metrics = MetricsCollector()
        self._perf = PerformanceLogger()
        self._write_lock = threading.Lock()

        logger.info(
            "KnowledgeRetriever initialized",
            default_limit=self.default_limit,
            max_limit=self.max_limit,
            similarity_threshold=self.similarity_threshold,
            cache="enabled" if self.cache is not None else "disabled",
        )

    async def __aenter__(self) -> "KnowledgeRetriever":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ----- ingestion and removal -----

    async def ingest(self, chunks: Sequence[Chunk]) -> IngestResult:
        """
        Embeds and indexes chunks.

        Idempotent per chunk id: re-ingesting replaces the previous version.
        A chunk whose embedding fails is reported in ``failed`` and indexed
        nowhere; the rest of the batch still goes in.
        """
        if not chunks:
            return IngestResult()

        # Last occurrence wins within one batch
        unique = list({chunk.id: chunk for chunk in chunks}.values())

        with self._perf.measure("embed_chunks", chunks=len(unique)):
            outcomes = await self.embeddings.embed_many(
                [chunk.text for chunk in unique], return_exceptions=True
            )

        failed: List[IngestFailure] = []
        pairs: List[Tuple[Chunk, EmbeddingVector]] = []
        for chunk, outcome in zip(unique, outcomes):
            if isinstance(outcome, CairnError):
                failed.append(IngestFailure(chunk_id=chunk.id, reason=self._reason(outcome)))
                continue
            try:
                to_array(outcome, expected_dimension=self.vector_index.dimension)
            except ValidationError as e:
                failed.append(IngestFailure(chunk_id=chunk.id, reason=self._reason(e)))
                continue
            pairs.append((chunk, outcome))

        if pairs:
            with self._write_lock:
                self.vector_index.insert_many(pairs)
                self.keyword_index.insert_many([chunk for chunk, _ in pairs])
            self._invalidate_cache()

        self.metrics.increment("ingest.chunks", len(pairs))
        self.metrics.increment("ingest.failures", len(failed))

        if failed:
            logger.warning(
                "Some chunks could not be ingested",
                indexed=len(pairs),
                failed=len(failed),
                first_reason=failed[0].reason,
            )
        logger.info("Chunks ingested", indexed=len(pairs), failed=len(failed))

        return IngestResult(indexed=len(pairs), failed=failed)

    @staticmethod
    def _reason(error: CairnError) -> str:
        return f"{error.code}: {error.message}"

    def remove_by_source(self, source_id: str) -> RemovalResult:
        """Removes every chunk of a source from both indexes."""
        with self._write_lock:
            chunk_ids = self.keyword_index.chunk_ids_for_source(source_id)
            removed = self.vector_index.remove_many(chunk_ids)
            self.keyword_index.remove_many(chunk_ids)

        if chunk_ids:
            self._invalidate_cache()

        logger.info("Source removed", source_id=source_id, vectors_removed=removed)
        return RemovalResult(source_id=source_id, vectors_removed=removed)

    def clear_index(self) -> None:
        with self._write_lock:
            self.vector_index.clear()
            self.keyword_index.clear()
        self._invalidate_cache()
        logger.info("Indexes cleared")

    def _invalidate_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    # ----- retrieval -----

    async def retrieve(
        self, query: str, options: Optional[RetrievalOptions] = None
    ) -> RetrievalResponse:
        """
        Answers a query.

        Raises:
            EmptyQueryError: Query empty after normalization
            UnknownStrategyError: Unsupported strategy name
            EmbeddingUnavailableError: Embedding failed and degraded search
                is disabled (EmbeddingTimeoutError for timeouts)
        """
        start = time.perf_counter()
        options = options or RetrievalOptions()
        self.metrics.increment("queries.total")

        try:
            return await self._retrieve(query, options, start)
        except CairnError as e:
            self.metrics.increment("queries.errors")
            logger.error("Retrieval failed", error=e.message, error_code=e.code, query=query[:50])
            raise

    async def _retrieve(
        self, query: str, options: RetrievalOptions, start: float
    ) -> RetrievalResponse:
        processed = self.query_processor.process(query)

        limit = min(options.limit or self.default_limit, self.max_limit)
        threshold = (
            options.threshold if options.threshold is not None else self.similarity_threshold
        )
        diversity = options.diversity if options.diversity is not None else self.enable_diversity
        max_context_length = options.max_context_length or self.max_context_length

        cache_key = QueryCache.make_key(
            processed,
            limit,
            options.strategy.value if options.strategy is not None else "auto",
            threshold,
            max_context_length,
            diversity,
            options.filters,
        )

        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                self.metrics.increment("queries.cache_hits")
                logger.debug("Retrieved from cache", query=processed[:50])
                return cached.model_copy(
                    update={"metadata": cached.metadata.model_copy(update={"cached": True})}
                )
            self.metrics.increment("queries.cache_misses")

        strategy = self.selector.select(processed, options.strategy)

        with tracer.span("retrieve", {"strategy": strategy.value, "limit": limit}):
            if tokenize(processed):
                outcome = await self.hybrid_search.search(processed, strategy, limit, threshold)
            else:
                # No word characters to embed or match
                logger.debug("Query has no searchable terms", query=processed[:50])
                outcome = SearchOutcome()

            results = self.filters.apply(outcome.results, options.filters)
            if self.enable_reranking and len(results) > 1:
                results = self.reranker.rerank(processed, results)
                self.metrics.increment("queries.reranked")
            if diversity:
                results = self.diversity.apply(results)
            results = results[:limit]

            context = self.assembler.assemble(results, max_context_length)

        elapsed_ms = (time.perf_counter() - start) * 1000
        response = RetrievalResponse(
            query=processed,
            strategy=strategy,
            results=results,
            context=context,
            metadata=RetrievalMetadata(
                total_results=len(results),
                search_time_ms=elapsed_ms,
                degraded=outcome.degraded,
            ),
        )

        if self.cache is not None and not outcome.degraded:
            self.cache.put(cache_key, response)

        self._record_query(response)
        logger.debug(
            "Retrieved results",
            query=processed[:50],
            strategy=strategy.value,
            results=len(results),
            search_time_ms=round(elapsed_ms, 2),
        )
        return response

    def _record_query(self, response: RetrievalResponse) -> None:
        self.metrics.increment("queries.searched")
        self.metrics.increment("queries.total_latency_ms", response.metadata.search_time_ms)
        self.metrics.increment("queries.total_results", len(response.results))
        if response.results:
            average = sum(r.score for r in response.results) / len(response.results)
            self.metrics.increment("queries.with_results")
            self.metrics.increment("queries.total_relevance", average)

    # ----- statistics and lifecycle -----

    def get_stats(self) -> Dict[str, Any]:
        metrics = self.metrics.get_metrics()
        searched = metrics.get("queries.searched", 0)
        with_results = metrics.get("queries.with_results", 0)
        hits = metrics.get("queries.cache_hits", 0)
        misses = metrics.get("queries.cache_misses", 0)

        return {
            "total_queries": int(metrics.get("queries.total", 0)),
            "failed_queries": int(metrics.get("queries.errors", 0)),
            "cache_hits": int(hits),
            "cache_misses": int(misses),
            "cache_hit_rate": hits / (hits + misses) if hits + misses else 0.0,
            "reranked_queries": int(metrics.get("queries.reranked", 0)),
            "average_latency_ms": (
                metrics.get("queries.total_latency_ms", 0) / searched if searched else 0.0
            ),
            "average_relevance_score": (
                metrics.get("queries.total_relevance", 0) / with_results if with_results else 0.0
            ),
            "average_results_per_query": (
                metrics.get("queries.total_results", 0) / searched if searched else 0.0
            ),
            "ingested_chunks": int(metrics.get("ingest.chunks", 0)),
            "ingest_failures": int(metrics.get("ingest.failures", 0)),
            **self.hybrid_search.get_stats(),
            "vector_index": self.vector_index.get_stats(),
            "keyword_index": self.keyword_index.get_stats(),
            "query_cache": self.cache.get_stats() if self.cache is not None else None,
            "embeddings": self.embeddings.get_stats(),
        }

    def clear_cache(self) -> None:
        """Drops cached responses."""
        self._invalidate_cache()
        logger.info("Query cache cleared")

    async def aclose(self) -> None:
        """Clears the cache and releases provider resources."""
        self._invalidate_cache()
        await self.embeddings.aclose()
        logger.info("KnowledgeRetriever closed")
