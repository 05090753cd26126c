"""
Hybrid search combining semantic (70%) and keyword (30%) signals.

Picks a strategy for each query, runs the index searches it needs and fuses
their scores. Embedding failures either propagate or, when allowed, fall
back to keyword-only search with the response marked as degraded.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from cairn.core.exceptions import EmbeddingUnavailableError
from cairn.core.logging import logger
from cairn.core.secure_config import Settings
from cairn.core.tracing import MetricsCollector, tracer
from cairn.embeddings.engine import EmbeddingEngine
from cairn.models.retrieval import SearchResult, SearchSource, SearchStrategy, parse_strategy
from cairn.rag.retrieval.keyword_index import KeywordIndex
from cairn.rag.retrieval.vector_index import SearchIndex


DEFAULT_SPECIFIC_TERMS = ("function", "class", "method", "variable", "code", "programming")


class StrategySelector:
    """
    Chooses a strategy from the shape of the query.

    - Short query (<= keyword_max_tokens words) naming a specific term: keyword
    - Long query (> semantic_min_tokens words): semantic
    - Anything else: hybrid
    """

    def __init__(
        self,
        specific_terms: Iterable[str] = DEFAULT_SPECIFIC_TERMS,
        keyword_max_tokens: int = 3,
        semantic_min_tokens: int = 10,
    ):
        terms = [term for term in specific_terms if term]
        self.keyword_max_tokens = keyword_max_tokens
        self.semantic_min_tokens = semantic_min_tokens
        self._specific_re: Optional[re.Pattern] = (
            re.compile(r"\b(?:" + "|".join(re.escape(t) for t in terms) + r")\b", re.IGNORECASE)
            if terms
            else None
        )

    def has_specific_terms(self, query: str) -> bool:
        return bool(self._specific_re and self._specific_re.search(query))

    def select(self, query: str, requested: Optional[object] = None) -> SearchStrategy:
        """An explicit strategy always wins over the heuristic."""
        if requested is not None:
            return parse_strategy(requested)

        token_count = len(query.split())
        if token_count <= self.keyword_max_tokens and self.has_specific_terms(query):
            return SearchStrategy.KEYWORD
        if token_count > self.semantic_min_tokens:
            return SearchStrategy.SEMANTIC
        return SearchStrategy.HYBRID


@dataclass
class SearchOutcome:
    """Candidates of one search plus whether it ran degraded."""

    results: List[SearchResult] = field(default_factory=list)
    degraded: bool = False


class HybridSearch:
    """
    Runs semantic, keyword or hybrid search over the two indexes.

    Hybrid fetches ceil(semantic_fetch_ratio * limit) semantic and
    ceil(keyword_fetch_ratio * limit) keyword candidates, merges them by chunk
    id and weights their scores.
    """

    def __init__(
        self,
        vector_index: SearchIndex,
        keyword_index: KeywordIndex,
        embeddings: EmbeddingEngine,
        semantic_weight: float = 0.7,
        keyword_weight: float = 0.3,
        semantic_fetch_ratio: float = 0.7,
        keyword_fetch_ratio: float = 0.5,
        allow_degraded: bool = False,
    ):
        """
        Initialize hybrid search.

        Args:
            vector_index: Index for semantic search
            keyword_index: Index for keyword search
            embeddings: Engine embedding the query text
            semantic_weight: Weight for semantic results (default 0.7)
            keyword_weight: Weight for keyword results (default 0.3)
            semantic_fetch_ratio: Share of the limit fetched semantically
            keyword_fetch_ratio: Share of the limit fetched by keyword
            allow_degraded: Fall back to keyword search on embedding failure
        """
        self.vector_index = vector_index
        self.keyword_index = keyword_index
        self.embeddings = embeddings
        self.semantic_weight = semantic_weight
        self.keyword_weight = keyword_weight
        self.semantic_fetch_ratio = semantic_fetch_ratio
        self.keyword_fetch_ratio = keyword_fetch_ratio
        self.allow_degraded = allow_degraded
        self.metrics = MetricsCollector()

        # Ensure weights sum to 1.0
        total_weight = semantic_weight + keyword_weight
        if total_weight <= 0:
            raise ValueError("semantic_weight and keyword_weight cannot both be zero")
        if abs(total_weight - 1.0) > 0.001:
            logger.warning("Weights don't sum to 1.0, normalizing", total_weight=total_weight)
            self.semantic_weight = semantic_weight / total_weight
            self.keyword_weight = keyword_weight / total_weight

        logger.info(
            "HybridSearch initialized",
            semantic_weight=self.semantic_weight,
            keyword_weight=self.keyword_weight,
            allow_degraded=allow_degraded,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        vector_index: SearchIndex,
        keyword_index: KeywordIndex,
        embeddings: EmbeddingEngine,
    ) -> "HybridSearch":
        return cls(
            vector_index=vector_index,
            keyword_index=keyword_index,
            embeddings=embeddings,
            semantic_weight=settings.get("retrieval.hybrid.semantic_weight", 0.7),
            keyword_weight=settings.get("retrieval.hybrid.keyword_weight", 0.3),
            semantic_fetch_ratio=settings.get("retrieval.hybrid.semantic_fetch_ratio", 0.7),
            keyword_fetch_ratio=settings.get("retrieval.hybrid.keyword_fetch_ratio", 0.5),
            allow_degraded=settings.get("retrieval.allow_degraded_search", False),
        )

    async def search(
        self,
        query: str,
        strategy: SearchStrategy,
        limit: int,
        threshold: Optional[float] = None,
    ) -> SearchOutcome:
        """
        Candidates for a query with the given strategy.

        Args:
            query: Normalized query text
            strategy: Strategy to run
            limit: Final number of results the caller wants
            threshold: Minimum semantic similarity

        Raises:
            EmbeddingUnavailableError: Embedding failed and degraded search
                is not allowed (EmbeddingTimeoutError for timeouts)
        """
        self.metrics.increment(f"search.{strategy.value}")

        if strategy is SearchStrategy.KEYWORD:
            return SearchOutcome(results=self.keyword_search(query, limit))

        try:
            if strategy is SearchStrategy.SEMANTIC:
                # 2x limit: spare candidates for filters and diversity
                results = await self.semantic_search(query, limit * 2, threshold)
            else:
                results = await self.hybrid_search(query, limit, threshold)
        except EmbeddingUnavailableError as e:
            if not self.allow_degraded:
                raise
            self.metrics.increment("search.degraded")
            logger.warning(
                "Embedding unavailable, falling back to keyword search",
                strategy=strategy.value,
                error=e.message,
                error_code=e.code,
            )
            return SearchOutcome(results=self.keyword_search(query, limit), degraded=True)

        return SearchOutcome(results=results)

    async def semantic_search(
        self, query: str, k: int, threshold: Optional[float] = None
    ) -> List[SearchResult]:
        query_vector = await self.embeddings.embed(query)
        with tracer.span("semantic_search", {"k": k}):
            results = self.vector_index.search(query_vector, k, threshold)
        logger.debug("Semantic search completed", query=query[:50], k=k, results=len(results))
        return results

    def keyword_search(self, query: str, k: int) -> List[SearchResult]:
        with tracer.span("keyword_search", {"k": k}):
            results = self.keyword_index.search(query, k)
        logger.debug("Keyword search completed", query=query[:50], k=k, results=len(results))
        return results

    async def hybrid_search(
        self, query: str, limit: int, threshold: Optional[float] = None
    ) -> List[SearchResult]:
        semantic_k = math.ceil(self.semantic_fetch_ratio * limit)
        keyword_k = math.ceil(self.keyword_fetch_ratio * limit)

        semantic_results = await self.semantic_search(query, semantic_k, threshold)
        keyword_results = self.keyword_search(query, keyword_k)

        combined = self.combine_results(semantic_results, keyword_results)[:limit]

        logger.debug(
            "Hybrid search completed",
            query=query[:50],
            semantic=len(semantic_results),
            keyword=len(keyword_results),
            returned=len(combined),
        )
        return combined

    def combine_results(
        self, semantic_results: List[SearchResult], keyword_results: List[SearchResult]
    ) -> List[SearchResult]:
        """
        Merge both result lists by chunk id with weighted scores.

        A chunk found by both gets semantic_weight * s + keyword_weight * k, a
        chunk found by one gets that signal's weighted score. Every merged
        result has source "hybrid".
        Semantic results precede keyword-only ones on equal scores.
        """
        keyword_by_id: Dict[str, SearchResult] = {r.chunk_id: r for r in keyword_results}
        combined: Dict[str, SearchResult] = {}

        for result in semantic_results:
            if result.chunk_id in combined:
                continue
            keyword_match = keyword_by_id.get(result.chunk_id)
            if keyword_match is not None:
                score = (
                    self.semantic_weight * result.score
                    + self.keyword_weight * keyword_match.score
                )
                combined[result.chunk_id] = result.model_copy(
                    update={"score": float(score), "source": SearchSource.HYBRID}
                )
            else:
                combined[result.chunk_id] = result.model_copy(
                    update={
                        "score": float(result.score * self.semantic_weight),
                        "source": SearchSource.HYBRID,
                    }
                )

        for result in keyword_results:
            if result.chunk_id not in combined:
                combined[result.chunk_id] = result.model_copy(
                    update={
                        "score": float(result.score * self.keyword_weight),
                        "source": SearchSource.HYBRID,
                    }
                )

        return sorted(combined.values(), key=lambda r: r.score, reverse=True)

    def get_stats(self) -> Dict[str, int]:
        metrics = self.metrics.get_metrics()
        return {
            "semantic_searches": int(metrics.get("search.semantic", 0)),
            "keyword_searches": int(metrics.get("search.keyword", 0)),
            "hybrid_searches": int(metrics.get("search.hybrid", 0)),
            "degraded_searches": int(metrics.get("search.degraded", 0)),
        }
