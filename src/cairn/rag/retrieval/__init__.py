"""
Retrieval module for CAIRN.

Indexes, hybrid search (70% semantic + 30% keyword) and the stages that turn
candidates into a response: filters, re-ranking, diversity, context packing
and caching.
"""

from cairn.rag.retrieval.vector_index import VectorIndex, SearchIndex, SimilarityMetric
from cairn.rag.retrieval.keyword_index import KeywordIndex, tokenize
from cairn.rag.retrieval.cache import QueryCache, QueryCacheEntry
from cairn.rag.retrieval.hybrid_search import (
    HybridSearch,
    SearchOutcome,
    StrategySelector,
)
from cairn.rag.retrieval.rerank import Reranker
from cairn.rag.retrieval.diversity import DiversityFilter, jaccard_similarity
from cairn.rag.retrieval.context import ContextAssembler
from cairn.rag.retrieval.filters import SearchFilters
from cairn.rag.retrieval.query import QueryProcessor

__all__ = [
    # Indexes
    "VectorIndex",
    "SearchIndex",
    "SimilarityMetric",
    "KeywordIndex",
    "tokenize",
    # Cache
    "QueryCache",
    "QueryCacheEntry",
    # Search
    "HybridSearch",
    "SearchOutcome",
    "StrategySelector",
    # Post-processing
    "Reranker",
    "DiversityFilter",
    "jaccard_similarity",
    "ContextAssembler",
    "SearchFilters",
    # Query
    "QueryProcessor",
]
