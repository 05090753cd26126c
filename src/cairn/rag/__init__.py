"""
RAG (Retrieval-Augmented Generation) module for CAIRN.

Retrieves ranked, deduplicated and length-bounded passages to ground a
downstream generation step.
"""

# Retrieval exports
from cairn.rag.retrieval import (
    HybridSearch,
    VectorIndex,
    KeywordIndex,
    QueryCache,
    Reranker,
    DiversityFilter,
    ContextAssembler,
)
from cairn.rag.retriever import KnowledgeRetriever

__all__ = [
    "KnowledgeRetriever",
    # Retrieval
    "HybridSearch",
    "VectorIndex",
    "KeywordIndex",
    "QueryCache",
    "Reranker",
    "DiversityFilter",
    "ContextAssembler",
]
