"""
Data models of CAIRN.
"""

from cairn.models.base import CairnBaseModel, FrozenModel, StandardIdMixin
from cairn.models.chunk import Chunk, VectorEntry
from cairn.models.retrieval import (
    SearchStrategy,
    parse_strategy,
    SearchSource,
    SearchResult,
    ContextSource,
    ContextBlock,
    RetrievalMetadata,
    RetrievalResponse,
    RetrievalOptions,
    IngestFailure,
    IngestResult,
    RemovalResult,
)

__all__ = [
    # Base
    "CairnBaseModel",
    "FrozenModel",
    "StandardIdMixin",
    # Chunks
    "Chunk",
    "VectorEntry",
    # Retrieval
    "SearchStrategy",
    "parse_strategy",
    "SearchSource",
    "SearchResult",
    "ContextSource",
    "ContextBlock",
    "RetrievalMetadata",
    "RetrievalResponse",
    "RetrievalOptions",
    "IngestFailure",
    "IngestResult",
    "RemovalResult",
]
