"""
CAIRN - Knowledge Retrieval Engine.

Hybrid semantic and keyword retrieval over text chunks, with re-ranking,
diversity filtering, context packing and result caching.
"""

from cairn._version import __version__, __version_info__

# Core components
from cairn.core import (
    logger,
    Settings,
    generate_id,
    CairnError,
    ValidationError,
    ConfigurationError,
    NotFoundError,
    ExternalServiceError,
    EmbeddingUnavailableError,
    EmbeddingTimeoutError,
    EmptyQueryError,
)

# Models
from cairn.models import (
    Chunk,
    SearchStrategy,
    SearchResult,
    ContextBlock,
    RetrievalOptions,
    RetrievalResponse,
    IngestResult,
    RemovalResult,
)

# Embeddings
from cairn.embeddings import (
    EmbeddingEngine,
    EmbeddingProvider,
    HashingEmbeddings,
    OllamaEmbeddings,
)

# Engine
from cairn.rag import KnowledgeRetriever


__all__ = [
    # Version info
    "__version__",
    "__version_info__",
    # Core
    "logger",
    "Settings",
    "generate_id",
    # Exceptions
    "CairnError",
    "ValidationError",
    "ConfigurationError",
    "NotFoundError",
    "ExternalServiceError",
    "EmbeddingUnavailableError",
    "EmbeddingTimeoutError",
    "EmptyQueryError",
    # Models
    "Chunk",
    "SearchStrategy",
    "SearchResult",
    "ContextBlock",
    "RetrievalOptions",
    "RetrievalResponse",
    "IngestResult",
    "RemovalResult",
    # Embeddings
    "EmbeddingEngine",
    "EmbeddingProvider",
    "HashingEmbeddings",
    "OllamaEmbeddings",
    # Engine
    "KnowledgeRetriever",
]
