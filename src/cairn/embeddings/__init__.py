"""
Embeddings module for CAIRN.

Turns text into vectors through a pluggable provider: Ollama for real
models, feature hashing for offline runs and tests.
"""

from cairn.core.exceptions import ConfigurationError
from cairn.core.logging import logger
from cairn.core.secure_config import Settings

from cairn.embeddings.types import EmbeddingVector, EmbeddingProvider, to_array
from cairn.embeddings.cache import EmbeddingCache, CacheEntry, CacheStats
from cairn.embeddings.hashing import HashingEmbeddings
from cairn.embeddings.ollama import OllamaEmbeddings
from cairn.embeddings.engine import EmbeddingEngine


def create_provider(settings: Settings) -> EmbeddingProvider:
    """Builds the provider named by ``embeddings.provider``.

    Raises:
        ConfigurationError: Unknown provider name
    """
    name = settings.get("embeddings.provider")

    if name == "hashing":
        provider: EmbeddingProvider = HashingEmbeddings(
            dimension=settings.get("embeddings.dimension", 384)
        )
    elif name == "ollama":
        provider = OllamaEmbeddings(
            base_url=settings.get("embeddings.base_url", "http://localhost:11434"),
            model=settings.get("embeddings.model", "nomic-embed-text"),
            timeout_seconds=settings.get("embeddings.timeout_seconds", 30.0),
        )
    else:
        raise ConfigurationError(f"Unsupported embeddings provider: {name}")

    logger.info("Embedding provider created", provider=name)
    return provider


__all__ = [
    "EmbeddingVector",
    "EmbeddingProvider",
    "to_array",
    "EmbeddingCache",
    "CacheEntry",
    "CacheStats",
    "HashingEmbeddings",
    "OllamaEmbeddings",
    "EmbeddingEngine",
    "create_provider",
]
