"""
CAIRN core module.

Exports the fundamental engine components.
"""

# Configuration
from cairn.core.secure_config import Settings, ConfigValidator

# Exceptions
from cairn.core.exceptions import (
    CairnError,
    ConfigurationError,
    ValidationError,
    NotFoundError,
    DimensionMismatchError,
    InvalidVectorError,
    EmptyQueryError,
    UnknownStrategyError,
    ExternalServiceError,
    EmbeddingUnavailableError,
    EmbeddingTimeoutError,
    CacheCorruptionError,
)

# Logging
from cairn.core.logging import (
    AsyncLogger,
    SensitiveDataMasker,
    PerformanceLogger,
    logger,  # Pre-configured global logger
)

# Tracing and metrics
from cairn.core.tracing import tracer, metrics, LocalTracer, MetricsCollector

# ID generator
from cairn.core.id_generator import IDGenerator, generate_id, is_valid_id

ID_LENGTH = 32  # Hex ID length

__all__ = [
    # Configuration
    "Settings",
    "ConfigValidator",
    # Exceptions
    "CairnError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "DimensionMismatchError",
    "InvalidVectorError",
    "EmptyQueryError",
    "UnknownStrategyError",
    "ExternalServiceError",
    "EmbeddingUnavailableError",
    "EmbeddingTimeoutError",
    "CacheCorruptionError",
    # Logging
    "AsyncLogger",
    "SensitiveDataMasker",
    "PerformanceLogger",
    "logger",
    # Tracing
    "tracer",
    "metrics",
    "LocalTracer",
    "MetricsCollector",
    # IDs
    "IDGenerator",
    "generate_id",
    "is_valid_id",
    "ID_LENGTH",
]
