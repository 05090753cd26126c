"""
Unified exception hierarchy for CAIRN.
Single source of the errors raised by the engine.

Propagation policy:
- Configuration and vector-shape errors are programmer errors: raised at the
  call site, never caught inside the engine.
- Embedding provider errors are operational: retryable by the caller, or
  absorbed by a degraded keyword-only search when configuration allows it.
- Cache anomalies never leave the cache.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from cairn.core.id_generator import generate_id
from cairn.core.utils.datetime_utils import format_iso, utc_now


class CairnError(Exception):
    """
    Base error of the CAIRN engine.

    Features:
    1. Structured serialisation
    2. Rich context
    3. Resolution suggestions
    4. Unique ID for tracking
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        self.id: str = generate_id()
        self.timestamp: datetime = utc_now()
        self.message: str = message
        self.code: str = code or self.__class__.__name__
        self.context: Dict[str, Any] = context or {}
        self.cause: Optional[Exception] = cause
        self.suggestions: List[str] = []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialises the error for a transport layer.

        Returns:
            {
                "error_id": "hex32chars",
                "code": "DimensionMismatchError",
                "message": "Vector has 3 dimensions, index expects 4",
                "timestamp": "2024-01-20T10:30:00Z",
                "context": {...}
            }
        """
        result: Dict[str, Any] = {
            "error_id": self.id,
            "code": self.code,
            "message": self.message,
            "timestamp": format_iso(self.timestamp),
            "context": self.context,
        }

        if self.cause:
            result["cause"] = {"type": type(self.cause).__name__, "message": str(self.cause)}

        if self.suggestions:
            result["suggestions"] = self.suggestions

        return result

    def add_suggestion(self, suggestion: str) -> None:
        """Adds a resolution hint, ignoring empty strings and duplicates."""
        if not suggestion or not isinstance(suggestion, str):
            return

        if suggestion not in self.suggestions:
            self.suggestions.append(suggestion)

    def is_retryable(self) -> bool:
        """Whether retrying the same call may succeed. Subclasses override."""
        return False


class ConfigurationError(CairnError):
    """Invalid engine configuration."""

    pass


class ValidationError(CairnError):
    """Invalid input handed to the engine."""

    pass


class NotFoundError(CairnError):
    """A requested resource does not exist."""

    pass


class DimensionMismatchError(ValidationError):
    """A vector's length differs from the index (or provider) dimension."""

    def __init__(self, expected: int, actual: int, **kwargs: Any) -> None:
        context = kwargs.pop("context", None) or {}
        context.update({"expected": expected, "actual": actual})
        super().__init__(
            f"Vector has {actual} dimensions, expected {expected}", context=context, **kwargs
        )
        self.expected = expected
        self.actual = actual


class InvalidVectorError(ValidationError):
    """A vector contains NaN/Inf values or is all zeros."""

    pass


class EmptyQueryError(ValidationError):
    """The query is empty after normalisation."""

    pass


class UnknownStrategyError(ValidationError):
    """A search strategy name that the coordinator does not know."""

    pass


class ExternalServiceError(CairnError):
    """
    Failure of an external collaborator.

    Tracking:
    - Service that failed
    - Time spent
    """

    def is_retryable(self) -> bool:
        """External service errors are generally retryable by the caller."""
        return True


class EmbeddingUnavailableError(ExternalServiceError):
    """The embedding provider failed or returned an unusable vector."""

    pass


class EmbeddingTimeoutError(EmbeddingUnavailableError):
    """The embedding provider did not answer within the configured timeout."""

    pass


class CacheCorruptionError(CairnError):
    """
    Internal invariant violation inside the query cache.

    Never surfaced to callers: the cache treats it as a miss.
    """

    pass


__all__ = [
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
]
