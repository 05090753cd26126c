"""
Local observability.

Spans and counters for debugging the engine, without external telemetry.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from cairn.core.id_generator import generate_id
from cairn.core.logging import AsyncLogger


class LocalTracer:
    """
    Simple local tracing.

    LocalTracer vs MetricsCollector:
    - LocalTracer: one span per operation, with duration and attributes.
      Answers "why was this retrieval slow".
    - MetricsCollector: aggregated counters and gauges without per-operation
      context. Answers "how is the engine doing overall".
    """

    def __init__(self, service_name: str = "cairn") -> None:
        self.service_name = service_name
        self.logger = AsyncLogger("tracing")

    @contextmanager
    def span(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[None]:
        """
        Creates a span around an operation.

        Usage:
        ```
        with tracer.span("vector_search", {"k": 10}):
            results = index.search(vector, k=10)
        ```
        """
        span_id = generate_id()
        start = time.perf_counter()

        try:
            yield
        finally:
            duration = time.perf_counter() - start
            self.logger.debug(
                f"Span completed: {name}",
                span_id=span_id,
                duration_ms=duration * 1000,
                **(attributes or {}),
            )


class MetricsCollector:
    """
    Local metrics collector.

    Safe to share between threads; every update takes a short lock.
    """

    def __init__(self) -> None:
        self.metrics: Dict[str, float] = {}
        self._lock = threading.Lock()

    def increment(self, name: str, value: float = 1.0) -> None:
        """Increments counter."""
        with self._lock:
            self.metrics[name] = self.metrics.get(name, 0) + value

    def gauge(self, name: str, value: float) -> None:
        """Sets current value."""
        with self._lock:
            self.metrics[name] = value

    def record(self, name: str, value: float) -> None:
        """Records a measurement (alias of gauge)."""
        self.gauge(name, value)

    def get(self, name: str, default: float = 0) -> float:
        with self._lock:
            return self.metrics.get(name, default)

    def get_metrics(self) -> Dict[str, float]:
        """Gets all metrics."""
        with self._lock:
            return self.metrics.copy()

    def reset(self) -> None:
        with self._lock:
            self.metrics.clear()


# Global instances
tracer = LocalTracer()
metrics = MetricsCollector()
