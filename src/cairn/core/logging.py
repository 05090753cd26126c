"""
Simple asynchronous logging for CAIRN.
"""

import os
import re
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern

import yaml
from loguru import logger as loguru_logger


def _read_logging_section() -> Dict[str, Any]:
    """Reads the ``logging`` section of ``.cairn`` without going through Settings."""
    config_path = Path(".cairn")
    if not config_path.is_file():
        return {}
    try:
        with open(config_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return {}
    section = config.get("logging", {}) if isinstance(config, dict) else {}
    return section if isinstance(section, dict) else {}


class AsyncLogger:
    """
    Asynchronous logger with a flat format.

    Format: timestamp | level | component | message
    No emojis, no nested JSON, the caller never blocks on I/O.
    """

    # Single file sink shared by every instance
    _handler_id: Optional[int] = None

    def __init__(self, component: str, debug_mode: bool = False):
        self.component = component
        self.debug_mode = debug_mode
        self._setup_async_handler()

    def _setup_async_handler(self):
        """
        Adds the enqueued file sink once per process.

        Without a configured log file, loguru's default stderr sink is kept.
        """
        if AsyncLogger._handler_id is not None:
            return

        section = _read_logging_section()
        log_file = os.getenv("CAIRN_LOG_FILE") or section.get("file")
        if not log_file:
            return

        AsyncLogger._handler_id = loguru_logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[component]} | {message}",
            level=str(os.getenv("CAIRN_LOG_LEVEL") or section.get("level", "INFO")).upper(),
            rotation="10 MB",
            compression="zip",
            enqueue=True,
        )

    def log(self, level: str, message: str, **context):
        """Queues the record; the loguru worker writes it in the background."""
        loguru_logger.bind(component=self.component, **context).log(level, message)

    def debug(self, message: str, **context):
        """Log at DEBUG level."""
        self.log("DEBUG", message, **context)

    def info(self, message: str, **context):
        """Log at INFO level."""
        self.log("INFO", message, **context)

    def warning(self, message: str, **context):
        """Log at WARNING level."""
        self.log("WARNING", message, **context)

    def error(self, message: str, include_trace: Optional[bool] = None, **context):
        """
        Log at ERROR level with an optional stack trace.

        Args:
            message: Error message
            include_trace: Attach the current traceback (None = follow debug_mode)
            **context: Additional context
        """
        should_include_trace = include_trace if include_trace is not None else self.debug_mode

        if should_include_trace:
            import traceback

            context["stack_trace"] = traceback.format_exc()

        self.log("ERROR", message, **context)


class SensitiveDataMasker:
    """
    Masks sensitive data before it reaches the logs.

    - Tokens and API keys
    - Absolute paths (only the basename is kept)
    - Long hashes (first 8 chars kept)
    """

    def __init__(self, patterns: Optional[List[Pattern]] = None):
        self.patterns = patterns or []

    def mask(self, text: str) -> str:
        """
        Masks sensitive data.

        Example:
        - "token=abc123def456" -> "token=***"
        - "/home/user/project/notes.md" -> ".../notes.md"
        """
        masked = text

        # key=value pairs first, before the long-token rule swallows the value
        masked = re.sub(
            r'(api_key|token|secret|password|key)=[a-zA-Z0-9]{8,}',
            r'\1=***',
            masked,
            flags=re.IGNORECASE,
        )

        masked = re.sub(r'\b([a-f0-9]{8})[a-f0-9]{8,}\b', r'\1...', masked)
        masked = re.sub(r'\b[a-zA-Z0-9]{20,}\b', '***TOKEN***', masked)
        masked = re.sub(r'/[a-zA-Z0-9_/.-]{10,}/([a-zA-Z0-9_.-]+)', r'.../\1', masked)

        for pattern in self.patterns:
            masked = pattern.sub("***", masked)

        return masked


class PerformanceLogger:
    """Logger specialised in operation durations."""

    def __init__(self):
        self.logger = AsyncLogger("performance")

    @contextmanager
    def measure(self, operation: str, **context):
        """
        Context manager that logs how long the wrapped block took.

        Usage:
        ```
        with perf_logger.measure("ingest", chunks=len(chunks)):
            await retriever.ingest(chunks)
        ```
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start
            self.logger.info(
                "Operation completed", operation=operation, duration_ms=duration * 1000, **context
            )


def _get_debug_mode() -> bool:
    """Reads debug_mode from .cairn, falling back to the CAIRN_DEBUG env var."""
    debug_mode = _read_logging_section().get("debug_mode")
    if isinstance(debug_mode, bool):
        return debug_mode
    return os.getenv("CAIRN_DEBUG", "false").lower() == "true"


logger = AsyncLogger("cairn", debug_mode=_get_debug_mode())
