"""
Configuration for CAIRN.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union, cast

import yaml

from cairn.core.exceptions import ConfigurationError
from cairn.core.logging import logger


SUPPORTED_METRICS = ("cosine", "dot", "euclidean")
SUPPORTED_PROVIDERS = ("ollama", "hashing")
SUPPORTED_STRATEGIES = ("semantic", "keyword", "hybrid")
CONFIG_SECTIONS = (
    "logging",
    "retrieval",
    "retrieval.hybrid",
    "cache",
    "vector_index",
    "embeddings",
)

DEFAULT_CONFIG: Dict[str, Any] = {
    "version": "1.0",
    "logging": {"level": "INFO", "debug_mode": False},
    "retrieval": {
        "default_limit": 10,
        "max_limit": 100,
        "similarity_threshold": 0.7,
        "diversity_threshold": 0.8,
        "enable_diversity": True,
        "enable_reranking": True,
        "max_context_length": 4000,
        "max_query_length": 1000,
        "allow_degraded_search": False,
        "query_expansion": False,
        "query_rewriting": False,
        "hybrid": {
            "semantic_weight": 0.7,
            "keyword_weight": 0.3,
            "semantic_fetch_ratio": 0.7,
            "keyword_fetch_ratio": 0.5,
        },
        "strategy": {
            "keyword_max_tokens": 3,
            "semantic_min_tokens": 10,
            "specific_terms": [
                "function",
                "class",
                "method",
                "variable",
                "code",
                "programming",
            ],
        },
        "rerank": {
            "exact_match_boost": 1.2,
            "term_coverage_boost": 0.3,
        },
    },
    "cache": {
        "enabled": True,
        "max_size": 1000,
        "ttl_seconds": 3600,
    },
    "vector_index": {
        "metric": "cosine",
    },
    "embeddings": {
        "provider": "hashing",
        "dimension": 384,
        "model": "nomic-embed-text",
        "base_url": "http://localhost:11434",
        "timeout_seconds": 30.0,
        "batch_size": 100,
        "max_text_length": 8000,
        "cache_size": 10000,
        "cache_ttl_seconds": 3600,
    },
}


class ConfigValidator:
    """
    Configuration validator.

    Checks types and ranges of the values the engine relies on. A bad value
    is a programmer error and fails at construction, not at query time.
    """

    def validate_config(self, config: Dict[str, Any]) -> None:
        for section in CONFIG_SECTIONS:
            self._require_section(config, section)

        retrieval = config["retrieval"]
        hybrid = retrieval["hybrid"]
        cache = config["cache"]
        embeddings = config["embeddings"]

        for key in ("default_limit", "max_limit", "max_context_length", "max_query_length"):
            self._require_positive_int(f"retrieval.{key}", retrieval.get(key))
        if retrieval["default_limit"] > retrieval["max_limit"]:
            raise ConfigurationError(
                "retrieval.default_limit cannot exceed retrieval.max_limit",
                context={
                    "default_limit": retrieval["default_limit"],
                    "max_limit": retrieval["max_limit"],
                },
            )

        self._require_range(
            "retrieval.similarity_threshold", retrieval.get("similarity_threshold"), -1.0, 1.0
        )
        self._require_range(
            "retrieval.diversity_threshold", retrieval.get("diversity_threshold"), 0.0, 1.0
        )

        for key in (
            "semantic_weight",
            "keyword_weight",
            "semantic_fetch_ratio",
            "keyword_fetch_ratio",
        ):
            self._require_range(f"retrieval.hybrid.{key}", hybrid.get(key), 0.0, 1.0)
        if hybrid["semantic_weight"] + hybrid["keyword_weight"] <= 0:
            raise ConfigurationError("Hybrid weights cannot both be zero")

        self._require_positive_int("cache.max_size", cache.get("max_size"))
        self._require_positive_number("cache.ttl_seconds", cache.get("ttl_seconds"))

        metric = config["vector_index"].get("metric")
        if metric not in SUPPORTED_METRICS:
            logger.error("Invalid similarity metric", metric=metric, allowed=SUPPORTED_METRICS)
            raise ConfigurationError(
                f"Unsupported similarity metric: {metric}",
                context={"allowed": list(SUPPORTED_METRICS)},
            )

        provider = embeddings.get("provider")
        if provider not in SUPPORTED_PROVIDERS:
            logger.error("Invalid embeddings provider", provider=provider)
            raise ConfigurationError(
                f"Unsupported embeddings provider: {provider}",
                context={"allowed": list(SUPPORTED_PROVIDERS)},
            )
        for key in ("dimension", "batch_size", "max_text_length", "cache_size"):
            self._require_positive_int(f"embeddings.{key}", embeddings.get(key))
        self._require_positive_number(
            "embeddings.timeout_seconds", embeddings.get("timeout_seconds")
        )

    def _require_section(self, config: Dict[str, Any], name: str) -> None:
        section: Any = config
        for key in name.split("."):
            section = section.get(key) if isinstance(section, dict) else None
        if not isinstance(section, dict):
            logger.error("Invalid configuration section", section=name, value=section)
            raise ConfigurationError(
                f"{name} must be a mapping, got {section!r}", context={"section": name}
            )

    def _require_positive_int(self, name: str, value: Any) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            logger.error("Invalid integer setting", setting=name, value=value)
            raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")

    def _require_positive_number(self, name: str, value: Any) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            logger.error("Invalid numeric setting", setting=name, value=value)
            raise ConfigurationError(f"{name} must be a positive number, got {value!r}")

    def _require_range(self, name: str, value: Any, low: float, high: float) -> None:
        if (
            isinstance(value, bool)
            or not isinstance(value, (int, float))
            or not low <= value <= high
        ):
            logger.error("Setting out of range", setting=name, value=value, low=low, high=high)
            raise ConfigurationError(f"{name} must be within [{low}, {high}], got {value!r}")


class Settings:
    """
    Engine configuration.

    Layered:
    1. Default values
    2. .cairn YAML file (or an explicit path)
    3. Environment variables
    4. Explicit overrides (tests, embedding applications)
    """

    ENV_OVERRIDES = {
        "CAIRN_LOG_LEVEL": ("logging", "level"),
        "CAIRN_EMBEDDINGS_PROVIDER": ("embeddings", "provider"),
        "CAIRN_OLLAMA_URL": ("embeddings", "base_url"),
        "CAIRN_CACHE_TTL": ("cache", "ttl_seconds"),
    }

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.config_path = Path(config_path) if config_path else self._find_config_file()
        self.config = self._load_config(overrides)
        self.validator = ConfigValidator()
        self.validator.validate_config(self.config)
        logger.info(
            "Settings initialized",
            config_source=str(self.config_path) if self.config_path else "defaults",
        )

    def _find_config_file(self) -> Optional[Path]:
        """Looks for .cairn in the current directory."""
        local_config = Path.cwd() / ".cairn"
        if local_config.is_file():
            logger.info("Using local configuration", path=str(local_config))
            return local_config
        return None

    def _load_config(self, overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path is not None:
            if not self.config_path.is_file():
                raise ConfigurationError(
                    f"Configuration file not found: {self.config_path}",
                    context={"path": str(self.config_path)},
                )
            try:
                with open(self.config_path, encoding="utf-8") as f:
                    file_config = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.error(
                    "Error reading configuration file", file=str(self.config_path), error=str(e)
                )
                raise ConfigurationError(f"Error reading configuration file: {e}", cause=e)

            if file_config:
                if not isinstance(file_config, dict):
                    raise ConfigurationError(
                        "Configuration file must contain a mapping",
                        context={"path": str(self.config_path)},
                    )
                self._deep_merge(config, file_config)
                logger.debug("Config loaded from file", keys=list(file_config.keys()))

        for env_key, path_tuple in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_key)
            if env_value:
                value_to_set: Any = env_value
                if env_key == "CAIRN_CACHE_TTL":
                    try:
                        value_to_set = float(env_value)
                    except ValueError:
                        raise ConfigurationError(
                            f"{env_key} must be numeric, got {env_value!r}"
                        )
                self._set_nested(config, path_tuple, value_to_set)

        if overrides:
            for key, value in overrides.items():
                self._set_nested(config, tuple(key.split(".")), value)

        return config

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> None:
        """Deep merge of dictionaries."""
        for key, value in update.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(cast(Dict[str, Any], base[key]), cast(Dict[str, Any], value))
            else:
                base[key] = value

    def _set_nested(self, data: Dict[str, Any], path: tuple[str, ...], value: Any) -> None:
        """Set value at nested path."""
        current = data
        for key in path[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value; dotted paths such as "cache.ttl_seconds" are supported."""
        current: Any = self.config
        for part in key.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def require(self, key: str) -> Any:
        """
        Get required value or raise exception.

        Useful for values that must exist.
        """
        sentinel = object()
        value = self.get(key, sentinel)
        if value is sentinel:
            logger.error("Required config missing", key=key)
            raise ConfigurationError(f"Missing required config: {key}")
        return value

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.config)
