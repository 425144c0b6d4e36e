"""
ChatLLM Cache — Configuration Loader

Builds the typed configuration from environment variables, optionally seeded
from a .env file, and keeps one process-wide instance.

Unset variables fall back to the model defaults in schemas.py.
"""

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schemas import ChatCacheConfig

logger = logging.getLogger(__name__)

_config_instance: ChatCacheConfig | None = None


def _flag(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


# env var -> (section or None for top level, field, parser)
_ENV_FIELDS: dict[str, tuple[str | None, str, Callable[[str], Any]]] = {
    "ENVIRONMENT": (None, "environment", str.lower),
    "LOG_LEVEL": (None, "log_level", str.upper),
    "CACHE_TTL_MS": ("cache", "ttl_ms", int),
    "CACHE_MAX_MEMORY_BYTES": ("cache", "max_memory_bytes", int),
    "CACHE_MAX_DISK_BYTES": ("cache", "max_disk_bytes", int),
    "CACHE_MAX_MEMORY_ENTRY_BYTES": ("cache", "max_memory_entry_bytes", int),
    "CACHE_COMPRESSION_THRESHOLD": ("cache", "compression_threshold_bytes", int),
    "CACHE_SEMANTIC_THRESHOLD": ("cache", "semantic_threshold", float),
    "CACHE_STORAGE_DIR": ("cache", "storage_dir", str),
    "CACHE_PERSIST": ("cache", "persist", _flag),
    "CACHE_NAMESPACE": ("cache", "namespace", str),
    "ENABLE_METRICS": ("observability", "enable_metrics", _flag),
    "ENABLE_TRACING": ("observability", "enable_tracing", _flag),
    "JSON_LOGS": ("observability", "json_logs", _flag),
    "METRICS_PREFIX": ("observability", "metrics_prefix", str),
}


def _read_environment() -> dict[str, Any]:
    """Collect the set variables into the nested shape ChatCacheConfig expects."""
    config_dict: dict[str, Any] = {"cache": {}, "observability": {}}

    for name, (section, field, parse) in _ENV_FIELDS.items():
        raw = os.getenv(name)
        if raw is None:
            continue
        # Blank numeric settings mean "use the default"; blank flags mean off
        if raw.strip() == "" and parse in (int, float):
            continue
        try:
            value = parse(raw)
        except ValueError as e:
            raise ConfigurationError(
                f"Malformed value for {name}: {raw!r}",
                details={"variable": name, "value": raw, "error": str(e)},
            ) from e

        target = config_dict if section is None else config_dict[section]
        target[field] = value

    return config_dict


def load_config(
    env_file: str | None = None,
    reload: bool = False,
) -> ChatCacheConfig:
    """
    Load configuration from environment variables and a .env file.

    Args:
        env_file: Path to .env file (default: .env in current directory)
        reload: Force reload even if config already loaded

    Returns:
        Validated ChatCacheConfig instance

    Raises:
        ConfigurationError: If a variable is malformed or fails validation
    """
    global _config_instance

    if _config_instance is not None and not reload:
        return _config_instance

    env_path = Path(env_file) if env_file else Path.cwd() / ".env"
    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        load_dotenv(env_path, override=True)

    config_dict = _read_environment()

    try:
        _config_instance = ChatCacheConfig(**config_dict)
    except ValidationError as e:
        logger.error(
            f"Configuration validation failed: {e}",
            extra={"validation_errors": e.errors(include_url=False), "variables": sorted(_ENV_FIELDS)},
        )
        raise ConfigurationError(
            "Configuration validation failed. Check your CACHE_* environment variables.",
            details={"validation_errors": e.errors(include_url=False, include_context=False)},
        ) from e

    logger.info(
        f"Configuration loaded (environment: {_config_instance.environment})",
        extra={"environment": _config_instance.environment, "persist": _config_instance.cache.persist},
    )
    return _config_instance


def get_config() -> ChatCacheConfig:
    """Current configuration, loading it on first access."""
    if _config_instance is None:
        return load_config()
    return _config_instance


def reload_config(env_file: str | None = None) -> ChatCacheConfig:
    """Force a reload from the environment."""
    return load_config(env_file=env_file, reload=True)


def reset_config() -> None:
    """Drop the cached configuration instance (testing only)."""
    global _config_instance
    _config_instance = None
