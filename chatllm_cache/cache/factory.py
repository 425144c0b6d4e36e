"""
ChatLLM Cache — Cache Factory

Canonical factory for creating named cache stores from configuration.

Key points:
- Each named instance is an independent CacheStore with its own counters
- When persistence is enabled the snapshot is loaded on creation and saved
  by close_all_caches()
- All configuration is typed and validated via Pydantic models

Examples:
    from chatllm_cache.cache.factory import create_cache, get_cache

    # Uses env-configured settings
    cache = create_cache()

    # Or explicitly supply a CacheConfig (e.g., for tests)
    from chatllm_cache.config import CacheConfig
    cfg = CacheConfig(max_memory_bytes=4096, ttl_ms=60_000)
    small = create_cache(cfg, name="test")
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..config import CacheConfig, get_config
from ..errors import ConfigurationError, PersistenceError
from .persistence import load_snapshot, save_snapshot
from .store import CacheStore

logger = logging.getLogger(__name__)

# Registry of named stores and the config each was built from
_cache_instances: dict[str, CacheStore] = {}
_cache_configs: dict[str, CacheConfig] = {}


def create_cache(
    config: CacheConfig | None = None,
    name: str = "default",
    clock: Callable[[], float] | None = None,
) -> CacheStore:
    """
    Create a cache store based on configuration.

    Args:
        config: Cache configuration (uses global config if not provided)
        name: Instance name (for multiple independent stores)
        clock: Optional epoch-millisecond clock for the store

    Returns:
        Configured CacheStore, or the existing one registered under ``name``

    Raises:
        ConfigurationError: If the store cannot be built or its snapshot is unreadable
    """
    if name in _cache_instances:
        logger.debug("Returning existing cache instance: %s", name)
        return _cache_instances[name]

    if config is None:
        config = get_config().cache

    logger.info(
        "Creating cache instance '%s' (persist=%s)",
        name,
        config.persist,
        extra={"cache_name": name, "namespace": config.namespace},
    )

    try:
        cache = CacheStore.from_config(config, clock=clock)
        if config.persist:
            load_snapshot(cache, config.snapshot_path)
    except PersistenceError as e:
        raise ConfigurationError(
            f"Failed to restore cache instance '{name}': {e}",
            details={"cache_name": name, "snapshot": config.snapshot_path, **e.details},
        ) from e
    except Exception as e:
        logger.error(
            "Unexpected error creating cache instance '%s': %s",
            name,
            e,
            extra={"cache_name": name, "error": str(e)},
            exc_info=True,
        )
        raise ConfigurationError(
            f"Failed to create cache instance '{name}': {e}",
            details={"cache_name": name, "error": str(e)},
        ) from e

    _cache_instances[name] = cache
    _cache_configs[name] = config

    logger.info("Cache instance '%s' created successfully", name, extra={"cache_name": name})
    return cache


def get_cache(name: str = "default") -> CacheStore:
    """
    Get an existing cache store by name, creating it from global config if absent.

    Args:
        name: Instance name

    Returns:
        CacheStore instance
    """
    if name not in _cache_instances:
        logger.debug("Cache instance '%s' not found, creating new instance", name)
        return create_cache(name=name)

    return _cache_instances[name]


def save_cache(name: str = "default") -> int:
    """
    Snapshot a persisted cache instance now.

    Returns:
        Number of entries written (0 when the instance does not persist)
    """
    cache = _cache_instances.get(name)
    config = _cache_configs.get(name)
    if cache is None or config is None or not config.persist:
        return 0
    return save_snapshot(cache, config.snapshot_path)


def close_all_caches() -> None:
    """
    Snapshot persisted instances and drop every registered store.

    Snapshot failures are logged and do not stop the remaining instances
    from closing; losing a snapshot only costs future hits.
    """
    if not _cache_instances:
        logger.debug("No cache instances to close")
        return

    logger.info("Closing %d cache instance(s)...", len(_cache_instances))

    for name in list(_cache_instances):
        try:
            save_cache(name)
            logger.info("Closed cache instance: %s", name)
        except PersistenceError as e:
            logger.error(
                "Error saving cache instance '%s': %s",
                name,
                e,
                extra={"cache_name": name, "error": str(e)},
            )

    _cache_instances.clear()
    _cache_configs.clear()
    logger.info("All cache instances closed")


def reset_cache_factory() -> None:
    """
    Reset the cache factory by clearing all instance references.

    Does NOT snapshot instances - use close_all_caches() for that.

    Warning: Only use this in testing contexts.
    """
    count = len(_cache_instances)
    _cache_instances.clear()
    _cache_configs.clear()
    logger.debug("Reset cache factory, cleared %d instance reference(s)", count)


def list_cache_instances() -> list[str]:
    """
    List all registered cache instance names.

    Returns:
        List of cache instance names
    """
    return list(_cache_instances.keys())
