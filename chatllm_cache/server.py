"""
ChatLLM Cache — Server

FastMCP server (stdio transport) exposing the response cache as tools.

- Configuration via typed Pydantic models only
- Structured logging with trace IDs
- Graceful shutdown snapshots persisted caches
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP

from .cache import close_all_caches, get_cache
from .config import load_config
from .errors import ChatCacheError, extract_error_code, make_error_response
from .observability import MetricsExporter, get_observability, initialize_observability, setup_logging
from .validation import validate_input
from .validation.tool_schemas import (
    CacheClearInput,
    CacheGetInput,
    CacheInvalidateInput,
    CachePrefetchInput,
    CacheSemanticGetInput,
    CacheSetInput,
    CheckStatusInput,
    GetCacheStatsInput,
    GetMetricsInput,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "chatllm-cache"
SERVICE_VERSION = "1.0.0"

_initialized = False
_exporter: MetricsExporter | None = None


@asynccontextmanager
async def server_lifespan(server: Any) -> Any:
    """Server lifespan manager (startup/shutdown)."""
    initialize_server()
    yield
    cleanup_server()


mcp = FastMCP("ChatLLM Response Cache", lifespan=server_lifespan)


def _error_response(error: ChatCacheError) -> dict[str, Any]:
    return make_error_response(extract_error_code(error), error.message, error.details)


def _get_exporter() -> MetricsExporter:
    global _exporter

    cache = get_cache()
    if _exporter is None or _exporter.store is not cache:
        config = load_config()
        _exporter = MetricsExporter(
            cache,
            adapter=get_observability(),
            prefix=config.observability.metrics_prefix,
        )
    return _exporter


@validate_input(CheckStatusInput)
async def check_status(include_details: bool = False) -> dict[str, Any]:
    """
    Check service health and status.

    Args:
        include_details: Include detailed cache and observability stats

    Returns:
        Service status information
    """
    obs = get_observability()
    obs.increment("tools.check_status")

    stats = get_cache().get_stats()
    status: dict[str, Any] = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "cache": {
            "entries": stats["memory_entries"] + stats["disk_entries"],
            "hit_rate": stats["hit_rate"],
        },
    }

    if include_details:
        status["cache_details"] = stats
        status["observability"] = {
            "metrics_enabled": obs.enable_metrics,
            "tracing_enabled": obs.enable_tracing,
        }

    return status


@validate_input(GetCacheStatsInput)
async def get_cache_stats() -> dict[str, Any]:
    """
    Get detailed cache statistics.

    Returns:
        Hits, misses, hit rate, compression and eviction counts, per-tier sizes
    """
    obs = get_observability()
    obs.increment("tools.get_cache_stats")

    stats = get_cache().get_stats()
    obs.record_store_stats(stats)
    return stats


@validate_input(CacheGetInput)
async def cache_get(key: str) -> dict[str, Any]:
    """
    Retrieve a cached response by exact key.

    Args:
        key: Original cache key

    Returns:
        {"cached": bool, "value": ...}
    """
    obs = get_observability()
    obs.increment("tools.cache_get")

    try:
        with obs.trace("cache.get"):
            value = get_cache().get(key)
    except ChatCacheError as e:
        return _error_response(e)

    cached = value is not None
    obs.record_request(cached=cached, source="exact")
    return {"cached": cached, "value": value}


@validate_input(CacheSetInput)
async def cache_set(
    key: str,
    value: Any,
    ttl: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Store a response in the cache.

    Args:
        key: Original cache key
        value: JSON-serializable value
        ttl: Time-to-live in milliseconds (None = use default)
        metadata: Optional metadata stored alongside the entry

    Returns:
        {"success": bool, "tier": "memory" | "disk" | None}
    """
    obs = get_observability()
    obs.increment("tools.cache_set")

    cache = get_cache()
    try:
        with obs.trace("cache.set"):
            stored = cache.set(key, value, ttl=ttl, metadata=metadata)
    except ChatCacheError as e:
        return _error_response(e)

    if stored:
        obs.increment("cache.sets")

    tier = cache.tier_of(key)
    return {"success": stored, "tier": tier.value if tier else None}


@validate_input(CacheSemanticGetInput)
async def cache_semantic_get(query: str, threshold: float | None = None) -> dict[str, Any]:
    """
    Find a cached response whose key overlaps the query.

    Args:
        query: Free-text query
        threshold: Minimum similarity (0-1), uses config default if None

    Returns:
        {"cached": bool, "value": ..., "similarity": float, "key": str}
    """
    obs = get_observability()
    obs.increment("tools.cache_semantic_get")

    try:
        with obs.trace("cache.semantic_get"):
            match = get_cache().semantic_get(query, threshold)
    except ChatCacheError as e:
        return _error_response(e)

    obs.record_request(cached=match is not None, source="semantic")
    if match is None:
        return {"cached": False, "value": None, "similarity": 0.0, "key": None}

    return {
        "cached": True,
        "value": match.value,
        "similarity": match.similarity,
        "key": match.key,
        "source": match.source.value,
    }


@validate_input(CacheInvalidateInput)
async def cache_invalidate(key: str | None = None, pattern: str | None = None) -> dict[str, Any]:
    """
    Invalidate cached entries by key or by regular expression.

    Args:
        key: Original key to remove
        pattern: Regular expression over original keys (takes precedence)

    Returns:
        {"success": True, "removed": int}
    """
    obs = get_observability()
    obs.increment("tools.cache_invalidate")

    with obs.trace("cache.invalidate"):
        removed = get_cache().invalidate(key, pattern=pattern)

    obs.increment("cache.invalidations", value=removed)
    return {"success": True, "removed": removed}


@validate_input(CachePrefetchInput)
async def cache_prefetch(keys: list[str], priority: str = "low") -> dict[str, Any]:
    """
    Warm a batch of keys and return the cached ones.

    Args:
        keys: Keys to look up
        priority: Priority label attached to warmed entries

    Returns:
        {"requested": int, "entries": [{"key", "value", "priority"}]}
    """
    get_observability().increment("tools.cache_prefetch")

    try:
        warmed = get_cache().prefetch(keys, priority=priority)
    except ChatCacheError as e:
        return _error_response(e)

    return {
        "requested": len(keys),
        "entries": [{"key": w.key, "value": w.value, "priority": w.priority} for w in warmed],
    }


@validate_input(CacheClearInput)
async def cache_clear() -> dict[str, Any]:
    """
    Clear both tiers and reset cache counters.

    Returns:
        {"success": True}
    """
    obs = get_observability()
    obs.increment("tools.cache_clear")

    with obs.trace("cache.clear"):
        get_cache().clear()

    return {"success": True}


@validate_input(GetMetricsInput)
async def get_metrics(format: str = "json") -> dict[str, Any]:
    """
    Export cache metrics.

    Args:
        format: 'json' for a metrics document, 'prometheus' for exposition text

    Returns:
        {"format": ..., "content": ...}
    """
    get_observability().increment("tools.get_metrics")

    exporter = _get_exporter()
    if format == "prometheus":
        return {"format": "prometheus", "content": exporter.to_prometheus()}
    return {"format": "json", "content": exporter.to_json()}


# Registration does not rebind the module-level names
for _tool in (
    check_status,
    get_cache_stats,
    cache_get,
    cache_set,
    cache_semantic_get,
    cache_invalidate,
    cache_prefetch,
    cache_clear,
    get_metrics,
):
    mcp.tool()(_tool)


def initialize_server() -> None:
    """Initialize server resources on startup."""
    global _initialized

    if _initialized:
        return

    config = load_config()
    setup_logging(config.log_level, json_logs=config.observability.json_logs)
    logger.info(f"Initializing {SERVICE_NAME} (environment={config.environment})")

    obs = initialize_observability(
        enable_metrics=config.observability.enable_metrics,
        enable_tracing=config.observability.enable_tracing,
    )

    stats = get_cache().get_stats()
    logger.info(
        "Cache initialized",
        extra={"memory_entries": stats["memory_entries"], "disk_entries": stats["disk_entries"]},
    )

    obs.increment("server.startup")
    obs.event(
        "server_started",
        {"environment": config.environment, "persist": config.cache.persist},
    )

    _initialized = True


def cleanup_server() -> None:
    """Cleanup server resources on shutdown."""
    global _initialized, _exporter

    if not _initialized:
        return

    logger.info(f"Cleaning up {SERVICE_NAME}...")

    close_all_caches()
    _exporter = None

    obs = get_observability()
    obs.increment("server.shutdown")
    obs.event("server_stopped", {})

    _initialized = False


def main() -> None:
    """Entry point for the stdio server."""
    mcp.run()


if __name__ == "__main__":
    main()
