"""
ChatLLM Cache — Observability Module

Single observability adapter for the runtime. Metrics, traces and logs go
through this module; exporter.py republishes them as JSON or Prometheus text.

Usage:
    from chatllm_cache.observability import get_observability

    obs = get_observability()
    obs.increment("cache.hits")
    obs.record_request(cached=True)

    with obs.trace("cache.get"):
        ...
"""

from .exporter import MetricsExporter
from .monitoring import (
    JSONFormatter,
    ObservabilityAdapter,
    get_observability,
    initialize_observability,
    reset_observability,
    setup_logging,
)

__all__ = [
    "ObservabilityAdapter",
    "get_observability",
    "initialize_observability",
    "reset_observability",
    "JSONFormatter",
    "setup_logging",
    "MetricsExporter",
]
