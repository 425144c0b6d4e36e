"""
ChatLLM Cache - Input Validation Module

Provides Pydantic-based validation for all server tool inputs.
"""

from .decorators import validate_input
from .tool_schemas import (
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

__all__ = [
    # Decorator
    "validate_input",
    # Tool input schemas
    "CacheGetInput",
    "CacheSetInput",
    "CacheSemanticGetInput",
    "CacheInvalidateInput",
    "CachePrefetchInput",
    "CacheClearInput",
    "GetCacheStatsInput",
    "CheckStatusInput",
    "GetMetricsInput",
]
