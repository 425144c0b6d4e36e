"""
ChatLLM Cache — Configuration Module

Provides typed configuration loading and validation.
"""

from .loader import get_config, load_config, reload_config, reset_config
from .schemas import (
    CacheConfig,
    ChatCacheConfig,
    Environment,
    LogLevel,
    ObservabilityConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "get_config",
    "reload_config",
    "reset_config",
    # Main config
    "ChatCacheConfig",
    # Enums
    "Environment",
    "LogLevel",
    # Config sections
    "CacheConfig",
    "ObservabilityConfig",
]
