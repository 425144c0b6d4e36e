"""
ChatLLM Cache — LLM Response Cache

Two-tier compressed response cache with TTL expiry, LRU/age eviction,
pattern invalidation and token-overlap similarity lookup. The MCP server
lives in chatllm_cache.server and the command line in chatllm_cache.cli.
"""

__version__ = "1.0.0"

from .cache import CacheStore, SemanticMatch, Tier, create_cache, get_cache
from .config import CacheConfig, load_config

__all__ = [
    "CacheStore",
    "SemanticMatch",
    "Tier",
    "create_cache",
    "get_cache",
    "CacheConfig",
    "load_config",
]
