"""
ChatLLM Cache — Cache Module

Two-tier (memory + disk) response cache with compression, TTL expiry,
LRU/age eviction, pattern invalidation and token-overlap similarity lookup.

Usage:
    from chatllm_cache.cache import create_cache

    cache = create_cache()
    cache.set("What is the capital of France?", "Paris", ttl=60_000)
    cache.get("What is the capital of France?")
    match = cache.semantic_get("what is the capital of france", threshold=0.5)
"""

from .entry import CacheCounters, CacheEntry, PrefetchedEntry, SemanticMatch, Tier
from .factory import (
    close_all_caches,
    create_cache,
    get_cache,
    list_cache_instances,
    reset_cache_factory,
    save_cache,
)
from .persistence import load_snapshot, save_snapshot
from .similarity import jaccard_similarity, tokenize
from .store import CacheStore

__all__ = [
    # Store
    "CacheStore",
    "CacheEntry",
    "CacheCounters",
    "SemanticMatch",
    "PrefetchedEntry",
    "Tier",
    # Factory functions
    "create_cache",
    "get_cache",
    "save_cache",
    "close_all_caches",
    "list_cache_instances",
    "reset_cache_factory",
    # Persistence
    "save_snapshot",
    "load_snapshot",
    # Similarity
    "jaccard_similarity",
    "tokenize",
]
