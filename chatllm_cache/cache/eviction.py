"""
ChatLLM Cache — Eviction Policy

Victim selection for the two tiers:
- Memory (hot) tier: least-recently-used, by last_accessed_at
- Disk (cold) tier: oldest-created, by created_at

Ties resolve to the entry inserted earliest, since min() keeps the first
minimum it meets and tier maps iterate in insertion order.
"""

from collections.abc import Mapping

from .entry import CacheEntry, Tier


def select_lru_victim(entries: Mapping[str, CacheEntry]) -> str | None:
    """Hash of the least recently read entry, or None when empty."""
    if not entries:
        return None
    return min(entries, key=lambda h: entries[h].last_accessed_at)


def select_oldest_victim(entries: Mapping[str, CacheEntry]) -> str | None:
    """Hash of the earliest created entry, or None when empty."""
    if not entries:
        return None
    return min(entries, key=lambda h: entries[h].created_at)


def select_victim(tier: Tier, entries: Mapping[str, CacheEntry]) -> str | None:
    """Pick the next entry to evict from the given tier."""
    if tier == Tier.MEMORY:
        return select_lru_victim(entries)
    return select_oldest_victim(entries)
