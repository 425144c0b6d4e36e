"""
ChatLLM Cache — Cache Entry and Counters

Record type stored in either tier, plus the per-store statistics tracker.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Tier(str, Enum):
    """Storage level an entry lives in."""

    MEMORY = "memory"
    DISK = "disk"


@dataclass
class CacheEntry:
    """A cached value with its access bookkeeping.

    ``value`` holds the JSON text of the payload, or the deflate bytes of
    that text when ``compressed`` is set. Timestamps are epoch milliseconds.
    """

    key: str
    content_hash: str
    value: Any
    compressed: bool
    size_bytes: int
    created_at: float
    expires_at: float
    access_count: int = 0
    last_accessed_at: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.expires_at < self.created_at:
            raise ValueError("expires_at must not precede created_at")
        if not self.last_accessed_at:
            self.last_accessed_at = self.created_at

    def is_expired(self, now: float) -> bool:
        """An entry is dead from the instant its TTL has fully elapsed."""
        return now >= self.expires_at

    def touch(self, now: float) -> None:
        """Record a successful read."""
        self.access_count += 1
        self.last_accessed_at = now


@dataclass
class SemanticMatch:
    """Result of a similarity lookup."""

    value: Any
    similarity: float
    key: str
    source: Tier = Tier.MEMORY


@dataclass
class PrefetchedEntry:
    """A warmed entry returned by prefetch."""

    key: str
    value: Any
    priority: str


class CacheCounters:
    """Statistics tracker owned by a single cache store."""

    def __init__(self) -> None:
        """Initialize stats counters."""
        self.hits: int = 0
        self.misses: int = 0
        self.compressions: int = 0
        self.evictions: int = 0
        self.promotions: int = 0
        self.expirations: int = 0
        self.semantic_hits: int = 0

    def reset(self) -> None:
        """Reset all counters."""
        self.hits = 0
        self.misses = 0
        self.compressions = 0
        self.evictions = 0
        self.promotions = 0
        self.expirations = 0
        self.semantic_hits = 0

    def get_hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert counters to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.get_hit_rate(),
            "compression_count": self.compressions,
            "eviction_count": self.evictions,
            "promotions": self.promotions,
            "expirations": self.expirations,
            "semantic_hits": self.semantic_hits,
        }
