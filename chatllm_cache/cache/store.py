"""
ChatLLM Cache — Two-Tier Response Store

In-process cache placed in front of LLM calls.

Architecture:
    get(key) → memory tier → hit ✓
                  ↓ miss / expired
               disk tier → hit → promote to memory
                  ↓ miss / expired
               None

- Memory (hot) tier: LRU eviction by last access, bounded by a byte budget
- Disk (cold) tier: oldest-created eviction, bounded by a byte budget; holds
  payloads too large for memory placement. Kept in process; see
  persistence.py for snapshots.
- Payloads above the compression threshold are stored deflate-compressed
- Near-duplicate lookups via token-overlap similarity on the memory tier

A store is single-owner and synchronous: there is no internal locking.
"""

import json
import logging
import re
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from typing import Any

from ..config.schemas import (
    DEFAULT_COMPRESSION_THRESHOLD,
    DEFAULT_MAX_DISK_BYTES,
    DEFAULT_MAX_MEMORY_BYTES,
    DEFAULT_TTL_MS,
    CacheConfig,
)
from ..errors import CacheCorruptionError, ValidationError
from .codec import compress, decode, decompress, hash_key, serialize
from .entry import CacheCounters, CacheEntry, PrefetchedEntry, SemanticMatch, Tier
from .eviction import select_victim
from .similarity import jaccard_similarity

logger = logging.getLogger(__name__)


def epoch_ms() -> float:
    """Wall clock in milliseconds."""
    return time.time() * 1000


class CacheStore:
    """
    Compressed two-tier cache with TTL expiry and similarity lookup.

    Features:
    - Memory tier evicted least-recently-used, disk tier evicted oldest-first
    - Per-entry TTL (milliseconds)
    - Cache-through promotion from disk to memory on read
    - Regex invalidation over original keys
    - Per-instance hit/miss/eviction/compression counters
    """

    def __init__(
        self,
        max_memory_bytes: int = DEFAULT_MAX_MEMORY_BYTES,
        max_disk_bytes: int = DEFAULT_MAX_DISK_BYTES,
        max_memory_entry_bytes: int | None = None,
        compression_threshold_bytes: int = DEFAULT_COMPRESSION_THRESHOLD,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        semantic_threshold: float = 0.85,
        namespace: str = "chatllm",
        clock: Callable[[], float] | None = None,
    ):
        """
        Initialize the store.

        Args:
            max_memory_bytes: Budget for summed payload size in the memory tier
            max_disk_bytes: Budget for summed payload size in the disk tier
            max_memory_entry_bytes: Largest payload placed directly in memory
                (None or anything above the memory budget = memory budget)
            compression_threshold_bytes: Serialized size above which payloads are compressed
            default_ttl_ms: TTL applied when set() is called without one
            semantic_threshold: Default minimum similarity for semantic_get()
            namespace: Instance name, used in logs and snapshot file names
            clock: Callable returning epoch milliseconds (injectable for tests)
        """
        if max_memory_bytes < 1 or max_disk_bytes < 1:
            raise ValidationError(
                "Tier budgets must be positive",
                details={"max_memory_bytes": max_memory_bytes, "max_disk_bytes": max_disk_bytes},
            )
        if default_ttl_ms < 1:
            raise ValidationError("default_ttl_ms must be positive", details={"default_ttl_ms": default_ttl_ms})

        self.max_memory_bytes = max_memory_bytes
        self.max_disk_bytes = max_disk_bytes
        if max_memory_entry_bytes is None or max_memory_entry_bytes > max_memory_bytes:
            max_memory_entry_bytes = max_memory_bytes
        self.max_memory_entry_bytes = max_memory_entry_bytes
        self.compression_threshold_bytes = compression_threshold_bytes
        self.default_ttl_ms = default_ttl_ms
        self.semantic_threshold = semantic_threshold
        self.namespace = namespace
        self._clock = clock or epoch_ms

        # content_hash -> entry; an entry lives in exactly one of these
        self._memory: OrderedDict[str, CacheEntry] = OrderedDict()
        self._disk: OrderedDict[str, CacheEntry] = OrderedDict()
        self._sizes: dict[Tier, int] = {Tier.MEMORY: 0, Tier.DISK: 0}

        self._counters = CacheCounters()

        logger.info(
            f"Cache store '{namespace}' initialized: memory={max_memory_bytes}B, "
            f"disk={max_disk_bytes}B, compression>{compression_threshold_bytes}B, ttl={default_ttl_ms}ms"
        )

    @classmethod
    def from_config(cls, config: CacheConfig, clock: Callable[[], float] | None = None) -> "CacheStore":
        """Build a store from a validated CacheConfig."""
        return cls(
            max_memory_bytes=config.max_memory_bytes,
            max_disk_bytes=config.max_disk_bytes,
            max_memory_entry_bytes=config.max_memory_entry_bytes,
            compression_threshold_bytes=config.compression_threshold_bytes,
            default_ttl_ms=config.ttl_ms,
            semantic_threshold=config.semantic_threshold,
            namespace=config.namespace,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Tier bookkeeping
    # ------------------------------------------------------------------

    def _entries(self, tier: Tier) -> OrderedDict[str, CacheEntry]:
        return self._memory if tier == Tier.MEMORY else self._disk

    def _budget(self, tier: Tier) -> int:
        return self.max_memory_bytes if tier == Tier.MEMORY else self.max_disk_bytes

    def _insert(self, tier: Tier, entry: CacheEntry) -> None:
        self._entries(tier)[entry.content_hash] = entry
        self._sizes[tier] += entry.size_bytes

    def _remove(self, tier: Tier, content_hash: str) -> CacheEntry | None:
        entry = self._entries(tier).pop(content_hash, None)
        if entry is not None:
            self._sizes[tier] -= entry.size_bytes
        return entry

    def _drop_everywhere(self, content_hash: str) -> int:
        removed = 0
        for tier in Tier:
            if self._remove(tier, content_hash) is not None:
                removed += 1
        return removed

    def _evict_one(self, tier: Tier) -> bool:
        """Evict a single entry from the tier. Returns False if the tier is empty."""
        victim = select_victim(tier, self._entries(tier))
        if victim is None:
            return False

        evicted = self._remove(tier, victim)
        self._counters.evictions += 1
        if evicted is not None:
            logger.debug(
                f"Evicted entry from {tier.value} tier",
                extra={"namespace": self.namespace, "tier": tier.value, "content_hash": victim, "size": evicted.size_bytes},
            )
        return True

    def _enforce_budget(self, tier: Tier) -> None:
        """Repeat the size check, evicting one entry per failed check, until within budget."""
        while self._sizes[tier] > self._budget(tier):
            if not self._evict_one(tier):
                break

    def _decode(self, tier: Tier, entry: CacheEntry) -> Any:
        """Fresh copy of the entry's value; a payload that fails to parse is dropped."""
        try:
            if entry.compressed:
                return decompress(entry.content_hash, entry.value)
            return decode(entry.content_hash, entry.value)
        except CacheCorruptionError:
            self._remove(tier, entry.content_hash)
            logger.error(
                f"Dropped corrupted entry from {tier.value} tier",
                extra={"namespace": self.namespace, "content_hash": entry.content_hash},
            )
            raise

    def _expire(self, tier: Tier, content_hash: str) -> None:
        self._remove(tier, content_hash)
        self._counters.expirations += 1

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any | None:
        """
        Retrieve a value, checking the memory tier then the disk tier.

        A disk-tier hit is promoted into the memory tier.

        Args:
            key: Original lookup key

        Returns:
            Cached value, or None on a miss or expiry

        Raises:
            CacheCorruptionError: If a compressed payload fails to decode
        """
        content_hash = hash_key(key)
        now = self._clock()

        entry = self._memory.get(content_hash)
        if entry is not None:
            if not entry.is_expired(now):
                value = self._decode(Tier.MEMORY, entry)
                entry.touch(now)
                self._counters.hits += 1
                return value
            self._expire(Tier.MEMORY, content_hash)

        entry = self._disk.get(content_hash)
        if entry is not None:
            if not entry.is_expired(now):
                value = self._decode(Tier.DISK, entry)
                entry.touch(now)
                self._promote(entry)
                self._counters.hits += 1
                return value
            self._expire(Tier.DISK, content_hash)

        self._counters.misses += 1
        return None

    def _promote(self, entry: CacheEntry) -> None:
        """Move a disk-tier entry into the memory tier, keeping its TTL."""
        if entry.size_bytes > self.max_memory_bytes:
            # Cannot fit in memory at all; keep serving it from disk
            return

        self._remove(Tier.DISK, entry.content_hash)
        self._insert(Tier.MEMORY, entry)
        self._counters.promotions += 1
        self._enforce_budget(Tier.MEMORY)

        logger.debug(
            "Promoted entry from disk to memory tier",
            extra={"namespace": self.namespace, "content_hash": entry.content_hash, "size": entry.size_bytes},
        )

    def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """
        Store a value, compressing it if large and placing it by size.

        Overwrites any prior entry for the same key.

        Args:
            key: Original lookup key
            value: JSON-serializable payload
            ttl: Time-to-live in milliseconds (None = store default)
            metadata: Caller data kept alongside the entry

        Returns:
            True if stored, False if the payload exceeds the disk budget
            (any prior entry for the key is dropped either way)

        Raises:
            CacheSerializationError: If value or metadata is not JSON-serializable
            ValidationError: If ttl is not positive or value is None
        """
        if ttl is None:
            ttl = self.default_ttl_ms
        elif ttl <= 0:
            raise ValidationError("ttl must be a positive number of milliseconds", details={"ttl": ttl})
        if value is None:
            # get() reports a miss as None, so a cached null could not be read back
            raise ValidationError("None cannot be cached", details={"key": key[:80]})

        payload = serialize(key, value)
        stored_metadata = json.loads(serialize(key, metadata or {}))
        compressed = len(payload) > self.compression_threshold_bytes

        stored: str | bytes = payload.decode("utf-8")
        size = len(payload)
        if compressed:
            stored = compress(payload)
            size = len(stored)
            self._counters.compressions += 1

        content_hash = hash_key(key)
        now = self._clock()
        entry = CacheEntry(
            key=key,
            content_hash=content_hash,
            value=stored,
            compressed=compressed,
            size_bytes=size,
            created_at=now,
            expires_at=now + ttl,
            metadata=stored_metadata,
        )

        self._drop_everywhere(content_hash)

        tier = Tier.MEMORY if size <= self.max_memory_entry_bytes else Tier.DISK
        if tier == Tier.DISK and size > self.max_disk_bytes:
            logger.warning(
                f"Payload of {size}B exceeds disk budget, not caching",
                extra={"namespace": self.namespace, "content_hash": content_hash, "size": size},
            )
            return False

        self._insert(tier, entry)
        self._enforce_budget(tier)
        return True

    def semantic_get(self, query: str, threshold: float | None = None) -> SemanticMatch | None:
        """
        Find the memory-tier entry whose key best overlaps the query.

        Only the memory tier is scanned. Ties go to the most recently
        created entry. The query itself is never indexed.

        Args:
            query: Free-text query
            threshold: Minimum Jaccard similarity (None = store default)

        Returns:
            SemanticMatch with the value and score, or None
        """
        if threshold is None:
            threshold = self.semantic_threshold
        if not 0.0 <= threshold <= 1.0:
            raise ValidationError("threshold must be between 0 and 1", details={"threshold": threshold})

        now = self._clock()
        best: CacheEntry | None = None
        best_score = 0.0

        for content_hash, entry in list(self._memory.items()):
            if entry.is_expired(now):
                self._expire(Tier.MEMORY, content_hash)
                continue

            score = jaccard_similarity(query, entry.key)
            if best is None or score > best_score or (score == best_score and entry.created_at >= best.created_at):
                best = entry
                best_score = score

        if best is None or best_score < threshold:
            return None

        value = self._decode(Tier.MEMORY, best)
        best.touch(now)
        self._counters.hits += 1
        self._counters.semantic_hits += 1
        return SemanticMatch(value=value, similarity=best_score, key=best.key, source=Tier.MEMORY)

    def prefetch(self, keys: Iterable[str], priority: str = "low") -> list[PrefetchedEntry]:
        """
        Warm a batch of keys, returning the ones that are cached.

        Each key goes through get(), so disk-tier hits are promoted and
        counters move exactly as they would for individual reads.
        """
        warmed = []
        for key in keys:
            value = self.get(key)
            if value is not None:
                warmed.append(PrefetchedEntry(key=key, value=value, priority=priority))
        return warmed

    def invalidate(self, key: str | None = None, pattern: str | None = None) -> int:
        """
        Remove entries by key or by regular expression over original keys.

        Pattern mode takes precedence and ignores ``key``.

        Args:
            key: Original key to remove from both tiers
            pattern: Regular expression matched with re.search against original keys

        Returns:
            Number of entries removed

        Raises:
            re.error: If the pattern is not a valid regular expression
            ValidationError: If neither key nor pattern is given
        """
        if pattern is not None:
            return self._invalidate_pattern(pattern)

        if key is None:
            raise ValidationError("invalidate() requires a key or a pattern")

        return self._drop_everywhere(hash_key(key))

    def _invalidate_pattern(self, pattern: str) -> int:
        if not self._memory and not self._disk:
            return 0

        regex = re.compile(pattern)
        removed = 0
        for tier in Tier:
            entries = self._entries(tier)
            for content_hash, entry in list(entries.items()):
                if regex.search(entry.key):
                    self._remove(tier, content_hash)
                    removed += 1

        logger.info(
            f"Invalidated {removed} entries matching pattern",
            extra={"namespace": self.namespace, "pattern": pattern, "removed": removed},
        )
        return removed

    def clear(self) -> None:
        """Drop both tiers and reset every counter."""
        size = len(self._memory) + len(self._disk)
        self._memory.clear()
        self._disk.clear()
        self._sizes = {Tier.MEMORY: 0, Tier.DISK: 0}
        self._counters.reset()
        logger.info(f"Cleared {size} entries from cache store '{self.namespace}'")

    def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Counters, hit rate (0.0-1.0), per-tier entry counts and payload sizes
        """
        stats = self._counters.to_dict()
        stats.update(
            {
                "memory_entries": len(self._memory),
                "disk_entries": len(self._disk),
                "memory_size_bytes": self._sizes[Tier.MEMORY],
                "disk_size_bytes": self._sizes[Tier.DISK],
                "max_memory_bytes": self.max_memory_bytes,
                "max_disk_bytes": self.max_disk_bytes,
                "namespace": self.namespace,
            }
        )
        return stats

    def tier_of(self, key: str) -> Tier | None:
        """Tier currently holding the key, without touching counters or access data."""
        content_hash = hash_key(key)
        if content_hash in self._memory:
            return Tier.MEMORY
        if content_hash in self._disk:
            return Tier.DISK
        return None

    # ------------------------------------------------------------------
    # Snapshot support
    # ------------------------------------------------------------------

    def export_entries(self) -> list[tuple[Tier, CacheEntry]]:
        """Live entries of both tiers, memory first, in tier order."""
        now = self._clock()
        return [
            (tier, entry)
            for tier in Tier
            for entry in self._entries(tier).values()
            if not entry.is_expired(now)
        ]

    def restore_entry(self, tier: Tier, entry: CacheEntry) -> bool:
        """
        Re-insert a previously exported entry into its tier.

        Expired entries are skipped. Budgets are enforced after insertion.

        Returns:
            True if the entry was restored
        """
        if entry.is_expired(self._clock()):
            return False
        if entry.content_hash != hash_key(entry.key):
            logger.warning(
                "Skipping restored entry whose hash does not match its key",
                extra={"namespace": self.namespace, "content_hash": entry.content_hash},
            )
            return False
        if entry.size_bytes > self._budget(tier):
            return False

        self._drop_everywhere(entry.content_hash)
        self._insert(tier, entry)
        self._enforce_budget(tier)
        return True

    def __len__(self) -> int:
        return len(self._memory) + len(self._disk)
