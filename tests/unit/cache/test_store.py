"""
Unit tests for the two-tier cache store.

Tests cover:
- Round trips with and without compression
- TTL expiry against an injected clock
- Memory-tier LRU and disk-tier oldest-first eviction
- Disk to memory promotion
- Pattern and key invalidation
- Similarity lookup over the memory tier
- Counters, clear() and error paths
"""

import re
import zlib

import pytest

from chatllm_cache.cache import CacheStore, Tier
from chatllm_cache.cache.codec import hash_key
from chatllm_cache.config import CacheConfig
from chatllm_cache.errors import CacheCorruptionError, CacheSerializationError, ValidationError


def payload(size: int, fill: str = "x") -> str:
    """String whose compact JSON encoding is exactly ``size`` bytes."""
    return fill * (size - 2)


@pytest.fixture
def make_store(clock):
    """Build stores with compression effectively off unless asked for."""

    def _make(**kwargs) -> CacheStore:
        kwargs.setdefault("compression_threshold_bytes", 1_000_000)
        kwargs.setdefault("clock", clock)
        return CacheStore(**kwargs)

    return _make


class TestRoundTrip:
    """Values come back deep-equal to what was stored."""

    def test_small_value_stored_raw(self, make_store):
        """Payloads under the threshold are kept uncompressed."""
        store = make_store(compression_threshold_bytes=1024)
        value = {"choices": [{"message": {"role": "assistant", "content": "Paris"}}]}

        assert store.set("k", value) is True
        assert store.get("k") == value

        entry = store._memory[hash_key("k")]
        assert entry.compressed is False
        assert store.get_stats()["compression_count"] == 0

    def test_large_value_compressed(self, make_store):
        """Payloads above the threshold are deflated and decode to an equal value."""
        store = make_store(compression_threshold_bytes=1024)
        value = {"text": "lorem ipsum dolor sit amet " * 200, "n": [1, 2, 3], "ok": True, "none": None}

        store.set("big", value)

        entry = store._memory[hash_key("big")]
        assert entry.compressed is True
        assert entry.size_bytes == len(entry.value)
        assert entry.size_bytes < 1024
        assert zlib.decompress(entry.value)
        assert store.get("big") == value
        assert store.get_stats()["compression_count"] == 1

    def test_payload_at_threshold_not_compressed(self, make_store):
        """Only payloads strictly above the threshold are compressed."""
        store = make_store(compression_threshold_bytes=1024)

        store.set("edge", payload(1024))

        assert store._memory[hash_key("edge")].compressed is False
        assert store._memory[hash_key("edge")].size_bytes == 1024

    def test_unicode_value(self, make_store):
        """Non-ASCII text survives and is sized in UTF-8 bytes."""
        store = make_store()

        store.set("greeting", "héllo")

        assert store.get("greeting") == "héllo"
        assert store._memory[hash_key("greeting")].size_bytes == len('"héllo"'.encode())

    def test_overwrite_replaces_entry(self, make_store):
        """A second set() for the same key leaves exactly one entry."""
        store = make_store()

        store.set("k", payload(10, "a"))
        store.set("k", payload(100, "b"))

        assert len(store) == 1
        assert store.get("k") == payload(100, "b")
        assert store.get_stats()["memory_size_bytes"] == 100

    def test_overwrite_moves_between_tiers(self, make_store):
        """Overwriting with a larger payload leaves no copy in the old tier."""
        store = make_store(max_memory_entry_bytes=50)

        store.set("k", payload(10))
        store.set("k", payload(100))

        assert store.tier_of("k") == Tier.DISK
        stats = store.get_stats()
        assert stats["memory_entries"] == 0
        assert stats["disk_entries"] == 1

    @pytest.mark.parametrize("threshold", [1_000_000, 8])
    def test_values_isolated_from_caller(self, make_store, threshold):
        """Mutating the stored or the returned object never changes the cache."""
        store = make_store(compression_threshold_bytes=threshold)
        value = {"answer": ["Paris"]}

        store.set("k", value)
        value["answer"].append("Lyon")
        first = store.get("k")
        first["answer"].append("Nice")

        assert store.get("k") == {"answer": ["Paris"]}
        assert store._memory[hash_key("k")].compressed is (threshold == 8)

    def test_none_value_rejected(self, make_store):
        """None is how a miss reads back, so it cannot be cached."""
        store = make_store()

        with pytest.raises(ValidationError):
            store.set("k", None)

        assert len(store) == 0

    def test_falsy_values_round_trip(self, make_store):
        """Empty and zero values are still hits."""
        store = make_store()
        for key, value in (("zero", 0), ("false", False), ("empty", ""), ("list", [])):
            store.set(key, value)
            assert store.get(key) == value
        assert store.get_stats()["hits"] == 4

    def test_metadata_kept_with_entry(self, make_store):
        """Caller metadata is stored alongside the entry."""
        store = make_store()
        metadata = {"model": "gpt-4o-mini", "temperature": 0.2}

        store.set("k", "v", metadata=metadata)
        metadata["model"] = "changed"

        assert store._memory[hash_key("k")].metadata == {"model": "gpt-4o-mini", "temperature": 0.2}

    def test_get_tracks_access(self, make_store, clock):
        """Reads bump access_count and last_accessed_at."""
        store = make_store()
        store.set("k", "v")

        clock.advance(5)
        store.get("k")
        clock.advance(5)
        store.get("k")

        entry = store._memory[hash_key("k")]
        assert entry.access_count == 2
        assert entry.last_accessed_at == clock.now


class TestExpiry:
    """TTL is measured in milliseconds against the store clock."""

    def test_expires_at_ttl(self, make_store, clock):
        """An entry is live before its TTL and gone once the TTL has elapsed."""
        store = make_store()
        store.set("k", "v", ttl=50)

        clock.advance(49)
        assert store.get("k") == "v"

        clock.advance(1)
        assert store.get("k") is None
        assert len(store) == 0

        stats = store.get_stats()
        assert stats["expirations"] == 1
        assert stats["misses"] == 1

    def test_default_ttl_applies(self, make_store, clock):
        """set() without a TTL uses the store default."""
        store = make_store(default_ttl_ms=1000)
        store.set("k", "v")

        clock.advance(999)
        assert store.get("k") == "v"
        clock.advance(1)
        assert store.get("k") is None

    def test_expired_disk_entry_removed(self, make_store, clock):
        """Expiry applies to the disk tier as well."""
        store = make_store(max_memory_entry_bytes=50)
        store.set("k", payload(100), ttl=10)
        assert store.tier_of("k") == Tier.DISK

        clock.advance(10)

        assert store.get("k") is None
        assert store.tier_of("k") is None
        assert store.get_stats()["disk_size_bytes"] == 0

    @pytest.mark.parametrize("ttl", [0, -1])
    def test_non_positive_ttl_rejected(self, make_store, ttl):
        """A TTL must be a positive number of milliseconds."""
        store = make_store()

        with pytest.raises(ValidationError):
            store.set("k", "v", ttl=ttl)

        assert len(store) == 0


class TestEviction:
    """Budgets hold after every write."""

    def test_memory_evicts_least_recently_used(self, make_store, clock):
        """Reading A protects it; B is the least recently used when D arrives."""
        store = make_store(max_memory_bytes=350)

        store.set("A", payload(100))
        clock.advance(1)
        store.set("B", payload(100))
        clock.advance(1)
        store.set("C", payload(100))
        clock.advance(1)
        assert store.get("A") == payload(100)
        clock.advance(1)
        store.set("D", payload(100))

        assert store.tier_of("B") is None
        for key in ("A", "C", "D"):
            assert store.tier_of(key) == Tier.MEMORY
        assert store.get_stats()["eviction_count"] == 1

    def test_memory_budget_never_exceeded(self, make_store, clock):
        """Twenty 100-byte writes into a 1000-byte tier keep the newest ten."""
        store = make_store(max_memory_bytes=1000)

        for i in range(20):
            store.set(f"key-{i}", payload(100))
            clock.advance(1)
            assert store.get_stats()["memory_size_bytes"] <= 1000

        for i in range(10):
            assert store.tier_of(f"key-{i}") is None
        for i in range(10, 20):
            assert store.tier_of(f"key-{i}") == Tier.MEMORY
        assert store.get_stats()["eviction_count"] == 10

    def test_one_large_write_evicts_several(self, make_store, clock):
        """Eviction repeats until the tier fits again."""
        store = make_store(max_memory_bytes=300)
        for key in ("a", "b", "c"):
            store.set(key, payload(100))
            clock.advance(1)

        store.set("wide", payload(250))

        assert store.tier_of("wide") == Tier.MEMORY
        assert len(store) == 1
        assert store.get_stats()["eviction_count"] == 3

    def test_disk_evicts_oldest_created(self, make_store, clock):
        """The cold tier drops the earliest created entry."""
        store = make_store(max_memory_entry_bytes=50, max_disk_bytes=250)

        store.set("first", payload(100))
        clock.advance(1)
        store.set("second", payload(100))
        clock.advance(1)
        store.set("third", payload(100))

        assert store.tier_of("first") is None
        assert store.tier_of("second") == Tier.DISK
        assert store.tier_of("third") == Tier.DISK
        assert store.get_stats()["disk_size_bytes"] == 200

    def test_rejected_overwrite_drops_prior_value(self, make_store):
        """A too-large overwrite leaves the key uncached rather than stale."""
        store = make_store(max_memory_bytes=100, max_disk_bytes=150)
        store.set("k", "old")

        assert store.set("k", payload(500)) is False

        assert store.get("k") is None
        assert store.get_stats()["memory_size_bytes"] == 0

    def test_payload_over_disk_budget_rejected(self, make_store):
        """A payload too large for the disk tier is not cached at all."""
        store = make_store(max_memory_bytes=100, max_disk_bytes=150)

        assert store.set("huge", payload(200)) is False

        assert len(store) == 0
        assert store.get("huge") is None


class TestPromotion:
    """Disk-tier hits move into the memory tier."""

    def test_disk_hit_promoted(self, make_store):
        """A large entry placed on disk is served and then lives in memory."""
        store = make_store(max_memory_bytes=1000, max_memory_entry_bytes=200)

        store.set("big", payload(300))
        assert store.tier_of("big") == Tier.DISK

        assert store.get("big") == payload(300)
        assert store.tier_of("big") == Tier.MEMORY

        stats = store.get_stats()
        assert stats["promotions"] == 1
        assert stats["disk_entries"] == 0
        assert stats["memory_size_bytes"] == 300

        assert store.get("big") == payload(300)
        assert store.get_stats()["hits"] == 2

    def test_promotion_keeps_ttl(self, make_store, clock):
        """A promoted entry expires at its original deadline."""
        store = make_store(max_memory_entry_bytes=50)
        store.set("k", payload(100), ttl=100)

        clock.advance(60)
        assert store.get("k") is not None
        assert store.tier_of("k") == Tier.MEMORY

        clock.advance(40)
        assert store.get("k") is None

    def test_entry_larger_than_memory_stays_on_disk(self, make_store):
        """An entry that cannot fit the memory budget is served from disk."""
        store = make_store(max_memory_bytes=100)

        store.set("k", payload(150))

        assert store.get("k") == payload(150)
        assert store.tier_of("k") == Tier.DISK
        assert store.get_stats()["promotions"] == 0

    def test_promotion_enforces_memory_budget(self, make_store, clock):
        """Promoting into a full memory tier evicts from it."""
        store = make_store(max_memory_bytes=300, max_memory_entry_bytes=100)
        store.set("hot-1", payload(100))
        clock.advance(1)
        store.set("hot-2", payload(100))
        clock.advance(1)
        store.set("cold", payload(200))

        store.get("cold")

        assert store.tier_of("cold") == Tier.MEMORY
        assert store.tier_of("hot-1") is None
        assert store.get_stats()["memory_size_bytes"] <= 300


class TestInvalidation:
    """Removal by exact key or by pattern over original keys."""

    @pytest.fixture
    def store(self, make_store):
        store = make_store(max_memory_entry_bytes=50)
        store.set("userA:1", "a1")
        store.set("userA:2", payload(100))
        store.set("userB:1", "b1")
        return store

    def test_pattern_removes_matches_in_both_tiers(self, store):
        """Matching keys go from memory and disk; the rest stay."""
        assert store.tier_of("userA:2") == Tier.DISK

        assert store.invalidate(pattern="^userA") == 2

        assert store.get("userA:1") is None
        assert store.get("userA:2") is None
        assert store.get("userB:1") == "b1"

    def test_pattern_uses_search(self, store):
        """Patterns are unanchored unless they say otherwise."""
        assert store.invalidate(pattern=":1$") == 2
        assert store.tier_of("userA:2") == Tier.DISK

    def test_pattern_takes_precedence_over_key(self, store):
        """When both are given, only the pattern is applied."""
        assert store.invalidate("userB:1", pattern="^userA:1$") == 1
        assert store.tier_of("userB:1") == Tier.MEMORY

    def test_invalid_pattern_raises(self, store):
        """A malformed expression is an error when there are entries to scan."""
        with pytest.raises(re.error):
            store.invalidate(pattern="userA[")
        assert len(store) == 3

    def test_invalid_pattern_on_empty_cache(self, make_store):
        """An empty cache returns 0 without compiling the pattern."""
        assert make_store().invalidate(pattern="userA[") == 0

    def test_invalidate_by_key(self, store):
        """Key mode removes one entry and reports how many went."""
        assert store.invalidate("userA:2") == 1
        assert store.invalidate("userA:2") == 0
        assert store.get_stats()["disk_entries"] == 0

    def test_requires_key_or_pattern(self, store):
        """Calling with neither is a validation error."""
        with pytest.raises(ValidationError):
            store.invalidate()


class TestSemanticLookup:
    """Token-overlap lookup over the memory tier."""

    def test_near_duplicate_matches(self, make_store):
        """Case and trailing punctuation differences still match above 0.7."""
        store = make_store()
        store.set("What is the capital of France?", "Paris")

        match = store.semantic_get("what is the capital of france", 0.7)

        assert match is not None
        assert match.value == "Paris"
        assert match.similarity == pytest.approx(5 / 7)
        assert match.key == "What is the capital of France?"
        assert match.source == Tier.MEMORY

    def test_below_threshold_misses(self, make_store):
        """A score under the threshold is no match."""
        store = make_store()
        store.set("What is the capital of France?", "Paris")

        assert store.semantic_get("what is the capital of france", 0.72) is None

    def test_counters(self, make_store):
        """A semantic hit counts as a hit; a semantic miss does not count as a miss."""
        store = make_store()
        store.set("alpha beta gamma", "v")

        store.semantic_get("alpha beta gamma", 0.9)
        store.semantic_get("completely unrelated", 0.9)

        stats = store.get_stats()
        assert stats["hits"] == 1
        assert stats["semantic_hits"] == 1
        assert stats["misses"] == 0

    def test_default_threshold(self, make_store):
        """Without an explicit threshold the store default applies."""
        store = make_store(semantic_threshold=0.5)
        store.set("alpha beta", "v")

        assert store.semantic_get("alpha beta gamma") is not None

    def test_tie_prefers_most_recent(self, make_store, clock):
        """Equal scores resolve to the most recently created entry."""
        store = make_store()
        store.set("alpha beta", "first")
        clock.advance(1)
        store.set("beta alpha", "second")

        match = store.semantic_get("alpha beta gamma", 0.5)

        assert match is not None
        assert match.value == "second"
        assert match.similarity == pytest.approx(2 / 3)

    def test_disk_tier_not_scanned(self, make_store):
        """Entries that live on disk are invisible to similarity lookup."""
        store = make_store(max_memory_entry_bytes=50)
        store.set("alpha beta gamma", payload(100))

        assert store.semantic_get("alpha beta gamma", 0.5) is None

    def test_expired_entries_skipped(self, make_store, clock):
        """Expired candidates are removed, not returned."""
        store = make_store()
        store.set("alpha beta", "v", ttl=10)
        clock.advance(10)

        assert store.semantic_get("alpha beta", 0.5) is None
        assert len(store) == 0

    def test_compressed_value_decoded(self, make_store):
        """Matches on compressed entries return the decoded value."""
        store = make_store(compression_threshold_bytes=16)
        value = {"answer": "Paris " * 20}
        store.set("capital of france", value)

        match = store.semantic_get("capital of france", 0.9)

        assert match is not None
        assert match.value == value

    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_threshold_out_of_range(self, make_store, threshold):
        """Thresholds outside [0, 1] are rejected."""
        with pytest.raises(ValidationError):
            make_store().semantic_get("q", threshold)


class TestStats:
    """Counters, hit rate and clear()."""

    def test_hit_rate(self, make_store):
        """Three hits and one miss give a 0.75 hit rate."""
        store = make_store()
        store.set("k", "v")

        for _ in range(3):
            store.get("k")
        store.get("missing")

        stats = store.get_stats()
        assert stats["hits"] == 3
        assert stats["misses"] == 1
        assert stats["hit_rate"] == pytest.approx(0.75)

    def test_hit_rate_without_lookups(self, make_store):
        """No lookups means a zero hit rate, not a division error."""
        assert make_store().get_stats()["hit_rate"] == 0.0

    def test_stats_shape(self, make_store):
        """Stats expose counters and per-tier sizes."""
        stats = make_store(namespace="shape").get_stats()

        for field in (
            "hits",
            "misses",
            "hit_rate",
            "compression_count",
            "eviction_count",
            "promotions",
            "memory_entries",
            "disk_entries",
            "memory_size_bytes",
            "disk_size_bytes",
        ):
            assert field in stats
        assert stats["namespace"] == "shape"

    def test_clear_resets_everything(self, make_store):
        """clear() empties both tiers and zeroes every counter."""
        store = make_store(max_memory_entry_bytes=50, compression_threshold_bytes=20)
        store.set("small", "v")
        store.set("large", payload(100))
        store.get("small")
        store.get("missing")

        store.clear()

        stats = store.get_stats()
        assert len(store) == 0
        assert stats["hits"] == 0
        assert stats["misses"] == 0
        assert stats["compression_count"] == 0
        assert stats["memory_size_bytes"] == 0
        assert stats["disk_size_bytes"] == 0
        assert store.get("small") is None


class TestPrefetch:
    """Batch warming through get()."""

    def test_returns_cached_keys_only(self, make_store):
        """Misses are skipped and every key is counted like a normal read."""
        store = make_store()
        store.set("a", 1)
        store.set("b", 2)

        warmed = store.prefetch(["a", "missing", "b"], priority="high")

        assert [(w.key, w.value, w.priority) for w in warmed] == [("a", 1, "high"), ("b", 2, "high")]
        stats = store.get_stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1

    def test_promotes_disk_entries(self, make_store):
        """Prefetching a disk-tier key moves it into memory."""
        store = make_store(max_memory_entry_bytes=50)
        store.set("cold", payload(100))

        store.prefetch(["cold"])

        assert store.tier_of("cold") == Tier.MEMORY


class TestErrors:
    """Failures surface as typed errors and never leave partial entries."""

    @pytest.mark.parametrize(
        "value",
        [
            {1, 2, 3},
            object(),
            float("nan"),
        ],
    )
    def test_unserializable_value(self, make_store, value):
        """Values that cannot be encoded as JSON are rejected."""
        store = make_store()

        with pytest.raises(CacheSerializationError) as exc_info:
            store.set("k", value)

        assert exc_info.value.details["key"] == "k"
        assert len(store) == 0

    def test_cyclic_value(self, make_store):
        """Self-referencing structures are rejected."""
        store = make_store()
        cyclic: list = []
        cyclic.append(cyclic)

        with pytest.raises(CacheSerializationError):
            store.set("k", cyclic)

    def test_unserializable_metadata(self, make_store):
        """Metadata goes through the same JSON check as the value."""
        store = make_store()

        with pytest.raises(CacheSerializationError):
            store.set("k", "v", metadata={"handle": object()})

        assert len(store) == 0

    def test_corrupted_uncompressed_payload(self, make_store):
        """Stored JSON text that no longer parses raises and is dropped."""
        store = make_store()
        store.set("k", "v")
        store._memory[hash_key("k")].value = "{truncated"

        with pytest.raises(CacheCorruptionError):
            store.get("k")

        assert store.tier_of("k") is None

    def test_corrupted_payload(self, make_store):
        """A compressed payload that fails to inflate raises and is dropped."""
        store = make_store(compression_threshold_bytes=10)
        store.set("k", payload(200))
        store._memory[hash_key("k")].value = b"definitely not deflate"

        with pytest.raises(CacheCorruptionError):
            store.get("k")

        assert store.tier_of("k") is None
        assert store.get_stats()["memory_size_bytes"] == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_memory_bytes": 0},
            {"max_disk_bytes": 0},
            {"default_ttl_ms": 0},
        ],
    )
    def test_invalid_construction(self, kwargs):
        """Budgets and the default TTL must be positive."""
        with pytest.raises(ValidationError):
            CacheStore(**kwargs)


class TestFromConfig:
    """Stores built from a validated CacheConfig."""

    def test_settings_applied(self, clock):
        """Every config field lands on the store."""
        config = CacheConfig(
            ttl_ms=60_000,
            max_memory_bytes=4096,
            max_disk_bytes=8192,
            max_memory_entry_bytes=1024,
            compression_threshold_bytes=512,
            semantic_threshold=0.6,
            namespace="configured",
        )

        store = CacheStore.from_config(config, clock=clock)

        assert store.default_ttl_ms == 60_000
        assert store.max_memory_bytes == 4096
        assert store.max_disk_bytes == 8192
        assert store.max_memory_entry_bytes == 1024
        assert store.compression_threshold_bytes == 512
        assert store.semantic_threshold == 0.6
        assert store.namespace == "configured"

    def test_entry_limit_clamped(self):
        """The memory placement limit never exceeds the memory budget."""
        store = CacheStore(max_memory_bytes=100, max_memory_entry_bytes=500)
        assert store.max_memory_entry_bytes == 100
