"""
ChatLLM Cache — Payload Codec

Key hashing, size estimation and deflate compression for cached payloads.
Entries keep the UTF-8 JSON text of a value (deflated when large) and decode
it on every read, so callers never share objects with the cache.
"""

import hashlib
import json
import zlib
from typing import Any

from ..errors import CacheCorruptionError, CacheSerializationError

COMPRESSION_LEVEL = 6


def hash_key(key: str) -> str:
    """SHA-256 hex digest used as the tier-map index."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def serialize(key: str, value: Any) -> bytes:
    """
    Serialize a value to compact UTF-8 JSON.

    Raises:
        CacheSerializationError: If the value is cyclic or not JSON-serializable
    """
    try:
        text = json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError, RecursionError) as e:
        raise CacheSerializationError(key, str(e)) from e
    return text.encode("utf-8")


def compress(payload: bytes) -> bytes:
    """Deflate a serialized payload at COMPRESSION_LEVEL."""
    return zlib.compress(payload, COMPRESSION_LEVEL)


def decode(content_hash: str, text: str) -> Any:
    """
    Parse the JSON text of an uncompressed payload into a fresh value.

    Raises:
        CacheCorruptionError: If the text is not valid JSON
    """
    try:
        return json.loads(text)
    except (ValueError, TypeError) as e:
        raise CacheCorruptionError(content_hash, str(e)) from e


def decompress(content_hash: str, blob: bytes) -> Any:
    """
    Inflate and parse a compressed payload.

    Raises:
        CacheCorruptionError: If the blob does not round-trip to JSON
    """
    try:
        return json.loads(zlib.decompress(blob).decode("utf-8"))
    except (zlib.error, UnicodeDecodeError, ValueError, TypeError) as e:
        raise CacheCorruptionError(content_hash, str(e)) from e
