"""
ChatLLM Cache — Snapshot Persistence

Saves and restores the contents of a CacheStore as a single JSON document so
that the cache can outlive a CLI invocation or a server restart.

Snapshots are best-effort: a crash between writes loses whatever changed
since the last save. Writes go through a temp file in the target directory
and os.replace, so readers see either the old file or the new one.

Counters are not persisted.
"""

import base64
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from ..errors import PersistenceError
from .entry import CacheEntry, Tier
from .store import CacheStore

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


def _entry_to_record(tier: Tier, entry: CacheEntry) -> dict[str, Any]:
    value = base64.b64encode(entry.value).decode("ascii") if entry.compressed else entry.value
    return {
        "tier": tier.value,
        "key": entry.key,
        "content_hash": entry.content_hash,
        "value": value,
        "compressed": entry.compressed,
        "size_bytes": entry.size_bytes,
        "created_at": entry.created_at,
        "expires_at": entry.expires_at,
        "access_count": entry.access_count,
        "last_accessed_at": entry.last_accessed_at,
        "metadata": entry.metadata,
    }


def _record_to_entry(record: dict[str, Any]) -> tuple[Tier, CacheEntry]:
    compressed = bool(record["compressed"])
    value = base64.b64decode(record["value"]) if compressed else record["value"]
    if not compressed and not isinstance(value, str):
        raise TypeError("uncompressed snapshot values must be JSON text")
    entry = CacheEntry(
        key=record["key"],
        content_hash=record["content_hash"],
        value=value,
        compressed=compressed,
        size_bytes=int(record["size_bytes"]),
        created_at=float(record["created_at"]),
        expires_at=float(record["expires_at"]),
        access_count=int(record.get("access_count", 0)),
        last_accessed_at=float(record.get("last_accessed_at", 0.0)),
        metadata=record.get("metadata") or {},
    )
    return Tier(record["tier"]), entry


def _atomic_write(path: Path, data: str) -> None:
    """Write data to path via a sibling temp file and os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: str | None = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


def save_snapshot(store: CacheStore, path: str | Path) -> int:
    """
    Write every live entry of the store to a snapshot file.

    Args:
        store: Store to dump
        path: Destination file (parent directories are created)

    Returns:
        Number of entries written

    Raises:
        PersistenceError: If the snapshot cannot be encoded or written
    """
    path = Path(path)
    records = [_entry_to_record(tier, entry) for tier, entry in store.export_entries()]
    document = {"version": SNAPSHOT_VERSION, "namespace": store.namespace, "entries": records}

    try:
        text = json.dumps(document, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        logger.error(
            f"Cache snapshot for {path} is not JSON-encodable: {e}",
            extra={"path": str(path), "namespace": store.namespace, "error": str(e)},
        )
        raise PersistenceError(f"Failed to encode cache snapshot: {e}", details={"path": str(path)}) from e

    try:
        _atomic_write(path, text)
    except OSError as e:
        logger.error(
            f"Failed to write cache snapshot to {path}: {e}",
            extra={"path": str(path), "namespace": store.namespace, "error": str(e)},
            exc_info=True,
        )
        raise PersistenceError(f"Failed to write cache snapshot: {e}", details={"path": str(path)}) from e

    logger.info(f"Saved {len(records)} cache entries to {path}", extra={"namespace": store.namespace})
    return len(records)


def load_snapshot(store: CacheStore, path: str | Path) -> int:
    """
    Restore entries from a snapshot file into the store.

    Expired entries are skipped and tier budgets are enforced as entries
    are restored. A missing file restores nothing.

    Args:
        store: Store to populate
        path: Snapshot file

    Returns:
        Number of entries restored

    Raises:
        PersistenceError: If the file exists but cannot be parsed
    """
    path = Path(path)
    if not path.exists():
        logger.debug(f"No cache snapshot at {path}", extra={"namespace": store.namespace})
        return 0

    try:
        document = json.loads(path.read_text(encoding="utf-8"))
        if document.get("version") != SNAPSHOT_VERSION:
            raise ValueError(f"unsupported snapshot version {document.get('version')!r}")
        entries = [_record_to_entry(record) for record in document["entries"]]
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        logger.error(
            f"Failed to read cache snapshot from {path}: {e}",
            extra={"path": str(path), "namespace": store.namespace, "error": str(e)},
        )
        raise PersistenceError(f"Malformed cache snapshot: {e}", details={"path": str(path)}) from e

    restored = sum(1 for tier, entry in entries if store.restore_entry(tier, entry))
    logger.info(f"Restored {restored}/{len(entries)} cache entries from {path}", extra={"namespace": store.namespace})
    return restored
