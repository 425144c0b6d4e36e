"""
ChatLLM Cache — Metrics Exporter

Republishes cache statistics and adapter counters for dashboards:
- JSON document for custom dashboards
- Prometheus text exposition format (version 0.0.4)

The store only produces get_stats(); all formatting lives here.
"""

import time
from datetime import UTC, datetime
from typing import Any

from ..cache.store import CacheStore
from .monitoring import ObservabilityAdapter


def _format_value(value: float) -> str:
    if isinstance(value, float) and not value.is_integer():
        return f"{value:.6g}"
    return str(int(value))


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _sanitize_name(name: str) -> str:
    return "".join(ch if ch.isalnum() or ch == "_" else "_" for ch in name)


class MetricsExporter:
    """Formats cache statistics in JSON and Prometheus text."""

    def __init__(
        self,
        store: CacheStore,
        adapter: ObservabilityAdapter | None = None,
        prefix: str = "chatllm_cache",
    ):
        self.store = store
        self.adapter = adapter
        self.prefix = prefix
        self._start_time = time.time()

    def _metric(self, lines: list[str], name: str, kind: str, help_text: str, samples: list[tuple[str, float]]) -> None:
        full_name = f"{self.prefix}_{name}"
        lines.append(f"# HELP {full_name} {help_text}")
        lines.append(f"# TYPE {full_name} {kind}")
        for labels, value in samples:
            lines.append(f"{full_name}{labels} {_format_value(value)}")

    def to_prometheus(self) -> str:
        """
        Render metrics in Prometheus text format.

        Returns:
            Exposition text terminated by a newline
        """
        stats = self.store.get_stats()
        lines: list[str] = []

        self._metric(lines, "uptime_seconds", "gauge", "Exporter uptime in seconds", [("", round(time.time() - self._start_time, 3))])
        self._metric(lines, "hits_total", "counter", "Total cache hits", [("", stats["hits"])])
        self._metric(lines, "misses_total", "counter", "Total cache misses", [("", stats["misses"])])
        self._metric(lines, "hit_rate", "gauge", "Cache hit rate (0-1)", [("", round(stats["hit_rate"], 4))])
        self._metric(lines, "evictions_total", "counter", "Total evicted entries", [("", stats["eviction_count"])])
        self._metric(
            lines, "compressions_total", "counter", "Total compressed payloads", [("", stats["compression_count"])]
        )
        self._metric(lines, "promotions_total", "counter", "Disk to memory promotions", [("", stats["promotions"])])
        self._metric(
            lines,
            "entries",
            "gauge",
            "Entries per tier",
            [('{tier="memory"}', stats["memory_entries"]), ('{tier="disk"}', stats["disk_entries"])],
        )
        self._metric(
            lines,
            "size_bytes",
            "gauge",
            "Payload bytes per tier",
            [('{tier="memory"}', stats["memory_size_bytes"]), ('{tier="disk"}', stats["disk_size_bytes"])],
        )

        if self.adapter is not None:
            # One HELP/TYPE block per counter name, one sample per tag set
            grouped: dict[str, list[tuple[str, float]]] = {}
            for counter in self.adapter.get_metrics()["counters"]:
                labels = ",".join(f'{k}="{_escape_label(v)}"' for k, v in sorted(counter["tags"].items()))
                samples = grouped.setdefault(counter["name"], [])
                samples.append((f"{{{labels}}}" if labels else "", counter["value"]))
            for name, samples in grouped.items():
                self._metric(lines, f"{_sanitize_name(name)}_total", "counter", f"Adapter counter {name}", samples)

        return "\n".join(lines) + "\n"

    def to_json(self) -> dict[str, Any]:
        """
        Build a JSON-serializable metrics document.

        Returns:
            Dict with timestamp, uptime, cache stats and adapter metrics
        """
        document: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "uptime_seconds": round(time.time() - self._start_time, 3),
            "cache": self.store.get_stats(),
        }
        if self.adapter is not None:
            document["metrics"] = self.adapter.get_metrics()
        return document
