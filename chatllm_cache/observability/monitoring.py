"""
ChatLLM Cache — Observability Monitoring

Process-local metrics, span timing and structured logging for the cache
runtime. Nothing here talks to an external backend: counters, gauges and
histogram samples accumulate in memory and exporter.py republishes them.
"""

import contextvars
import json
import logging
import time
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

# Request correlation id shared by log lines emitted inside one tool call
_current_trace: contextvars.ContextVar[str | None] = contextvars.ContextVar("chatllm_trace_id", default=None)

# Attributes every LogRecord carries; anything else came in through extra={...}
_STANDARD_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

SeriesKey = tuple[str, tuple[tuple[str, str], ...]]


def _series(name: str, tags: dict[str, str] | None) -> SeriesKey:
    return name, tuple(sorted((tags or {}).items()))


class ObservabilityAdapter:
    """
    In-memory metrics sink for one process.

    Series are identified by name plus a sorted tag set, so
    ``increment("requests.total", tags={"cached": "true"})`` and the same call
    with ``{"cached": "false"}`` are separate counters.
    """

    def __init__(self, enable_metrics: bool = True, enable_tracing: bool = False):
        self.enable_metrics = enable_metrics
        self.enable_tracing = enable_tracing

        self._counters: dict[SeriesKey, float] = defaultdict(float)
        self._gauges: dict[SeriesKey, float] = {}
        self._samples: dict[SeriesKey, list[float]] = defaultdict(list)

        self.logger = logging.getLogger("chatllm_cache.observability")

    # Metrics

    def increment(self, metric: str, value: float = 1.0, tags: dict[str, str] | None = None) -> None:
        """Add ``value`` to a counter series."""
        if self.enable_metrics:
            self._counters[_series(metric, tags)] += value

    def gauge(self, metric: str, value: float, tags: dict[str, str] | None = None) -> None:
        """Overwrite a gauge series with its latest reading."""
        if self.enable_metrics:
            self._gauges[_series(metric, tags)] = value

    def histogram(self, metric: str, value: float, tags: dict[str, str] | None = None) -> None:
        """Append one observation (latency, payload size) to a histogram series."""
        if self.enable_metrics:
            self._samples[_series(metric, tags)].append(value)

    def record_store_stats(self, stats: dict[str, Any]) -> None:
        """Mirror a CacheStore.get_stats() snapshot into per-tier gauges."""
        for tier in ("memory", "disk"):
            self.gauge("cache.entries", stats[f"{tier}_entries"], tags={"tier": tier})
            self.gauge("cache.size_bytes", stats[f"{tier}_size_bytes"], tags={"tier": tier})
        self.gauge("cache.hit_rate", stats["hit_rate"])

    def get_counter(self, metric: str, tags: dict[str, str] | None = None) -> float:
        """Current value of one counter series (0.0 if never incremented)."""
        return self._counters.get(_series(metric, tags), 0.0)

    def get_metrics(self) -> dict[str, Any]:
        """
        Snapshot of every series.

        Returns:
            {"counters": [...], "gauges": [...], "histograms": [...]}; counter and
            gauge items carry name, tags and value, histogram items carry
            count, sum, min and max
        """

        def points(series: dict[SeriesKey, float]) -> list[dict[str, Any]]:
            return [{"name": name, "tags": dict(tags), "value": value} for (name, tags), value in series.items()]

        histograms = [
            {
                "name": name,
                "tags": dict(tags),
                "count": len(samples),
                "sum": sum(samples),
                "min": min(samples),
                "max": max(samples),
            }
            for (name, tags), samples in self._samples.items()
            if samples
        ]
        return {"counters": points(self._counters), "gauges": points(self._gauges), "histograms": histograms}

    def clear_metrics(self) -> None:
        self._counters.clear()
        self._gauges.clear()
        self._samples.clear()

    # Events and spans

    def event(self, name: str, payload: dict[str, Any]) -> None:
        """Log a named lifecycle or request event with the current trace id."""
        self.logger.info(
            f"{name}: {payload}",
            extra={"event": name, "payload": payload, "trace_id": self.get_trace_id()},
        )

    def record_request(self, cached: bool, source: str = "exact") -> None:
        """
        Record the cache outcome of a served LLM request.

        Args:
            cached: Whether the response came from the cache
            source: Lookup kind that produced the outcome ("exact" or "semantic")
        """
        self.increment("requests.total", tags={"cached": str(cached).lower(), "source": source})
        self.event("llm_request", {"cached": cached, "source": source, "outcome": "hit" if cached else "miss"})

    @contextmanager
    def trace(self, span_name: str, tags: dict[str, str] | None = None) -> Iterator[None]:
        """
        Time a block as a span and record it under "span.duration_ms".

        A no-op when tracing is disabled. Exceptions are logged and re-raised.
        """
        if not self.enable_tracing:
            yield
            return

        trace_id = self.get_trace_id() or self.generate_trace_id()
        started = time.perf_counter()
        try:
            yield
        except Exception as e:
            self.logger.error(
                f"Span {span_name} failed: {e}",
                extra={"span_name": span_name, "trace_id": trace_id, "tags": tags or {}},
                exc_info=True,
            )
            raise
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self.histogram("span.duration_ms", elapsed_ms, tags={"span_name": span_name})
            self.logger.debug(
                f"Span {span_name} took {elapsed_ms:.2f}ms",
                extra={"span_name": span_name, "trace_id": trace_id, "duration_ms": round(elapsed_ms, 2)},
            )

    def get_trace_id(self) -> str | None:
        return _current_trace.get()

    def generate_trace_id(self) -> str:
        """Start a new trace in the current context and return its id."""
        trace_id = uuid4().hex
        _current_trace.set(trace_id)
        return trace_id


class JSONFormatter(logging.Formatter):
    """One JSON object per log line, including any ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        trace_id = _current_trace.get()
        if trace_id:
            line["trace_id"] = trace_id

        line.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_") and key not in line
        )

        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)

        return json.dumps(line, default=str)


def setup_logging(level: str = "INFO", json_logs: bool = False) -> logging.Logger:
    """
    Configure the "chatllm_cache" logger tree with a single stderr handler.

    Args:
        level: Log level name
        json_logs: Emit JSONFormatter lines instead of plain text
    """
    logger = logging.getLogger("chatllm_cache")
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(
        JSONFormatter() if json_logs else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


_adapter: ObservabilityAdapter | None = None


def get_observability() -> ObservabilityAdapter:
    """Process-wide adapter, built from the observability config on first use."""
    global _adapter

    if _adapter is None:
        from ..config import get_config

        settings = get_config().observability
        _adapter = ObservabilityAdapter(
            enable_metrics=settings.enable_metrics,
            enable_tracing=settings.enable_tracing,
        )
    return _adapter


def initialize_observability(enable_metrics: bool = True, enable_tracing: bool = False) -> ObservabilityAdapter:
    """Replace the process-wide adapter (server startup)."""
    global _adapter

    _adapter = ObservabilityAdapter(enable_metrics=enable_metrics, enable_tracing=enable_tracing)
    return _adapter


def reset_observability() -> None:
    """Drop the process-wide adapter (testing only)."""
    global _adapter
    _adapter = None
