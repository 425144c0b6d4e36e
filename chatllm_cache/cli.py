"""ChatLLM Cache command line.

Thin commands over the persisted cache snapshot: each invocation restores
the snapshot configured by ``CACHE_STORAGE_DIR`` / ``CACHE_NAMESPACE``,
runs one operation, and writes the snapshot back on exit.

Example::

    chatllm-cache stats
    chatllm-cache invalidate --pattern '^userA'
    chatllm-cache metrics --format prometheus
    chatllm-cache clear --yes
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Optional

import typer

from .cache import CacheStore, close_all_caches, create_cache
from .config import load_config
from .errors import ChatCacheError
from .observability import MetricsExporter, setup_logging

app = typer.Typer(no_args_is_help=True, help="Inspect and manage the ChatLLM response cache.")


@contextmanager
def _cli_store() -> Iterator[CacheStore]:
    """Open the persisted store for one command and snapshot it afterwards."""
    try:
        config = load_config()
        setup_logging("WARNING", json_logs=config.observability.json_logs)
        yield create_cache(config.cache.model_copy(update={"persist": True}), name="cli")
    except ChatCacheError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(code=1)
    finally:
        close_all_caches()


def _emit(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@app.command("stats")
def stats() -> None:
    """Show cache statistics for the persisted snapshot.

    Hit and miss counters start at zero on every invocation because
    counters are not part of the snapshot.
    """
    with _cli_store() as store:
        _emit(store.get_stats())


@app.command("clear")
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Clear all cached data."""
    if not yes:
        typer.confirm("This will clear all cached data. Continue?", abort=True)

    with _cli_store() as store:
        removed = len(store)
        store.clear()

    typer.echo(f"Cache cleared ({removed} entries removed)")


@app.command("invalidate")
def invalidate(
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Exact key to remove."),
    pattern: Optional[str] = typer.Option(None, "--pattern", "-p", help="Regular expression over original keys."),
) -> None:
    """Remove entries by exact key or by pattern."""
    if key is None and pattern is None:
        typer.echo("Error: pass --key or --pattern", err=True)
        raise typer.Exit(code=2)

    with _cli_store() as store:
        try:
            removed = store.invalidate(key, pattern=pattern)
        except re.error as e:
            typer.echo(f"Error: invalid pattern: {e}", err=True)
            raise typer.Exit(code=2)

    typer.echo(f"Removed {removed} entries")


@app.command("get")
def get(
    key: str = typer.Argument(help="Exact key to look up."),
    similar: Optional[float] = typer.Option(
        None, "--similar", "-s", min=0.0, max=1.0, help="Fall back to a similarity lookup at this threshold."
    ),
) -> None:
    """Print a cached value, exiting 1 on a miss."""
    with _cli_store() as store:
        value = store.get(key)
        if value is None and similar is not None:
            match = store.semantic_get(key, similar)
            if match is not None:
                _emit({"key": match.key, "similarity": match.similarity, "value": match.value})
                return

    if value is None:
        typer.echo("Not cached", err=True)
        raise typer.Exit(code=1)
    _emit(value)


@app.command("metrics")
def metrics(
    format: str = typer.Option("json", "--format", "-f", help="Export format: json or prometheus."),
) -> None:
    """Export cache metrics."""
    if format not in ("json", "prometheus"):
        typer.echo(f"Error: unknown format '{format}'", err=True)
        raise typer.Exit(code=2)

    with _cli_store() as store:
        exporter = MetricsExporter(store, prefix=load_config().observability.metrics_prefix)
        if format == "prometheus":
            typer.echo(exporter.to_prometheus(), nl=False)
        else:
            _emit(exporter.to_json())


@app.command("serve")
def serve() -> None:
    """Run the MCP server over stdio."""
    from .server import main as run_server

    run_server()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
