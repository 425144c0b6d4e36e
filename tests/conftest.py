"""
ChatLLM Cache — Test Configuration and Shared Fixtures

Provides pytest configuration and shared fixtures for unit and integration tests.
"""

import logging
import os
from collections.abc import Generator
from typing import Any

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"

_CACHE_ENV_VARS = (
    "CACHE_TTL_MS",
    "CACHE_MAX_MEMORY_BYTES",
    "CACHE_MAX_DISK_BYTES",
    "CACHE_MAX_MEMORY_ENTRY_BYTES",
    "CACHE_COMPRESSION_THRESHOLD",
    "CACHE_SEMANTIC_THRESHOLD",
    "CACHE_STORAGE_DIR",
    "CACHE_PERSIST",
    "CACHE_NAMESPACE",
    "ENABLE_METRICS",
    "ENABLE_TRACING",
    "JSON_LOGS",
    "METRICS_PREFIX",
)


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Deterministic clock for TTL and recency tests."""
    return FakeClock()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Strip cache settings from the environment and run from an empty directory."""
    for name in _CACHE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def reset_global_state() -> Generator[None, None, None]:
    """Reset config, observability and cache registries around every test."""
    from chatllm_cache.cache.factory import reset_cache_factory
    from chatllm_cache.config import reset_config
    from chatllm_cache.observability import reset_observability

    reset_cache_factory()
    reset_config()
    reset_observability()
    yield
    reset_cache_factory()
    reset_config()
    reset_observability()

    # setup_logging() binds a handler to the stderr of the test that called it
    package_logger = logging.getLogger("chatllm_cache")
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def sample_messages() -> list[dict[str, str]]:
    """Chat request messages for building realistic keys."""
    return [
        {"role": "system", "content": "You are a helpful assistant."},
        {"role": "user", "content": "What is the capital of France?"},
    ]
