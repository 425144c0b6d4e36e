"""
ChatLLM Cache — Configuration Schemas

Defines typed configuration models using Pydantic for validation and type safety.
All configuration is defined here and validated at startup.

Sizes are in bytes, durations in milliseconds.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_TTL_MS = 24 * 60 * 60 * 1000
DEFAULT_MAX_MEMORY_BYTES = 100 * 1024 * 1024
DEFAULT_MAX_DISK_BYTES = 1024 * 1024 * 1024
DEFAULT_COMPRESSION_THRESHOLD = 1024


class Environment(str, Enum):
    """Runtime environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CacheConfig(BaseModel):
    """Response cache configuration."""

    ttl_ms: int = Field(default=DEFAULT_TTL_MS, ge=1, description="Default entry TTL in milliseconds")
    max_memory_bytes: int = Field(
        default=DEFAULT_MAX_MEMORY_BYTES,
        ge=1,
        description="Budget for the summed payload size of the memory tier",
    )
    max_disk_bytes: int = Field(
        default=DEFAULT_MAX_DISK_BYTES,
        ge=1,
        description="Budget for the summed payload size of the disk tier",
    )
    max_memory_entry_bytes: int | None = Field(
        default=None,
        ge=1,
        description="Largest single payload placed in the memory tier (None = memory budget)",
    )
    compression_threshold_bytes: int = Field(
        default=DEFAULT_COMPRESSION_THRESHOLD,
        ge=0,
        description="Payloads whose serialized size exceeds this are deflate-compressed",
    )
    semantic_threshold: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Default minimum similarity for semantic lookups (0.0-1.0)",
    )
    storage_dir: str = Field(default="./cache/advanced", description="Directory for cache snapshots")
    persist: bool = Field(default=False, description="Load and save a snapshot around the cache lifetime")
    namespace: str = Field(default="chatllm", description="Cache instance namespace (snapshot file stem)")

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        """Namespace is used as a file name, so keep it path-safe."""
        if not v or any(sep in v for sep in ("/", "\\", "..")):
            raise ValueError("namespace must be a non-empty, path-safe name")
        return v

    @model_validator(mode="after")
    def clamp_memory_entry_limit(self) -> "CacheConfig":
        """A single memory-tier entry can never exceed the memory budget."""
        if self.max_memory_entry_bytes is None or self.max_memory_entry_bytes > self.max_memory_bytes:
            self.max_memory_entry_bytes = self.max_memory_bytes
        return self

    @property
    def snapshot_path(self) -> str:
        """Path of the snapshot file used when persistence is enabled."""
        return f"{self.storage_dir.rstrip('/')}/{self.namespace}.json"


class ObservabilityConfig(BaseModel):
    """Observability and logging configuration."""

    enable_metrics: bool = Field(default=True, description="Enable in-process metrics collection")
    enable_tracing: bool = Field(default=False, description="Enable span tracing")
    json_logs: bool = Field(default=False, description="Emit structured JSON log lines")
    metrics_prefix: str = Field(default="chatllm_cache", description="Prefix for exported metric names")


class ChatCacheConfig(BaseModel):
    """Root configuration for the cache runtime."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Runtime environment")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")

    cache: CacheConfig = Field(default_factory=CacheConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    @field_validator("cache")
    @classmethod
    def validate_cache(cls, v: CacheConfig, info: Any) -> CacheConfig:
        """Persisted caches in production must not live under /tmp."""
        environment = info.data.get("environment")
        if environment == Environment.PRODUCTION and v.persist and v.storage_dir.startswith("/tmp"):
            raise ValueError("storage_dir under /tmp is not allowed for persisted caches in production")
        return v

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)
