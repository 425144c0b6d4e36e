"""
ChatLLM Cache - Tool Input Schemas

Pydantic models validating the inputs of every server tool.
"""

import re
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

MAX_KEY_LENGTH = 100_000
MAX_TTL_MS = 30 * 24 * 60 * 60 * 1000


class CacheGetInput(BaseModel):
    """Input validation for cache_get tool."""

    key: str = Field(
        ...,
        max_length=MAX_KEY_LENGTH,
        description="Original cache key (typically a serialized request)",
    )


class CacheSetInput(BaseModel):
    """Input validation for cache_set tool."""

    key: str = Field(
        ...,
        max_length=MAX_KEY_LENGTH,
        description="Original cache key (typically a serialized request)",
    )
    value: Any = Field(
        ...,
        description="JSON-serializable value to store",
    )
    ttl: int | None = Field(
        default=None,
        ge=1,
        le=MAX_TTL_MS,
        description="Time-to-live in milliseconds (None = use default)",
    )
    metadata: dict[str, Any] | None = Field(
        default=None,
        description="Optional metadata stored alongside the entry",
    )


class CacheSemanticGetInput(BaseModel):
    """Input validation for cache_semantic_get tool."""

    query: str = Field(
        ...,
        min_length=1,
        max_length=MAX_KEY_LENGTH,
        description="Query text to match against cached keys",
    )
    threshold: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Similarity threshold (0-1), uses config default if None",
    )

    @field_validator("query")
    @classmethod
    def validate_query_not_empty(cls, v: str) -> str:
        """Ensure query is not just whitespace."""
        if not v.strip():
            raise ValueError("Query cannot be empty or only whitespace")
        return v


class CacheInvalidateInput(BaseModel):
    """Input validation for cache_invalidate tool."""

    key: str | None = Field(
        default=None,
        max_length=MAX_KEY_LENGTH,
        description="Original key to invalidate",
    )
    pattern: str | None = Field(
        default=None,
        min_length=1,
        max_length=1000,
        description="Regular expression over original keys (takes precedence over key)",
    )

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str | None) -> str | None:
        """Reject patterns that are not valid regular expressions."""
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid regular expression: {e}") from e
        return v

    @model_validator(mode="after")
    def require_key_or_pattern(self) -> "CacheInvalidateInput":
        """One of key or pattern must be supplied."""
        if self.key is None and self.pattern is None:
            raise ValueError("Either key or pattern is required")
        return self


class CachePrefetchInput(BaseModel):
    """Input validation for cache_prefetch tool."""

    keys: list[str] = Field(
        ...,
        min_length=1,
        max_length=1000,
        description="Keys to warm (1-1000)",
    )
    priority: Literal["low", "normal", "high"] = Field(
        default="low",
        description="Priority label attached to warmed entries",
    )


class CacheClearInput(BaseModel):
    """Input validation for cache_clear tool (no parameters)."""

    pass


class GetCacheStatsInput(BaseModel):
    """Input validation for get_cache_stats tool (no parameters)."""

    pass


class CheckStatusInput(BaseModel):
    """Input validation for check_status tool."""

    include_details: bool = Field(
        default=False,
        description="Include detailed cache and observability stats",
    )


class GetMetricsInput(BaseModel):
    """Input validation for get_metrics tool."""

    format: Literal["json", "prometheus"] = Field(
        default="json",
        description="Export format: 'json' or 'prometheus'",
    )
