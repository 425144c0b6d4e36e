"""
ChatLLM Cache - Core Error Types

Exception hierarchy for the response cache runtime. Every error raised by the
package derives from ChatCacheError and carries the ErrorCode that tool
responses report for it.

A cache miss is never an error: lookups signal it by returning None.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes reported in tool responses."""

    INVALID_INPUT = "INVALID_INPUT"
    SERIALIZATION_FAILED = "SERIALIZATION_FAILED"
    CACHE_CORRUPTED = "CACHE_CORRUPTED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    CACHE_FAILURE = "CACHE_FAILURE"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ChatCacheError(Exception):
    """Base exception for all cache runtime errors."""

    error_code = ErrorCode.INTERNAL_ERROR
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and tool responses."""
        return {
            "error": type(self).__name__,
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(ChatCacheError):
    """Settings are invalid, or a cache instance could not be built from them."""

    error_code = ErrorCode.CONFIGURATION_ERROR


class ValidationError(ChatCacheError):
    """A caller passed an out-of-range argument (TTL, threshold, budget)."""

    error_code = ErrorCode.INVALID_INPUT
    status_code = 400


class CacheError(ChatCacheError):
    """Base for failures inside the cache store itself."""

    error_code = ErrorCode.CACHE_FAILURE


class CacheSerializationError(CacheError):
    """Value cannot be encoded as JSON (cyclic, sets, NaN, arbitrary objects)."""

    error_code = ErrorCode.SERIALIZATION_FAILED
    status_code = 400

    def __init__(self, key: str, reason: str):
        super().__init__(
            f"Value for key '{key[:80]}' is not JSON-serializable: {reason}",
            {"key": key[:80], "reason": reason},
        )


class CacheCorruptionError(CacheError):
    """A compressed payload no longer inflates to valid JSON."""

    error_code = ErrorCode.CACHE_CORRUPTED

    def __init__(self, content_hash: str, reason: str):
        super().__init__(
            f"Cached payload {content_hash[:12]} is corrupted: {reason}",
            {"content_hash": content_hash, "reason": reason},
        )


class PersistenceError(CacheError):
    """A snapshot file cannot be read or written."""

    error_code = ErrorCode.PERSISTENCE_FAILED


def make_error_response(
    error_code: ErrorCode,
    message: str,
    context: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build the failure payload returned by server tools.

    Example:
        >>> make_error_response(ErrorCode.INVALID_INPUT, "Input validation failed", {"function": "cache_get"})
        {'success': False, 'error_code': 'INVALID_INPUT', 'message': 'Input validation failed', 'details': {'function': 'cache_get'}}
    """
    return {
        "success": False,
        "error_code": error_code.value,
        "message": message,
        "details": context or {},
    }


def extract_error_code(error: Exception) -> ErrorCode:
    """ErrorCode for any exception; foreign exceptions map to INTERNAL_ERROR."""
    if isinstance(error, ChatCacheError):
        return error.error_code
    return ErrorCode.INTERNAL_ERROR
