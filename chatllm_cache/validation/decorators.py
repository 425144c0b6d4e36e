"""
ChatLLM Cache - Validation Decorators

validate_input wraps a server tool so its keyword arguments are checked
against a Pydantic model before the tool body runs. Rejected calls return the
standard error payload instead of raising, and are counted under the
"validation.failed" metric.
"""

import functools
import inspect
import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from ..errors import ErrorCode, make_error_response
from ..observability.monitoring import get_observability

logger = logging.getLogger(__name__)


def _describe(error: ValidationError) -> list[dict[str, str]]:
    return [
        {
            "field": ".".join(str(loc) for loc in item["loc"]) or "__root__",
            "message": item["msg"],
            "type": item["type"],
        }
        for item in error.errors()
    ]


def _rejection(tool_name: str, error: ValidationError, kwargs: dict[str, Any]) -> dict[str, Any]:
    problems = _describe(error)

    logger.warning(
        f"Rejected {tool_name} call: {len(problems)} invalid field(s)",
        extra={"tool": tool_name, "validation_errors": problems, "input_keys": sorted(kwargs)},
    )
    get_observability().increment(
        "validation.failed",
        tags={"function": tool_name, "error_count": str(len(problems))},
    )

    return make_error_response(
        ErrorCode.INVALID_INPUT,
        "Input validation failed",
        {"validation_errors": problems, "function": tool_name},
    )


def validate_input(schema: type[BaseModel]) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Validate a tool's keyword arguments against ``schema``.

    The wrapped function receives every schema field, with defaults filled
    in. Works for both coroutine and plain functions.

    Example:
        >>> @validate_input(CacheGetInput)
        ... async def cache_get(key: str):
        ...     ...
        >>> (await cache_get(key=123))["error_code"]
        'INVALID_INPUT'
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    params = schema(**kwargs).model_dump()
                except ValidationError as e:
                    return _rejection(func.__name__, e, kwargs)
                return await func(*args, **params)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                params = schema(**kwargs).model_dump()
            except ValidationError as e:
                return _rejection(func.__name__, e, kwargs)
            return func(*args, **params)

        return sync_wrapper

    return decorator
