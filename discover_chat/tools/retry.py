"""Retry wrapper for transient tool failures."""

import asyncio
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

from discover_chat.utils.errors import ToolExecutionError
from discover_chat.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 503, 504})

RETRYABLE_PATTERNS = (
    "econnrefused",
    "etimedout",
    "enotfound",
    "enetunreach",
    "econnreset",
    "socket hang up",
    "network",
    "timeout",
    "rate limit",
    "temporarily unavailable",
)

# Checked before the retryable patterns
NON_RETRYABLE_PATTERNS = (
    "validation",
    "invalid",
    "unauthorized",
    "forbidden",
    "not found",
    "bad request",
)

DISPLAY_NAMES = {
    "semanticSearch": "Vector search",
    "tidalSearch": "Tidal search",
    "batchMetadata": "Metadata lookup",
    "albumTracks": "Album tracks",
}


@dataclass
class RetryConfig:
    """Tool retry policy. ``max_attempts=2`` means one retry."""

    max_attempts: int = 2
    delay_seconds: float = field(default_factory=lambda: float(os.getenv("TOOL_RETRY_DELAY_SECONDS", "1.0")))
    # Applies to each attempt separately
    timeout_seconds: float = field(default_factory=lambda: float(os.getenv("TOOL_TIMEOUT_SECONDS", "15.0")))


def _status_code(error: BaseException) -> int | None:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def is_retryable_error(error: BaseException) -> bool:
    """Decide whether a failed attempt is worth repeating."""
    if isinstance(error, ToolExecutionError):
        return error.retryable

    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, TimeoutError, ConnectionError)):
        return True

    status = _status_code(error)
    if status is not None:
        if status in RETRYABLE_STATUS_CODES:
            return True
        if 400 <= status < 500:
            return False

    message = str(error).lower()
    if any(pattern in message for pattern in NON_RETRYABLE_PATTERNS):
        return False
    if any(pattern in message for pattern in RETRYABLE_PATTERNS):
        return True

    # Unknown server-side faults are retried
    return True


def user_friendly_message(error: BaseException, tool_name: str) -> str:
    """Map a raw failure to a short message safe to show the user."""
    name = DISPLAY_NAMES.get(tool_name, tool_name)
    message = str(error).lower()

    if "econnrefused" in message or "enetunreach" in message:
        return f"{name} service is currently unavailable"
    if "etimedout" in message or "timeout" in message or isinstance(error, (TimeoutError, httpx.TimeoutException)):
        return f"{name} operation timed out"
    if "rate limit" in message or "429" in message:
        return "Rate limit exceeded. Please wait a moment and try again."
    if "validation" in message or "invalid" in message:
        return str(error) or "Invalid input"
    return f"{name} is temporarily unavailable"


async def execute_with_retry(
    fn: Callable[[], Awaitable[T]], tool_name: str, config: RetryConfig | None = None
) -> tuple[T, bool]:
    """Run ``fn``, repeating it after a delay while failures are transient.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt
        tool_name: Tool name used for logging and user-facing messages
        config: Retry policy; defaults to one retry after the configured delay

    Returns:
        Tuple of the result and whether a retry happened

    Raises:
        ToolExecutionError: When the failure is not retryable or attempts are exhausted
    """
    config = config or RetryConfig()
    attempt = 1
    while True:
        try:
            async with asyncio.timeout(config.timeout_seconds):
                result = await fn()
        except Exception as e:
            was_retried = attempt > 1
            if not is_retryable_error(e):
                logger.debug(f"Tool {tool_name} failed with a non-retryable error: {e}")
                raise _as_tool_error(e, tool_name, retryable=False, was_retried=was_retried) from e

            if attempt >= config.max_attempts:
                logger.warning(f"Tool {tool_name} failed after {attempt} attempts: {e}")
                raise _as_tool_error(e, tool_name, retryable=True, was_retried=was_retried) from e

            logger.info(f"Retrying tool {tool_name} in {config.delay_seconds}s after error: {e}")
            await asyncio.sleep(config.delay_seconds)
            attempt += 1
            continue

        if attempt > 1:
            logger.info(f"Tool {tool_name} succeeded on attempt {attempt}")
        return result, attempt > 1


def _as_tool_error(error: Exception, tool_name: str, retryable: bool, was_retried: bool) -> ToolExecutionError:
    if isinstance(error, ToolExecutionError):
        return error.with_retry_flag(was_retried)
    if isinstance(error, TimeoutError):
        code = "TIMEOUT"
    elif was_retried:
        code = "RETRY_EXHAUSTED"
    else:
        code = "NON_RETRYABLE_ERROR" if not retryable else "TOOL_ERROR"
    return ToolExecutionError(user_friendly_message(error, tool_name), retryable, was_retried, code)
