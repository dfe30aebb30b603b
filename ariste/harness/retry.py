"""
Retry logic for chat calls.

A chat call that fails before any of the response has been consumed is safe
to repeat: nothing reached the observer and nothing was appended to the
conversation. Those failures (refused connections, connect timeouts, 429 and
5xx statuses) are retried with exponential backoff and jitter. Anything that
fails mid-stream, or with a client-side status, is raised immediately.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog

from ariste.errors import ChatTransportError

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_retries: int = 2,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        exponential_base: float = 2.0,
        jitter_range: float = 0.5,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter_range = jitter_range


def is_retryable_error(error: Exception) -> bool:
    """
    Determine if a failed chat call is worth repeating.

    Retryable:
    - 429 and 5xx statuses from the endpoint
    - connection refused / connect timeout (the request never got through)

    NOT retryable:
    - other 4xx statuses (the request itself is wrong)
    - read errors once streaming has begun
    - anything that is not a transport error
    """
    if not isinstance(error, ChatTransportError):
        return False
    if error.status_code is not None:
        return error.status_code in RETRYABLE_STATUS_CODES
    return isinstance(error.__cause__, (httpx.ConnectError, httpx.ConnectTimeout))


def compute_delay(
    attempt: int,
    config: RetryConfig,
    retry_after: Optional[float] = None,
) -> float:
    """
    Compute the delay before the next retry attempt.

        delay = min(max_delay, base_delay * (exponential_base ^ attempt))
        delay += random jitter in [-jitter_range * delay, +jitter_range * delay]

    A server-provided Retry-After wins, capped at max_delay.
    """
    if retry_after is not None:
        return min(max(0.0, retry_after), config.max_delay)

    delay = config.base_delay * (config.exponential_base ** attempt)
    delay = min(delay, config.max_delay)

    jitter = delay * config.jitter_range * (2 * random.random() - 1)
    return max(0.0, delay + jitter)


async def with_retries(
    func: Callable[[], Awaitable[Any]],
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> Any:
    """
    Execute an async function with retry logic.

    Args:
        func: The async function to execute (no arguments, use a closure)
        config: Retry configuration (uses defaults if not specified)
        on_retry: Optional callback when a retry occurs (attempt, error, delay)

    Raises:
        The last error if it is not retryable or all retries are exhausted
    """
    if config is None:
        config = RetryConfig()

    attempt = 0
    while True:
        try:
            return await func()
        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt >= config.max_retries:
                logger.error(
                    "retry.exhausted",
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                    total_attempts=attempt + 1,
                )
                raise

            delay = compute_delay(attempt, config, getattr(e, "retry_after", None))
            logger.warning(
                "retry.attempt",
                error_type=type(e).__name__,
                error=str(e)[:200],
                attempt=attempt + 1,
                max_retries=config.max_retries,
                delay_seconds=round(delay, 2),
            )
            if on_retry:
                on_retry(attempt + 1, e, delay)

            await asyncio.sleep(delay)
            attempt += 1
