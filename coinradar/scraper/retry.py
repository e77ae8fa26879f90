"""
Coin Radar - Retry with Exponential Backoff

    delay(attempt) = min(max_delay, base_delay * 2 ** (attempt - 1) + jitter)

Only errors flagged retryable (network failures, 5xx, 429) are retried.
Fatal errors propagate on the first attempt.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog

from coinradar.config import settings
from coinradar.scraper.errors import FetchError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry bounds, in milliseconds."""

    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    jitter_ms: int = 1000

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay_ms=settings.RETRY_BASE_DELAY_MS,
            max_delay_ms=settings.RETRY_MAX_DELAY_MS,
            jitter_ms=settings.RETRY_JITTER_MS,
        )

    def delay_seconds(self, attempt: int) -> float:
        """Backoff before the retry that follows `attempt` (1-based)."""
        jitter = random.uniform(0, self.jitter_ms) if self.jitter_ms > 0 else 0.0
        delay_ms = min(self.max_delay_ms, self.base_delay_ms * (2 ** (attempt - 1)) + jitter)
        return delay_ms / 1000


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, FetchError) and error.retryable


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    label: str = "",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `operation` until it succeeds, a fatal error occurs, or attempts run out.

    Args:
        operation: Zero-argument coroutine factory. Called once per attempt.
        policy: Attempt count and backoff bounds.
        label: Context for log lines (usually the URL).
        sleep: Injectable sleep for tests.

    Returns:
        The operation's result.

    Raises:
        The last error raised by `operation`, with `attempts` updated when it
        is a FetchError.
    """
    attempts = max(1, policy.max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except FetchError as e:
            e.attempts = attempt
            if not e.retryable or attempt == attempts:
                if e.retryable:
                    logger.error(
                        "fetch_retries_exhausted",
                        label=label,
                        attempts=attempt,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                raise

            wait_time = policy.delay_seconds(attempt)
            logger.warning(
                "fetch_retry_scheduled",
                label=label,
                attempt=attempt,
                wait_seconds=round(wait_time, 2),
                status_code=e.status_code,
                error_type=type(e).__name__,
            )
            await sleep(wait_time)

    raise AssertionError("unreachable")
