"""
Coin Radar - Per-Source Request Throttle

Requests to one source run one at a time, in arrival order, and each
physical request starts at least `min_delay_ms` after the previous one.
asyncio.Lock wakes waiters FIFO, which gives the queue ordering.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)


class RequestThrottle:
    """
    Serializes requests to one source and spaces them out.

    Usage:
        throttle = RequestThrottle("cdn", min_delay_ms=1500)
        async with throttle.queued():
            await throttle.wait_for_slot()
            ... send request ...
    """

    def __init__(
        self,
        source: str,
        min_delay_ms: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.source = source
        self._min_delay = min_delay_ms / 1000
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request_at: float | None = None

    @asynccontextmanager
    async def queued(self) -> AsyncIterator[None]:
        """Hold the source's single request slot for the duration of the block."""
        async with self._lock:
            yield

    async def wait_for_slot(self) -> None:
        """Sleep until the minimum spacing since the last request has elapsed."""
        if self._last_request_at is not None:
            elapsed = self._clock() - self._last_request_at
            remaining = self._min_delay - elapsed
            if remaining > 0:
                logger.debug(
                    "throttle_wait",
                    source=self.source,
                    wait_seconds=round(remaining, 3),
                )
                await self._sleep(remaining)
        self._last_request_at = self._clock()
