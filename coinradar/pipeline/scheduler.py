"""
Coin Radar - Refresh Scheduler

Keeps the catalog cache warm: on a fixed cadence, asks the provider whether
any known catalog is stale and refreshes when it is. Runs until SIGINT or
SIGTERM.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import datetime, timezone
from typing import Any

import structlog

from coinradar.config import settings
from coinradar.providers.base import MarketDataProvider

logger = structlog.get_logger(__name__)


class Scheduler:
    """
    Periodic refresh loop for one provider.

    A failed refresh is logged and retried on the next tick.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        interval_minutes: float | None = None,
    ):
        self.provider = provider
        self._interval_seconds = (
            interval_minutes if interval_minutes is not None else settings.REFRESH_POLL_INTERVAL_MINUTES
        ) * 60
        self._shutdown_event = asyncio.Event()
        self.last_refresh: datetime | None = None
        self.refresh_count = 0

    async def shutdown(self) -> None:
        """Signal graceful shutdown to the scheduler loop."""
        logger.info("scheduler_shutdown_requested")
        self._shutdown_event.set()

    async def tick(self) -> bool:
        """One check. Returns True when a refresh ran."""
        if not self.provider.is_available():
            logger.warning("scheduler_provider_unavailable", provider=self.provider.name)
            return False
        if not await self.provider.needs_refresh():
            logger.debug("scheduler_cache_fresh", provider=self.provider.name)
            return False

        await self.provider.refresh_cache()
        self.last_refresh = datetime.now(timezone.utc)
        self.refresh_count += 1
        return True

    async def run(self) -> None:
        """
        Main scheduler loop. Runs until shutdown is signaled.

        The first check happens immediately.
        """
        logger.info(
            "scheduler_started",
            provider=self.provider.name,
            interval_seconds=self._interval_seconds,
        )

        try:
            while not self._shutdown_event.is_set():
                try:
                    await self.tick()
                except Exception as e:
                    logger.error(
                        "scheduler_refresh_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )

                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self._interval_seconds,
                    )
                except asyncio.TimeoutError:
                    # Expected: timeout means no shutdown signal, continue loop
                    continue

        except asyncio.CancelledError:
            logger.info("scheduler_cancelled")
            raise
        finally:
            logger.info("scheduler_stopped", refreshes=self.refresh_count)


async def run_scheduler(provider: MarketDataProvider, interval_minutes: float | None = None) -> None:
    """
    Run the scheduler with SIGTERM/SIGINT triggering graceful shutdown.
    """
    scheduler = Scheduler(provider, interval_minutes)

    def handle_signal(_signum: int, _frame: Any) -> None:
        logger.info("scheduler_signal_received")
        asyncio.create_task(scheduler.shutdown())

    loop = asyncio.get_running_loop()

    try:
        loop.add_signal_handler(signal.SIGTERM, handle_signal, signal.SIGTERM, None)
        loop.add_signal_handler(signal.SIGINT, handle_signal, signal.SIGINT, None)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler for all signals
        logger.warning("signal_handlers_not_supported_on_platform")

    try:
        await scheduler.run()
    except Exception as e:
        logger.error("scheduler_fatal_error", error=str(e), error_type=type(e).__name__)
        raise
