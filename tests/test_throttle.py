"""
Tests for the per-source request throttle.

Covers minimum spacing between requests and FIFO ordering of queued callers.
"""

from __future__ import annotations

import asyncio

import pytest

from coinradar.scraper.throttle import RequestThrottle


class FakeTime:
    """Clock whose sleep advances the clock instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.mark.asyncio
async def test_first_request_does_not_wait(fake_time: FakeTime) -> None:
    throttle = RequestThrottle("src", min_delay_ms=1500, clock=fake_time.clock, sleep=fake_time.sleep)
    await throttle.wait_for_slot()
    assert fake_time.sleeps == []


@pytest.mark.asyncio
async def test_back_to_back_requests_are_spaced(fake_time: FakeTime) -> None:
    throttle = RequestThrottle("src", min_delay_ms=1500, clock=fake_time.clock, sleep=fake_time.sleep)

    await throttle.wait_for_slot()
    fake_time.now += 0.5
    await throttle.wait_for_slot()

    assert fake_time.sleeps == [pytest.approx(1.0)]


@pytest.mark.asyncio
async def test_no_wait_when_delay_already_elapsed(fake_time: FakeTime) -> None:
    throttle = RequestThrottle("src", min_delay_ms=1500, clock=fake_time.clock, sleep=fake_time.sleep)

    await throttle.wait_for_slot()
    fake_time.now += 5
    await throttle.wait_for_slot()

    assert fake_time.sleeps == []


@pytest.mark.asyncio
async def test_queued_callers_run_in_arrival_order() -> None:
    """Concurrent callers acquire the slot in the order they arrived."""
    throttle = RequestThrottle("src", min_delay_ms=0)
    order: list[int] = []

    async def worker(n: int) -> None:
        async with throttle.queued():
            await asyncio.sleep(0)
            order.append(n)

    await asyncio.gather(*(worker(n) for n in range(5)))
    assert order == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_queued_is_exclusive() -> None:
    throttle = RequestThrottle("src", min_delay_ms=0)
    active = 0
    peak = 0

    async def worker() -> None:
        nonlocal active, peak
        async with throttle.queued():
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            active -= 1

    await asyncio.gather(*(worker() for _ in range(4)))
    assert peak == 1
