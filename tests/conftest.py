"""
Coin Radar - Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- HTML page fixtures
- Throttle-free fetch client wired to respx
- Temporary catalog store
- Async test support via pytest-asyncio
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest

from coinradar.scraper.cache import ContentCache
from coinradar.scraper.client import FetchClient
from coinradar.scraper.retry import RetryPolicy
from coinradar.store import CatalogStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"
BASE_URL = "https://www.cdnexchange.com"
COOKIES = "PHPSESSID=abc123; remember_me=xyz"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)


def load_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Page Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def catalog_html() -> str:
    """Morgan Dollars pricing page: one navigation table, one pricing grid."""
    return load_fixture("morgan_dollars.html")


@pytest.fixture
def login_html() -> str:
    return load_fixture("login_page.html")


@pytest.fixture
def scraped_at() -> datetime:
    return datetime(2025, 12, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Component Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Stand-in for asyncio.sleep so throttle and backoff waits are instant."""
    return AsyncMock()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay_ms=10, max_delay_ms=100, jitter_ms=0)


@pytest.fixture
async def fetch_client(no_sleep: AsyncMock, retry_policy: RetryPolicy) -> AsyncGenerator[FetchClient, None]:
    """
    Fetch client for BASE_URL with cookies configured and instant sleeps.

    HTTP is not mocked here: wrap calls in `respx.mock(base_url=BASE_URL)`.
    """
    client = FetchClient(
        source="cdn-test",
        base_url=BASE_URL,
        cookies=COOKIES,
        cache=ContentCache(),
        use_browser=False,
        require_auth=True,
        retry_policy=retry_policy,
        sleep=no_sleep,
    )
    yield client
    await client.close()


@pytest.fixture
def catalog_store(tmp_path: Path) -> CatalogStore:
    return CatalogStore(path=tmp_path / "cdn-exchange-cache.json", ttl_hours=24)
