"""
Coin Radar - Configuration & Constants

Every delay, TTL, retry bound and normalization factor lives here.
No hardcoded values in business logic.

Usage:
    from coinradar.config import settings
"""

from __future__ import annotations

from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Central configuration for Coin Radar.

    Loads from environment variables (and a local .env) with fallback defaults.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # -----------------------------------------------------------------------
    # CDN Exchange
    # -----------------------------------------------------------------------
    CDN_BASE_URL: str = "https://www.cdnexchange.com"
    CDN_SOURCE_NAME: str = "CDN Exchange"
    CDN_COOKIES: str = ""                       # Raw Cookie header copied from a logged-in browser
    CDN_COOKIES_FILE: str = "data/cdn-cookies.txt"
    CDN_DISCOVERY_PATH: str = "/xhr/xhr.catalog.php"
    CDN_PRICING_PATH: str = "/pricing/{catalog_id}"
    CDN_ENTRY_PATH: str = "/entry/{entry_id}"

    # -----------------------------------------------------------------------
    # Catalog Store
    # -----------------------------------------------------------------------
    CACHE_FILE_PATH: str = "data/cdn-exchange-cache.json"
    CATALOG_TTL_HOURS: int = 24
    CACHE_DOCUMENT_VERSION: int = 1
    KNOWN_CATALOGS_FILE: str = "data/cdn-known-catalogs.json"  # Discovered catalogs saved by `discover --save`

    # -----------------------------------------------------------------------
    # Content Cache (raw fetched pages)
    # -----------------------------------------------------------------------
    FETCH_CACHE_TTL_SECONDS: int = 7 * 24 * 3600

    # -----------------------------------------------------------------------
    # Throttle & Retry
    # -----------------------------------------------------------------------
    SCRAPE_MIN_DELAY_MS: int = 1500            # Spacing between requests to one source
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_MS: int = 1000
    RETRY_MAX_DELAY_MS: int = 30000
    RETRY_JITTER_MS: int = 1000
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # -----------------------------------------------------------------------
    # Browser transport
    # -----------------------------------------------------------------------
    USE_BROWSER: bool = False
    BROWSER_HEADLESS: bool = True
    BROWSER_NAV_TIMEOUT_MS: int = 30000
    BROWSER_SETTLE_MS: int = 1000

    # -----------------------------------------------------------------------
    # Anti-detection
    # -----------------------------------------------------------------------
    PROXY_URL: str = ""
    SCRAPE_USER_AGENT: str = ""                # Empty means pick one from the rotation list

    # -----------------------------------------------------------------------
    # Discovery
    # -----------------------------------------------------------------------
    DISCOVERY_ROOT_NODE: int = 1               # "US Coins"
    DISCOVERY_MAX_DEPTH: int = 5
    DISCOVERY_DELAY_MS: int = 200

    # -----------------------------------------------------------------------
    # Table parsing
    # -----------------------------------------------------------------------
    TABLE_SELECTORS: list[str] = ["table.table", "table"]

    # -----------------------------------------------------------------------
    # Normalization
    # Used when a grade publishes a single value and no band can be derived
    # -----------------------------------------------------------------------
    PRICE_LOW_FACTOR: Decimal = Decimal("0.9")
    PRICE_HIGH_FACTOR: Decimal = Decimal("1.1")
    PREMIUM_MIN_DIFF: Decimal = Decimal("0.01")  # 1% gap before a "<grade> CAC" entry is emitted
    MARKET_CATEGORY: str = "coin"

    # -----------------------------------------------------------------------
    # Scheduler
    # -----------------------------------------------------------------------
    REFRESH_POLL_INTERVAL_MINUTES: int = 60

    # -----------------------------------------------------------------------
    # Logging
    # -----------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True


# Singleton instance
settings = Settings()
