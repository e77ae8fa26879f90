"""
Coin Radar - CDN Exchange Provider Adapter

Serves MarketPriceRecords from the Catalog Store. Reads never touch the
network except get_price(), which fetches a catalog that was never stored.
refresh_cache() re-fetches every known catalog.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from coinradar.config import settings
from coinradar.engine.market_price import parse_item_id, to_market_price
from coinradar.models import MarketPriceRecord, ProviderStatus
from coinradar.pipeline.cdn_exchange import CDNExchangeClient, FetchReport
from coinradar.scraper.credentials import CredentialProvider, default_cookie_provider

logger = structlog.get_logger(__name__)


class CDNExchangeProvider:
    """
    Usage:
        provider = CDNExchangeProvider()
        if provider.is_available():
            records = await provider.search("1878 8TF", limit=10)
    """

    name = settings.CDN_SOURCE_NAME

    def __init__(
        self,
        client: CDNExchangeClient | None = None,
        credentials: CredentialProvider | None = None,
    ) -> None:
        self._credentials = credentials or default_cookie_provider()
        self._client = client
        self._last_refresh: datetime | None = None
        self._last_report: FetchReport | None = None
        self._last_error: str | None = None

    @property
    def client(self) -> CDNExchangeClient:
        if self._client is None:
            self._client = CDNExchangeClient()
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    def is_available(self) -> bool:
        """True when session cookies are configured."""
        return bool(self._credentials.get_cookies())

    def _catalog_name(self, catalog_id: int) -> str | None:
        catalog = self.client.store.get(catalog_id)
        return catalog.name if catalog else self.client.known_catalogs.get(catalog_id)

    async def search(self, query: str, limit: int | None = None) -> list[MarketPriceRecord]:
        coins = self.client.store.search(query)
        if limit is not None:
            coins = coins[: max(0, limit)]
        return [
            to_market_price(coin, catalog_name=self._catalog_name(coin.catalog_id))
            for coin in coins
        ]

    async def get_price(self, item_id: str) -> MarketPriceRecord | None:
        parsed = parse_item_id(item_id)
        if parsed is None:
            return None
        catalog_id, coin_id = parsed

        catalog = self.client.store.get(catalog_id)
        if catalog is None and self.is_available():
            catalog = await self.client.fetch_catalog(catalog_id)
        if catalog is None:
            return None

        coin = self.client.store.get_coin(catalog_id, coin_id)
        if coin is None:
            return None
        return to_market_price(coin, catalog_name=catalog.name)

    async def needs_refresh(self) -> bool:
        """True when any known catalog is missing or older than the TTL."""
        store = self.client.store
        return any(not store.is_valid(cid) for cid in self.client.known_catalogs)

    async def refresh_cache(self) -> None:
        """Re-fetch every known catalog, bypassing the stored and cached copies."""
        logger.info("cdn_provider_refresh_start", catalogs=len(self.client.known_catalogs))
        report = await self.client.fetch_all_known(force_refresh=True)
        self._last_report = report
        self._last_refresh = datetime.now(timezone.utc)
        if report.auth_failed:
            self._last_error = "AuthenticationRequired"
        elif report.failed:
            self._last_error = f"{len(report.failed)} catalogs failed"
        else:
            self._last_error = None
        logger.info(
            "cdn_provider_refresh_complete",
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            skipped=len(report.skipped),
        )

    async def get_status(self) -> ProviderStatus:
        available = self.is_available()
        error = self._last_error
        if not available:
            error = "Session cookies not configured"
        return ProviderStatus(
            name=self.name,
            available=available,
            last_check=datetime.now(timezone.utc),
            last_refresh=self._last_refresh or self.client.store.document.last_fetched,
            item_count=sum(len(c.coins) for c in self.client.store.catalogs()),
            error=error,
        )
