"""
Coin Radar - CDN Exchange Catalog Ingestion

Fetches catalog pricing pages, parses them and keeps the Catalog Store
current. One bad catalog never blocks a batch; an authentication failure
does, because every further request would fail the same way.

Usage:
    async with CDNExchangeClient() as cdn:
        catalog = await cdn.fetch_catalog(8971)
        report = await cdn.fetch_all_known()
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

import structlog
from pydantic import BaseModel, Field

from coinradar.config import settings
from coinradar.engine.table_parser import TableLocator, extract_page_heading, is_login_page, make_soup, parse_table
from coinradar.models import CatalogData
from coinradar.pipeline.discovery import CatalogDiscovery
from coinradar.scraper import FetchOptions
from coinradar.scraper.cache import cache_key
from coinradar.scraper.client import FetchClient
from coinradar.scraper.errors import AuthenticationRequired, ScraperError
from coinradar.store import CatalogStore

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Known catalogs (US coins)
# ---------------------------------------------------------------------------

KNOWN_CATALOGS: dict[int, str] = {
    # Dollars
    9661: "Flowing Hair Dollars (1794-1795)",
    8965: "Draped Bust Dollars (1795-1803)",
    8966: "Gobrecht Dollars (1836-1839)",
    8967: "Seated Dollars (1840-1873)",
    8968: "Seated Dollars, Proof (1840-1873)",
    8969: "Trade Dollars (1873-1878)",
    8970: "Trade Dollars, Proof (1873-1885)",
    8971: "Morgan Dollars (1878-1921)",
    8972: "Morgan Dollars, Proof (1878-1921)",
    8973: "Peace Dollars (1921-1935)",
    9560: "Peace Dollars, Proof (1921-1922)",
    8974: "Eisenhower Dollars (1971-1978)",
    8976: "Susan B. Anthony Dollars (1979-1999)",
    8977: "Presidential Dollars (2007-2016, 2020)",
    9299: "Sacagawea Dollars (2000-2008)",
    15901: "Native American Dollars (2009-)",
    9603: "American Innovation Dollars (2018-)",
    10536: "Commemorative Morgan & Peace Silver Dollars (2021-)",
    # Half dollars
    9659: "Flowing Hair Half Dollars (1794-1795)",
    9660: "Draped Bust Half Dollars (1796-1807)",
    8954: "Capped Bust Half Dollars (1807-1839)",
    8955: "Liberty Seated Half Dollars (1839-1891)",
    8957: "Barber Halves (1892-1915)",
    8959: "Walking Liberty Halves (1916-1947)",
    8961: "Franklin Halves (1948-1963)",
    8963: "Kennedy Halves (1964-)",
    # Quarters
    8945: "Barber Quarters (1892-1916)",
    8947: "Standing Liberty Quarters (1916-1930)",
    8949: "Washington Quarters (1932-1998)",
    8951: "State Quarters (1999-2008)",
    # Dimes
    8934: "Barber Dimes (1892-1916)",
    8936: "Mercury Dimes (1916-1945)",
    8938: "Roosevelt Dimes (1946-)",
    # Nickels
    8923: "Liberty Nickels (1883-1912)",
    8925: "Buffalo Nickels (1913-1938)",
    8927: "Jefferson Nickels (1938-)",
    # Cents
    8911: "Indian Head Cents (1859-1909)",
    8913: "Lincoln Cents, Wheat (1909-1958)",
    8916: "Lincoln Cents, Memorial (1959-2008)",
    # Modern bullion
    8979: "American Silver Eagles (1986-)",
    8980: "American Gold Eagles (1986-)",
    8981: "American Platinum Eagles (1997-)",
    8982: "American Gold Buffalo (2006-)",
}


def load_known_catalogs(path: str | Path | None = None) -> dict[int, str]:
    """Built-in catalogs plus any saved by a previous discovery run."""
    catalogs = dict(KNOWN_CATALOGS)
    saved_path = Path(path or settings.KNOWN_CATALOGS_FILE)
    if not saved_path.exists():
        return catalogs
    try:
        saved: Any = json.loads(saved_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("known_catalogs_unreadable", path=str(saved_path), error=str(e))
        return catalogs
    if isinstance(saved, dict):
        for key, name in saved.items():
            if str(key).isdigit():
                catalogs.setdefault(int(key), str(name))
    return catalogs


def save_known_catalogs(catalogs: dict[int, str], path: str | Path | None = None) -> Path:
    saved_path = Path(path or settings.KNOWN_CATALOGS_FILE)
    saved_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {str(k): v for k, v in sorted(catalogs.items())}
    saved_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return saved_path


# ---------------------------------------------------------------------------
# Batch report
# ---------------------------------------------------------------------------


class FetchReport(BaseModel):
    """Outcome of a multi-catalog fetch."""

    succeeded: list[int] = Field(default_factory=list)
    failed: dict[int, str] = Field(default_factory=dict)   # catalog id -> error class
    skipped: list[int] = Field(default_factory=list)
    auth_failed: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class CDNExchangeClient:
    """Catalog-level operations over the fetch client, parser and store."""

    def __init__(
        self,
        client: FetchClient | None = None,
        store: CatalogStore | None = None,
        discovery: CatalogDiscovery | None = None,
        known_catalogs: dict[int, str] | None = None,
        locator: TableLocator | None = None,
    ) -> None:
        self.client = client or FetchClient(require_auth=True)
        self.store = store or CatalogStore()
        self.discovery = discovery or CatalogDiscovery(self.client)
        self.known_catalogs = known_catalogs if known_catalogs is not None else load_known_catalogs()
        self._locator = locator or TableLocator()

    async def __aenter__(self) -> CDNExchangeClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.close()

    def catalog_url(self, catalog_id: int) -> str:
        return self.client.resolve(settings.CDN_PRICING_PATH.format(catalog_id=catalog_id))

    # -----------------------------------------------------------------------
    # Single catalog
    # -----------------------------------------------------------------------

    async def fetch_catalog(self, catalog_id: int, force_refresh: bool = False) -> CatalogData | None:
        """
        Return a current catalog, fetching it when the stored copy is stale.

        Errors are logged and reported as None.
        """
        try:
            return await self.fetch_catalog_checked(catalog_id, force_refresh)
        except ScraperError as e:
            logger.error(
                "cdn_catalog_fetch_failed",
                catalog_id=catalog_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def fetch_catalog_checked(self, catalog_id: int, force_refresh: bool = False) -> CatalogData:
        """
        Like fetch_catalog() but raises the underlying ScraperError.

        Raises:
            AuthenticationRequired: no cookies, rejected cookies, or a login page was served.
            FetchError: the page could not be retrieved.
        """
        if not force_refresh and self.store.is_valid(catalog_id):
            cached = self.store.get(catalog_id)
            if cached is not None:
                logger.debug("cdn_catalog_cache_hit", catalog_id=catalog_id)
                return cached

        url = self.catalog_url(catalog_id)
        logger.info("cdn_catalog_fetch", catalog_id=catalog_id, force_refresh=force_refresh)
        result = await self.client.fetch(url, FetchOptions(skip_cache=force_refresh))

        soup = make_soup(result.content)
        if is_login_page(soup):
            self.client.cache.invalidate(cache_key(self.client.source, url))
            raise AuthenticationRequired(
                f"Login page served for catalog {catalog_id}; session cookies are missing or expired",
                url=url,
            )

        name = (
            extract_page_heading(soup)
            or self.known_catalogs.get(catalog_id)
            or f"Catalog {catalog_id}"
        )
        catalog = parse_table(soup, catalog_id, name, url, locator=self._locator)
        self.store.put(catalog)

        logger.info(
            "cdn_catalog_fetched",
            catalog_id=catalog_id,
            name=name,
            coins=len(catalog.coins),
            from_cache=result.from_cache,
        )
        return catalog

    # -----------------------------------------------------------------------
    # Batches
    # -----------------------------------------------------------------------

    async def fetch_catalogs(
        self,
        catalog_ids: Iterable[int],
        force_refresh: bool = False,
    ) -> dict[int, CatalogData | None]:
        ids = list(catalog_ids)
        report = await self._fetch_batch(ids, force_refresh)
        succeeded = set(report.succeeded)
        return {cid: self.store.get(cid) if cid in succeeded else None for cid in ids}

    async def fetch_all_known(self, force_refresh: bool = False) -> FetchReport:
        return await self._fetch_batch(sorted(self.known_catalogs), force_refresh)

    async def _fetch_batch(self, catalog_ids: list[int], force_refresh: bool) -> FetchReport:
        report = FetchReport()
        logger.info("cdn_batch_start", catalogs=len(catalog_ids), force_refresh=force_refresh)

        for index, catalog_id in enumerate(catalog_ids):
            try:
                await self.fetch_catalog_checked(catalog_id, force_refresh)
            except AuthenticationRequired as e:
                report.failed[catalog_id] = type(e).__name__
                report.skipped = catalog_ids[index + 1:]
                report.auth_failed = True
                logger.error(
                    "cdn_batch_auth_failed",
                    catalog_id=catalog_id,
                    skipped=len(report.skipped),
                    error=str(e),
                )
                break
            except ScraperError as e:
                report.failed[catalog_id] = type(e).__name__
                logger.error(
                    "cdn_catalog_fetch_failed",
                    catalog_id=catalog_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                report.succeeded.append(catalog_id)

        logger.info(
            "cdn_batch_complete",
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            skipped=len(report.skipped),
        )
        return report

    # -----------------------------------------------------------------------
    # Discovery
    # -----------------------------------------------------------------------

    async def discover(self, root_node_id: int | None = None, max_depth: int | None = None) -> dict[int, str]:
        return await self.discovery.discover(root_node_id, max_depth)

    def merge_known_catalogs(self, discovered: dict[int, str]) -> int:
        added = 0
        for catalog_id, name in discovered.items():
            if catalog_id not in self.known_catalogs:
                self.known_catalogs[catalog_id] = name
                added += 1
        return added

    async def update_known_catalogs(
        self,
        root_node_id: int | None = None,
        max_depth: int | None = None,
    ) -> int:
        """Add newly discovered catalogs to the known registry. Returns the number added."""
        discovered = await self.discover(root_node_id, max_depth)
        added = self.merge_known_catalogs(discovered)
        logger.info("known_catalogs_updated", discovered=len(discovered), added=added)
        return added
