"""
Coin Radar - Catalog Store

Parsed catalogs persisted as one JSON document:

    {"version": 1, "lastFetched": ..., "ttlHours": 24, "catalogs": {"8971": {...}}}

Catalogs are replaced whole and the file is rewritten atomically (temp file
then os.replace), so readers never see a half-written catalog. Deleting the
file forces a cold rebuild.
"""

from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from coinradar.config import settings
from coinradar.models import CatalogCacheDocument, CatalogData, CoinEntry, GradePrice
from coinradar.utils.grades import normalize_grade

logger = structlog.get_logger(__name__)


class CatalogStore:
    """
    Usage:
        store = CatalogStore()
        if not store.is_valid(8971):
            store.put(parse_table(...))
        hits = store.search("1878")
    """

    def __init__(self, path: str | Path | None = None, ttl_hours: int | None = None) -> None:
        self.path = Path(path or settings.CACHE_FILE_PATH)
        self.ttl_hours = ttl_hours if ttl_hours is not None else settings.CATALOG_TTL_HOURS
        self._document: CatalogCacheDocument | None = None

    # -----------------------------------------------------------------------
    # Persistence
    # -----------------------------------------------------------------------

    @property
    def document(self) -> CatalogCacheDocument:
        if self._document is None:
            self._document = self._load()
        return self._document

    def _load(self) -> CatalogCacheDocument:
        if not self.path.exists():
            return CatalogCacheDocument(ttl_hours=self.ttl_hours, version=settings.CACHE_DOCUMENT_VERSION)
        try:
            document = CatalogCacheDocument.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(
                "catalog_store_unreadable",
                path=str(self.path),
                error=str(e),
                error_type=type(e).__name__,
                note="starting from an empty cache",
            )
            return CatalogCacheDocument(ttl_hours=self.ttl_hours, version=settings.CACHE_DOCUMENT_VERSION)

        logger.debug("catalog_store_loaded", path=str(self.path), catalogs=len(document.catalogs))
        return document

    def _save(self) -> None:
        document = self.document
        document.ttl_hours = self.ttl_hours
        payload = document.model_dump_json(by_alias=True, indent=2)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def reload(self) -> None:
        """Drop the in-memory document; the next access re-reads the file."""
        self._document = None

    # -----------------------------------------------------------------------
    # Catalog access
    # -----------------------------------------------------------------------

    def get(self, catalog_id: int) -> CatalogData | None:
        return self.document.catalogs.get(str(catalog_id))

    def put(self, catalog: CatalogData) -> None:
        """Replace the stored catalog wholesale and persist."""
        self.document.catalogs[str(catalog.catalog_id)] = catalog
        self.document.last_fetched = datetime.now(timezone.utc)
        self._save()
        logger.info(
            "catalog_store_put",
            catalog_id=catalog.catalog_id,
            coins=len(catalog.coins),
        )

    def is_valid(self, catalog_id: int, now: datetime | None = None) -> bool:
        catalog = self.get(catalog_id)
        return catalog is not None and catalog.is_valid(self.ttl_hours, now)

    def catalogs(self) -> list[CatalogData]:
        return list(self.document.catalogs.values())

    def has_data(self) -> bool:
        return bool(self.document.catalogs)

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def search(self, query: str) -> list[CoinEntry]:
        """Case-insensitive substring match on description and normalized id."""
        needle = query.strip().lower()
        if not needle:
            return []
        return [
            coin
            for catalog in self.document.catalogs.values()
            for coin in catalog.coins.values()
            if needle in coin.description.lower() or needle in coin.normalized_id
        ]

    def get_coin(self, catalog_id: int, coin_id: str) -> CoinEntry | None:
        catalog = self.get(catalog_id)
        if catalog is None:
            return None
        return catalog.coins.get(coin_id.strip().lower())

    def get_grade_price(self, catalog_id: int, coin_id: str, grade: str) -> GradePrice | None:
        coin = self.get_coin(catalog_id, coin_id)
        if coin is None:
            return None
        return coin.grades.get(normalize_grade(grade))

    # -----------------------------------------------------------------------
    # Maintenance
    # -----------------------------------------------------------------------

    def clear(self) -> None:
        """Forget every catalog and delete the cache file."""
        self._document = CatalogCacheDocument(ttl_hours=self.ttl_hours, version=settings.CACHE_DOCUMENT_VERSION)
        self.path.unlink(missing_ok=True)
        logger.info("catalog_store_cleared", path=str(self.path))

    def status(self, now: datetime | None = None) -> dict[str, Any]:
        """Summary for operators: counts, freshness, last fetch time."""
        now = now or datetime.now(timezone.utc)
        catalogs = self.catalogs()
        valid = [c for c in catalogs if c.is_valid(self.ttl_hours, now)]
        return {
            "path": str(self.path),
            "ttl_hours": self.ttl_hours,
            "last_fetched": self.document.last_fetched,
            "catalogs": len(catalogs),
            "valid_catalogs": len(valid),
            "stale_catalogs": len(catalogs) - len(valid),
            "coins": sum(len(c.coins) for c in catalogs),
        }
