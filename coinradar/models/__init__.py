"""Coin Radar - Catalog & Market Price Models"""

from coinradar.models.catalog import (
    CatalogCacheDocument,
    CatalogData,
    CoinEntry,
    GradePrice,
    PriceValue,
)
from coinradar.models.market import MarketPriceRecord, PriceRange, ProviderStatus

__all__ = [
    "CatalogCacheDocument",
    "CatalogData",
    "CoinEntry",
    "GradePrice",
    "MarketPriceRecord",
    "PriceRange",
    "PriceValue",
    "ProviderStatus",
]
