"""
Coin Radar - Market Price Models

Provider-facing records. Derived on demand from stored catalogs, never
persisted.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator


class PriceRange(BaseModel):
    low: Decimal
    mid: Decimal
    high: Decimal

    @model_validator(mode="after")
    def ordered(self) -> PriceRange:
        if not (self.low <= self.mid <= self.high):
            raise ValueError(f"price range out of order: {self.low} / {self.mid} / {self.high}")
        return self


class MarketPriceRecord(BaseModel):
    item_id: str
    name: str
    category: str
    source: str
    source_url: str
    graded_prices: dict[str, PriceRange] = Field(default_factory=dict)
    last_updated: datetime


class ProviderStatus(BaseModel):
    name: str
    available: bool
    last_check: datetime
    last_refresh: datetime | None = None
    item_count: int | None = None
    error: str | None = None
