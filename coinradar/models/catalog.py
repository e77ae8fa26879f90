"""
Coin Radar - Catalog Models

Parsed pricing tables as stored in the catalog cache document. Field names
serialize as camelCase so the JSON file keeps its documented layout.
Money is Decimal, never float.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PriceValue(CamelModel):
    """One published number, with its previous value when the site shows one."""

    price: Decimal
    previous_price: Decimal | None = None
    updated_at: date | None = None

    @field_validator("price")
    @classmethod
    def price_positive(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v <= 0:
            raise ValueError("price must be a positive amount")
        return v


class GradePrice(CamelModel):
    """
    Prices published for one grade of one coin.

    greysheet: wholesale baseline
    cac: premium for certified/stickered coins
    pcgs / ngc: grading-service specific quotes
    """

    greysheet: PriceValue | None = None
    cac: PriceValue | None = None
    pcgs: PriceValue | None = None
    ngc: PriceValue | None = None

    def is_empty(self) -> bool:
        return not (self.greysheet or self.cac or self.pcgs or self.ngc)


class CoinEntry(CamelModel):
    catalog_id: int
    entry_id: str | None = None
    description: str
    normalized_id: str = Field(alias="coinId")
    grades: dict[str, GradePrice] = Field(default_factory=dict)
    scraped_at: datetime


class CatalogData(CamelModel):
    """One pricing catalog. Replaced as a whole, never patched row by row."""

    catalog_id: int
    name: str
    source_url: str = Field(alias="url")
    grade_columns: list[str] = Field(default_factory=list)
    coins: dict[str, CoinEntry] = Field(default_factory=dict)  # keyed by normalized_id
    scraped_at: datetime

    @field_validator("scraped_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_valid(self, ttl_hours: float, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return (now - self.scraped_at).total_seconds() < ttl_hours * 3600


class CatalogCacheDocument(CamelModel):
    """Root of the persisted catalog cache file."""

    version: int = 1
    last_fetched: datetime | None = None
    ttl_hours: int = 24
    catalogs: dict[str, CatalogData] = Field(default_factory=dict)
