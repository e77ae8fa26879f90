"""
Coin Radar - Market Price Normalizer

Converts a stored CoinEntry into the provider-facing MarketPriceRecord.

Per grade:
    mid  = first available of greysheet, pcgs, ngc, cac
    low  = lowest other published sub-value <= mid, else mid * PRICE_LOW_FACTOR
    high = highest other published sub-value >= mid, else mid * PRICE_HIGH_FACTOR

A CAC figure that differs from mid by more than PREMIUM_MIN_DIFF is also
emitted as its own "<grade> CAC" entry so the premium is never folded into
the base grade.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

import structlog

from coinradar.config import settings
from coinradar.models import CoinEntry, GradePrice, MarketPriceRecord, PriceRange

logger = structlog.get_logger(__name__)

PRIMARY_PRIORITY = ("greysheet", "pcgs", "ngc", "cac")
PREMIUM_FIELD = "cac"
PREMIUM_TAG = "CAC"
ITEM_ID_PREFIX = "cdn"

_CENTS = Decimal("0.01")


def _q(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def build_item_id(catalog_id: int, normalized_id: str) -> str:
    return f"{ITEM_ID_PREFIX}-{catalog_id}-{normalized_id}"


def parse_item_id(item_id: str) -> tuple[int, str] | None:
    """
    Inverse of build_item_id(): "cdn-8971-1878-8tf-1" -> (8971, "1878-8tf-1").

    Returns None for ids from other sources or malformed ids.
    """
    prefix, sep, rest = item_id.partition("-")
    if prefix != ITEM_ID_PREFIX or not sep:
        return None
    catalog_part, sep, coin_id = rest.partition("-")
    if not sep or not coin_id or not catalog_part.isdigit():
        return None
    return int(catalog_part), coin_id


def grade_range(
    grade_price: GradePrice,
    low_factor: Decimal | None = None,
    high_factor: Decimal | None = None,
) -> PriceRange | None:
    """Collapse a grade's sub-values into {low, mid, high}. None if nothing is published."""
    low_factor = low_factor if low_factor is not None else settings.PRICE_LOW_FACTOR
    high_factor = high_factor if high_factor is not None else settings.PRICE_HIGH_FACTOR

    published = {
        field: value.price
        for field in PRIMARY_PRIORITY
        if (value := getattr(grade_price, field)) is not None
    }
    if not published:
        return None

    primary_field = next(f for f in PRIMARY_PRIORITY if f in published)
    mid = published.pop(primary_field)

    lows = [v for v in published.values() if v <= mid]
    highs = [v for v in published.values() if v >= mid]
    low = min(lows) if lows else mid * low_factor
    high = max(highs) if highs else mid * high_factor

    return PriceRange(low=_q(low), mid=_q(mid), high=_q(high))


def premium_range(
    grade_price: GradePrice,
    mid: Decimal,
    min_diff: Decimal | None = None,
    low_factor: Decimal | None = None,
    high_factor: Decimal | None = None,
) -> PriceRange | None:
    """Band for the CAC premium, or None when it is missing or not material."""
    premium = getattr(grade_price, PREMIUM_FIELD)
    if premium is None or mid <= 0:
        return None
    min_diff = min_diff if min_diff is not None else settings.PREMIUM_MIN_DIFF
    if abs(premium.price - mid) / mid <= min_diff:
        return None

    low_factor = low_factor if low_factor is not None else settings.PRICE_LOW_FACTOR
    high_factor = high_factor if high_factor is not None else settings.PRICE_HIGH_FACTOR
    value = premium.price
    return PriceRange(low=_q(value * low_factor), mid=_q(value), high=_q(value * high_factor))


def to_market_price(
    coin: CoinEntry,
    catalog_name: str | None = None,
    base_url: str | None = None,
    source: str | None = None,
    category: str | None = None,
) -> MarketPriceRecord:
    """
    Build the provider-facing record for one catalog row.

    Args:
        coin: Stored row.
        catalog_name: Appended to the description for display when given.
        base_url: Site root used to build source_url.
        source: Source label. Defaults to CDN_SOURCE_NAME.
        category: Item category. Defaults to MARKET_CATEGORY.
    """
    base_url = (base_url or settings.CDN_BASE_URL).rstrip("/")
    graded: dict[str, PriceRange] = {}

    for grade, grade_price in coin.grades.items():
        band = grade_range(grade_price)
        if band is None:
            continue
        graded[grade] = band

        premium = premium_range(grade_price, band.mid)
        if premium is not None:
            graded[f"{grade} {PREMIUM_TAG}"] = premium

    if coin.entry_id:
        path = settings.CDN_ENTRY_PATH.format(entry_id=coin.entry_id)
    else:
        path = settings.CDN_PRICING_PATH.format(catalog_id=coin.catalog_id)

    name = f"{coin.description} ({catalog_name})" if catalog_name else coin.description

    return MarketPriceRecord(
        item_id=build_item_id(coin.catalog_id, coin.normalized_id),
        name=name,
        category=category or settings.MARKET_CATEGORY,
        source=source or settings.CDN_SOURCE_NAME,
        source_url=f"{base_url}{path}",
        graded_prices=graded,
        last_updated=coin.scraped_at,
    )
