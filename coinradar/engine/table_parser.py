"""
Coin Radar - Pricing Table Parser

Turns a catalog page's HTML grade matrix into CatalogData. Pure: no I/O,
deterministic for identical HTML and timestamp.

Expected markup:

    <table>
      <thead><tr><th>Description</th><th>VF20</th><th>MS60*</th>...</tr></thead>
      <tbody>
        <tr class="entry">
          <td><a href="/entry/7444">1878 8TF $1</a></td>
          <td>
            <span class="p-g">59.83 <i data-bs-toggle="tooltip" title="Was 58.00 updated 11/25/2025"></i></span>
            <span class="p-c">64.00</span>
            <span class="p-p">61.00</span>
            <span class="p-n">60.00</span>
          </td>
        </tr>
      </tbody>
    </table>
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Sequence

import structlog
from bs4 import BeautifulSoup, Tag

from coinradar.config import settings
from coinradar.models import CatalogData, CoinEntry, GradePrice, PriceValue
from coinradar.scraper.errors import ParseError
from coinradar.utils.grades import is_grade_label, normalize_grade

logger = structlog.get_logger(__name__)

# Sub-value span classes inside a grade cell
PRICE_SPAN_CLASSES = {
    "greysheet": "p-g",
    "cac": "p-c",
    "pcgs": "p-p",
    "ngc": "p-n",
}

DESCRIPTION_HEADER = "DESCRIPTION"
HEADING_SELECTORS = "h1, h2, .page-title, .catalog-title"

_TOOLTIP_RE = re.compile(
    r"Was\s+\$?([\d,]+(?:\.\d+)?)\s+updated\s+(\d{1,2})/(\d{1,2})/?(\d{2,4})?",
    re.IGNORECASE,
)
_ENTRY_HREF_RE = re.compile(r"/entry/(\d+)")
_LOGIN_TITLE_RE = re.compile(r"log\s*in|sign\s*in", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def normalize_coin_id(description: str) -> str:
    """
    Stable row key derived from the description.

        "1878 8TF $1" -> "1878-8tf-1"
    """
    text = re.sub(r"\s+", "-", description.strip().lower())
    return re.sub(r"[^a-z0-9-]", "", text)


def parse_price(text: str | None) -> Decimal | None:
    """Parse "1,680.00" / "$59.83" into a positive Decimal; anything else is None."""
    if not text:
        return None
    cleaned = re.sub(r"[$,\s]", "", text)
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def _parse_tooltip_date(month: str, day: str, year: str | None, today: date) -> date | None:
    try:
        if year is None:
            return date(today.year, int(month), int(day))
        y = int(year)
        if y < 100:
            y += 2000
        return date(y, int(month), int(day))
    except ValueError:
        return None


def parse_price_value(span: Tag, today: date | None = None) -> PriceValue | None:
    """
    Read one price sub-value and its optional "Was X updated M/D/YYYY" tooltip.

    The tooltip icon's own text never contributes to the price.
    """
    tooltip = span.select_one('i[data-bs-toggle="tooltip"]')
    text = "".join(
        str(s) for s in span.find_all(string=True)
        if tooltip is None or s.parent is not tooltip
    )
    # Badges ("CAC", "PCGS") sit next to the number; keep only the leading amount
    match = re.search(r"\$?\s*[\d,]+(?:\.\d+)?", text)
    price = parse_price(match.group(0)) if match else None
    if price is None:
        return None

    previous_price: Decimal | None = None
    updated_at: date | None = None
    if tooltip is not None:
        title = tooltip.get("title") or tooltip.get("data-bs-original-title") or ""
        tip = _TOOLTIP_RE.search(str(title))
        if tip:
            previous_price = parse_price(tip.group(1))
            updated_at = _parse_tooltip_date(
                tip.group(2), tip.group(3), tip.group(4), today or date.today()
            )

    return PriceValue(price=price, previous_price=previous_price, updated_at=updated_at)


def parse_grade_cell(cell: Tag, today: date | None = None) -> GradePrice | None:
    """
    Parse every sub-value of one grade cell.

    A cell without sub-value spans is read as a single wholesale number.
    Returns None when no sub-value was accepted.
    """
    values: dict[str, PriceValue] = {}
    has_spans = False

    for field, css_class in PRICE_SPAN_CLASSES.items():
        span = cell.select_one(f".{css_class}")
        if span is None:
            continue
        has_spans = True
        value = parse_price_value(span, today)
        if value is not None:
            values[field] = value

    if not has_spans:
        value = parse_price_value(cell, today)
        if value is not None:
            values["greysheet"] = value

    if not values:
        return None
    return GradePrice(**values)


# ---------------------------------------------------------------------------
# Page helpers
# ---------------------------------------------------------------------------


def is_login_page(html: str | BeautifulSoup) -> bool:
    """True when the site served its login form instead of the requested page."""
    soup = make_soup(html) if isinstance(html, str) else html
    title = soup.title.get_text(" ", strip=True) if soup.title else ""
    if _LOGIN_TITLE_RE.search(title):
        return True
    return soup.select_one('form input[type="password"]') is not None and soup.select_one("table") is None


def extract_page_heading(html: str | BeautifulSoup) -> str | None:
    soup = make_soup(html) if isinstance(html, str) else html
    heading = soup.select_one(HEADING_SELECTORS)
    if heading is None:
        return None
    text = heading.get_text(" ", strip=True)
    return text or None


# ---------------------------------------------------------------------------
# Table location
# ---------------------------------------------------------------------------


def _header_cells(table: Tag) -> list[Tag]:
    cells = table.select("thead tr th")
    if cells:
        return cells
    first_row = table.find("tr")
    if first_row is None:
        return []
    return first_row.find_all(["th", "td"], recursive=False)


class TableLocator:
    """
    Finds the pricing grid on a page.

    Selectors are tried in order; within each, tables are tried in document
    order. A table is accepted only if its header row carries at least one
    recognized grade label, so an unrelated earlier table is never mistaken
    for the grid.
    """

    def __init__(self, selectors: Sequence[str] | None = None) -> None:
        self.selectors = list(selectors or settings.TABLE_SELECTORS)

    def locate(self, soup: BeautifulSoup) -> Tag:
        seen: set[int] = set()
        for selector in self.selectors:
            for table in soup.select(selector):
                if id(table) in seen:
                    continue
                seen.add(id(table))
                headers = [c.get_text(" ", strip=True) for c in _header_cells(table)]
                if any(is_grade_label(h) for h in headers):
                    return table
        raise ParseError(f"No pricing table found (tried {len(seen)} tables)")


# ---------------------------------------------------------------------------
# Table parsing
# ---------------------------------------------------------------------------


def _data_rows(table: Tag) -> list[Tag]:
    bodies = table.find_all("tbody", recursive=False) or [table]
    rows = [row for body in bodies for row in body.find_all("tr", recursive=False)]
    entries = [r for r in rows if "entry" in (r.get("class") or [])]
    if entries:
        return entries
    # No entry markers: every row except one made only of <th> cells
    return [r for r in rows if r.find("td", recursive=False) is not None]


def parse_table(
    html: str | BeautifulSoup,
    catalog_id: int,
    catalog_name: str,
    url: str,
    scraped_at: datetime | None = None,
    locator: TableLocator | None = None,
) -> CatalogData:
    """
    Parse a catalog page into CatalogData.

    Args:
        html: Page HTML (or an already-built soup).
        catalog_id: Catalog the page belongs to.
        catalog_name: Display name stored with the catalog.
        url: Page URL, stored as source_url.
        scraped_at: Timestamp stamped on the catalog and every row. Defaults to now.
        locator: Table location strategy. Defaults to TABLE_SELECTORS.

    Returns:
        CatalogData. Empty (no grade columns, no coins) when no pricing table
        is present; rows without any accepted price are dropped.
    """
    scraped_at = scraped_at or datetime.now(timezone.utc)
    soup = make_soup(html) if isinstance(html, str) else html
    catalog = CatalogData(
        catalog_id=catalog_id,
        name=catalog_name,
        source_url=url,
        scraped_at=scraped_at,
    )

    try:
        table = (locator or TableLocator()).locate(soup)
    except ParseError as e:
        logger.warning("table_parse_no_table", catalog_id=catalog_id, url=url, error=str(e))
        return catalog

    headers = [normalize_grade(c.get_text(" ", strip=True)) for c in _header_cells(table)]
    catalog.grade_columns = headers
    today = scraped_at.date()

    for row in _data_rows(table):
        cells = row.find_all(["td", "th"], recursive=False)
        if len(cells) < 2:
            continue

        first = cells[0]
        link = first.find("a")
        description = (link.get_text(" ", strip=True) if link else "") or first.get_text(" ", strip=True)
        if not description or description.upper() == DESCRIPTION_HEADER:
            continue

        entry_id: str | None = None
        if link is not None:
            href_match = _ENTRY_HREF_RE.search(str(link.get("href") or ""))
            if href_match:
                entry_id = href_match.group(1)

        grades: dict[str, GradePrice] = {}
        for idx, cell in enumerate(cells[1:], start=1):
            if idx >= len(headers) or not is_grade_label(headers[idx]):
                continue
            grade_price = parse_grade_cell(cell, today)
            if grade_price is not None:
                grades[headers[idx]] = grade_price

        if not grades:
            continue

        coin = CoinEntry(
            catalog_id=catalog_id,
            entry_id=entry_id,
            description=description,
            normalized_id=normalize_coin_id(description),
            grades=grades,
            scraped_at=scraped_at,
        )
        catalog.coins[coin.normalized_id] = coin

    if not catalog.coins:
        logger.warning(
            "table_parse_zero_rows",
            catalog_id=catalog_id,
            url=url,
            grade_columns=len(headers),
            note="markup may have changed",
        )
    else:
        logger.info("table_parse_complete", catalog_id=catalog_id, coins=len(catalog.coins))

    return catalog
