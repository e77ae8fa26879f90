"""
Tests for the JSON-backed Catalog Store.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from coinradar.engine.table_parser import parse_table
from coinradar.models import CatalogData
from coinradar.store import CatalogStore

URL = "https://www.cdnexchange.com/pricing/8971"


@pytest.fixture
def morgan(catalog_html: str) -> CatalogData:
    return parse_table(catalog_html, 8971, "Morgan Dollars", URL)


def _empty_catalog(catalog_id: int, scraped_at: datetime) -> CatalogData:
    return CatalogData(catalog_id=catalog_id, name=f"Catalog {catalog_id}", source_url=URL, scraped_at=scraped_at)


class TestPersistence:
    def test_put_then_get(self, catalog_store: CatalogStore, morgan: CatalogData) -> None:
        catalog_store.put(morgan)
        assert catalog_store.get(8971) == morgan

    def test_round_trip_through_file(self, catalog_store: CatalogStore, morgan: CatalogData) -> None:
        catalog_store.put(morgan)
        reopened = CatalogStore(path=catalog_store.path, ttl_hours=24)
        assert reopened.get(8971) == morgan

    def test_document_layout(self, catalog_store: CatalogStore, morgan: CatalogData) -> None:
        catalog_store.put(morgan)
        document = json.loads(catalog_store.path.read_text(encoding="utf-8"))

        assert set(document) == {"version", "lastFetched", "ttlHours", "catalogs"}
        assert document["ttlHours"] == 24
        stored = document["catalogs"]["8971"]
        assert stored["catalogId"] == 8971
        assert stored["gradeColumns"][1] == "VF20"
        assert stored["coins"]["1878-8tf-1"]["coinId"] == "1878-8tf-1"
        assert stored["coins"]["1878-8tf-1"]["entryId"] == "7444"

    def test_put_replaces_whole_catalog(self, catalog_store: CatalogStore, morgan: CatalogData) -> None:
        catalog_store.put(morgan)
        replacement = _empty_catalog(8971, datetime.now(timezone.utc))
        catalog_store.put(replacement)
        assert catalog_store.get(8971).coins == {}

    def test_no_temp_files_left_behind(self, catalog_store: CatalogStore, morgan: CatalogData) -> None:
        catalog_store.put(morgan)
        catalog_store.put(morgan)
        assert [p.name for p in catalog_store.path.parent.iterdir()] == [catalog_store.path.name]

    def test_corrupt_file_loads_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "cache.json"
        path.write_text("{not json", encoding="utf-8")
        store = CatalogStore(path=path)
        assert store.catalogs() == []
        assert store.get(8971) is None

    def test_missing_file_loads_empty(self, tmp_path: Path) -> None:
        store = CatalogStore(path=tmp_path / "nested" / "cache.json")
        assert store.has_data() is False

    def test_clear_deletes_file(self, catalog_store: CatalogStore, morgan: CatalogData) -> None:
        catalog_store.put(morgan)
        catalog_store.clear()
        assert not catalog_store.path.exists()
        assert catalog_store.get(8971) is None
        catalog_store.clear()


class TestValidity:
    def test_fresh_and_stale_catalogs_coexist(self, catalog_store: CatalogStore) -> None:
        now = datetime.now(timezone.utc)
        catalog_store.put(_empty_catalog(1, now - timedelta(hours=1)))
        catalog_store.put(_empty_catalog(2, now - timedelta(hours=25)))

        assert catalog_store.is_valid(1) is True
        assert catalog_store.is_valid(2) is False
        assert catalog_store.is_valid(3) is False

    def test_ttl_boundary(self, catalog_store: CatalogStore) -> None:
        stored = datetime(2025, 1, 1, tzinfo=timezone.utc)
        catalog_store.put(_empty_catalog(1, stored))
        assert catalog_store.is_valid(1, now=stored + timedelta(hours=24) - timedelta(seconds=1)) is True
        assert catalog_store.is_valid(1, now=stored + timedelta(hours=24) + timedelta(seconds=1)) is False

    def test_status(self, catalog_store: CatalogStore, morgan: CatalogData) -> None:
        catalog_store.put(morgan)
        catalog_store.put(_empty_catalog(2, datetime.now(timezone.utc) - timedelta(days=3)))
        status = catalog_store.status()
        assert status["catalogs"] == 2
        assert status["valid_catalogs"] == 1
        assert status["stale_catalogs"] == 1
        assert status["coins"] == 3
        assert status["last_fetched"] is not None


class TestQueries:
    def test_search_description_case_insensitive(self, catalog_store: CatalogStore, morgan: CatalogData) -> None:
        catalog_store.put(morgan)
        hits = catalog_store.search("8tf")
        assert [c.normalized_id for c in hits] == ["1878-8tf-1"]

    def test_search_matches_normalized_id(self, catalog_store: CatalogStore, morgan: CatalogData) -> None:
        catalog_store.put(morgan)
        hits = catalog_store.search("rev-of-78")
        assert [c.normalized_id for c in hits] == ["1878-7tf-rev-of-78-1"]

    def test_search_spans_catalogs(self, catalog_store: CatalogStore, catalog_html: str) -> None:
        catalog_store.put(parse_table(catalog_html, 8971, "Morgan Dollars", URL))
        catalog_store.put(parse_table(catalog_html, 8972, "Morgan Dollars, Proof", URL))
        assert len(catalog_store.search("1878")) == 4

    def test_blank_query_returns_nothing(self, catalog_store: CatalogStore, morgan: CatalogData) -> None:
        catalog_store.put(morgan)
        assert catalog_store.search("   ") == []

    def test_get_coin_and_grade_price(self, catalog_store: CatalogStore, morgan: CatalogData) -> None:
        catalog_store.put(morgan)
        assert catalog_store.get_coin(8971, "1878-8TF-1").description == "1878 8TF $1"
        grade = catalog_store.get_grade_price(8971, "1878-8tf-1", "ms 60")
        assert grade.greysheet.price == Decimal("59.83")
        assert catalog_store.get_grade_price(8971, "1878-8tf-1", "MS70") is None
        assert catalog_store.get_coin(1, "1878-8tf-1") is None
