"""Tests for the catalog collaborator and settings."""

import json
from decimal import Decimal

import pytest
from pydantic import ValidationError

from pricesync.config import Settings
from pricesync.scrapers.base import ProductSource
from pricesync.services.catalog_service import (
    DEFAULT_PRODUCTS,
    InMemoryCatalog,
    build_catalog,
    load_catalog_file,
)

from conftest import make_source


class TestInMemoryCatalog:
    async def test_lists_sorted_by_key(self):
        catalog = InMemoryCatalog([make_source("B"), make_source("A")])

        assert [s.product_key for s in await catalog.list_tracked_products()] == ["A", "B"]

    async def test_get_source(self):
        catalog = InMemoryCatalog([make_source("A")])

        assert (await catalog.get_source("A")).product_key == "A"
        assert await catalog.get_source("B") is None

    async def test_add_replaces_existing_key(self):
        catalog = InMemoryCatalog([make_source("A", "1.00")])

        catalog.add(make_source("A", "2.00"))

        sources = await catalog.list_tracked_products()
        assert len(sources) == 1
        assert sources[0].reference_price == Decimal("2.00")


class TestDefaultCatalog:
    def test_seed_products(self):
        keys = {s.product_key for s in DEFAULT_PRODUCTS}

        assert len(DEFAULT_PRODUCTS) == 13
        assert {"MG996R", "RPI5", "FASTENERS"} <= keys

    def test_placeholder_url_kept(self):
        fasteners = next(s for s in DEFAULT_PRODUCTS if s.product_key == "FASTENERS")

        assert fasteners.source_url == "#"

    async def test_build_without_file_uses_seed(self):
        catalog = build_catalog()

        assert len(await catalog.list_tracked_products()) == 13


class TestCatalogFile:
    def test_load(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "product_key": "MG996R",
                        "reference_price": 6.2,
                        "source_url": "https://electropeak.com/mg996r",
                        "name": "Servo",
                    }
                ]
            ),
            encoding="utf-8",
        )

        sources = load_catalog_file(str(path))

        assert len(sources) == 1
        assert sources[0].reference_price == Decimal("6.2")
        assert sources[0].reference_currency == "EUR"
        assert sources[0].name == "Servo"

    def test_missing_field_rejected(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps([{"product_key": "X"}]), encoding="utf-8")

        with pytest.raises(ValueError, match="#0"):
            load_catalog_file(str(path))

    def test_unknown_currency_rejected(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "product_key": "MG996R",
                        "reference_price": "6.20",
                        "source_url": "https://electropeak.com/mg996r",
                        "reference_currency": "Euro",
                    }
                ]
            ),
            encoding="utf-8",
        )

        with pytest.raises(ValueError, match="#0"):
            load_catalog_file(str(path))

    def test_non_list_rejected(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({"product_key": "X"}), encoding="utf-8")

        with pytest.raises(ValueError):
            load_catalog_file(str(path))


class TestSettings:
    def test_delay_range_in_seconds(self):
        settings = Settings(MIN_INTER_REQUEST_DELAY_MS=2000, MAX_INTER_REQUEST_DELAY_MS=5000)

        assert settings.request_delay_range == (2.0, 5.0)

    def test_min_above_max_rejected(self):
        with pytest.raises(ValidationError):
            Settings(MIN_INTER_REQUEST_DELAY_MS=6000, MAX_INTER_REQUEST_DELAY_MS=5000)

    def test_concurrency_limit_bounds(self):
        with pytest.raises(ValidationError):
            Settings(CONCURRENCY_LIMIT=11)


class TestProductSource:
    def test_currency_symbol_normalized(self):
        source = ProductSource(
            product_key="X",
            reference_price=Decimal("1.00"),
            source_url="https://electropeak.com/x",
            reference_currency="€",
        )

        assert source.reference_currency == "EUR"

    def test_unknown_currency_rejected(self):
        with pytest.raises(ValueError, match="Unknown currency"):
            ProductSource(
                product_key="X",
                reference_price=Decimal("1.00"),
                source_url="https://electropeak.com/x",
                reference_currency="Euro",
            )

    def test_domain_derived_from_url(self):
        source = ProductSource(
            product_key="X",
            reference_price=Decimal("1.00"),
            source_url="https://www.Welectron.com/item",
        )

        assert source.domain == "www.welectron.com"
