"""Tests for the in-memory catalog's stock reservations."""

import pytest
from ordering.exceptions import InsufficientStockError, ProductUnavailableError


class TestReserveStock:
    def test_reserve_takes_every_quantity(self, catalog):
        catalog.reserve_stock({"prod-a1": 3, "prod-b1": 10})

        assert catalog.get_product("prod-a1").stock == 17
        assert catalog.get_product("prod-b1").stock == 0

    def test_shortage_reserves_nothing(self, catalog):
        with pytest.raises(InsufficientStockError) as exc:
            catalog.reserve_stock({"prod-a1": 3, "prod-b1": 11, "prod-c1": 6})

        assert {s["product_id"] for s in exc.value.shortages} == {"prod-b1", "prod-c1"}
        assert catalog.get_product("prod-a1").stock == 20

    def test_unknown_product(self, catalog):
        with pytest.raises(ProductUnavailableError):
            catalog.reserve_stock({"prod-missing": 1})

    def test_release_returns_stock(self, catalog):
        catalog.reserve_stock({"prod-c1": 5})
        catalog.release_stock({"prod-c1": 2, "prod-missing": 1})

        assert catalog.get_product("prod-c1").stock == 2


class TestPrices:
    def test_set_price_keeps_stock(self, catalog):
        catalog.reserve_stock({"prod-a1": 1})
        catalog.set_price("prod-a1", 1800)

        listing = catalog.get_product("prod-a1")
        assert (listing.unit_price, listing.stock) == (1800, 19)
