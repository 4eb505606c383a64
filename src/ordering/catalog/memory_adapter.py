"""In-memory product catalog for development and testing."""

import threading
from dataclasses import replace

from ordering.catalog.port import ProductCatalog, ProductListing
from ordering.exceptions import InsufficientStockError, ProductUnavailableError


class InMemoryCatalog(ProductCatalog):
    """Product catalog backed by a dict, seeded at runtime."""

    def __init__(self, listings: list[ProductListing] | None = None) -> None:
        self._listings: dict[str, ProductListing] = {}
        self._lock = threading.Lock()
        for listing in listings or []:
            self.add(listing)

    def add(self, listing: ProductListing) -> None:
        self._listings[listing.product_id] = listing

    def set_stock(self, product_id: str, stock: int) -> None:
        self._listings[product_id] = replace(self._listings[product_id], stock=stock)

    def set_price(self, product_id: str, unit_price: int) -> None:
        self._listings[product_id] = replace(self._listings[product_id], unit_price=unit_price)

    def get_product(self, product_id: str) -> ProductListing | None:
        return self._listings.get(product_id)

    def get_products(self, product_ids: list[str]) -> dict[str, ProductListing]:
        return {pid: self._listings[pid] for pid in product_ids if pid in self._listings}

    def reserve_stock(self, quantities: dict[str, int]) -> None:
        with self._lock:
            shortages = []
            for product_id, quantity in quantities.items():
                listing = self._listings.get(product_id)
                if listing is None or not listing.is_active:
                    raise ProductUnavailableError(product_id)
                if quantity > listing.stock:
                    shortages.append(
                        {
                            "product_id": product_id,
                            "name": listing.name,
                            "requested": quantity,
                            "available": listing.stock,
                        }
                    )
            if shortages:
                raise InsufficientStockError(shortages)

            for product_id, quantity in quantities.items():
                listing = self._listings[product_id]
                self._listings[product_id] = replace(listing, stock=listing.stock - quantity)

    def release_stock(self, quantities: dict[str, int]) -> None:
        with self._lock:
            for product_id, quantity in quantities.items():
                listing = self._listings.get(product_id)
                if listing is not None:
                    self._listings[product_id] = replace(listing, stock=listing.stock + quantity)
