"""Product catalog port (abstract interface).

Checkout only needs a narrow view of the catalog: the price, stock level,
owning retailer and pickup location of a product, plus a way to reserve
stock for the orders it creates. Browsing and search live elsewhere.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ProductListing:
    """A product as offered by one retailer, priced in minor units."""

    product_id: str
    retailer_id: str
    retailer_name: str
    name: str
    unit_price: int
    stock: int
    pickup_location: str = ""
    is_active: bool = True


class ProductCatalog(ABC):
    """Abstract product catalog interface."""

    @abstractmethod
    def get_product(self, product_id: str) -> ProductListing | None:
        """Return the listing for a product, or None if it does not exist."""
        ...

    @abstractmethod
    def get_products(self, product_ids: list[str]) -> dict[str, ProductListing]:
        """Return listings keyed by product id, skipping unknown ids."""
        ...

    @abstractmethod
    def reserve_stock(self, quantities: dict[str, int]) -> None:
        """Take `quantities` (units keyed by product id) out of stock, all or nothing.

        Raises:
            ProductUnavailableError: a product is unknown or no longer listed.
            InsufficientStockError: one or more products are short; nothing is taken.
        """
        ...

    @abstractmethod
    def release_stock(self, quantities: dict[str, int]) -> None:
        """Put previously reserved units back into stock."""
        ...
