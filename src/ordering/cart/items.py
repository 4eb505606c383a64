"""Cart line management — commands and handler.

Carts are addressed by customer: the handler opens a new active cart on the
first add after a checkout. RefreshCartPrices brings line prices up to date
with the catalog; checkout runs it before grouping the cart.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from ordering.cart.cart import ShoppingCart
from ordering.catalog import get_catalog
from ordering.domain import ordering
from ordering.exceptions import InsufficientStockError, ProductUnavailableError

logger = structlog.get_logger(__name__)


@ordering.command(part_of="ShoppingCart")
class AddToCart:
    customer_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@ordering.command(part_of="ShoppingCart")
class UpdateCartLine:
    customer_id = Identifier(required=True)
    line_id = Identifier(required=True)
    new_quantity = Integer(required=True, min_value=1)


@ordering.command(part_of="ShoppingCart")
class RemoveCartLine:
    customer_id = Identifier(required=True)
    line_id = Identifier(required=True)


@ordering.command(part_of="ShoppingCart")
class RefreshCartPrices:
    customer_id = Identifier(required=True)


def _listing_or_fail(product_id):
    listing = get_catalog().get_product(str(product_id))
    if listing is None or not listing.is_active:
        raise ProductUnavailableError(product_id)
    return listing


def _check_stock(listing, quantity):
    if quantity > listing.stock:
        raise InsufficientStockError(
            [
                {
                    "product_id": listing.product_id,
                    "name": listing.name,
                    "requested": quantity,
                    "available": listing.stock,
                }
            ]
        )


@ordering.command_handler(part_of=ShoppingCart)
class ManageCartLinesHandler:
    def _active_cart(self, customer_id, create=False):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.find_active(customer_id)
        if cart is None:
            if not create:
                raise ObjectNotFoundError({"cart": [f"No active cart for customer {customer_id}"]})
            cart = ShoppingCart.create(customer_id=customer_id)
        return repo, cart

    @handle(AddToCart)
    def add_to_cart(self, command):
        listing = _listing_or_fail(command.product_id)
        repo, cart = self._active_cart(command.customer_id, create=True)

        existing = cart.line_for_product(command.product_id)
        _check_stock(listing, command.quantity + (existing.quantity if existing else 0))

        line_id = cart.add_line(listing, command.quantity)
        repo.add(cart)
        return line_id

    @handle(UpdateCartLine)
    def update_cart_line(self, command):
        repo, cart = self._active_cart(command.customer_id)
        line = cart.find_line(command.line_id)
        _check_stock(_listing_or_fail(line.product_id), command.new_quantity)

        cart.update_line_quantity(line_id=command.line_id, new_quantity=command.new_quantity)
        repo.add(cart)

    @handle(RemoveCartLine)
    def remove_cart_line(self, command):
        repo, cart = self._active_cart(command.customer_id)
        cart.remove_line(line_id=command.line_id)
        repo.add(cart)

    @handle(RefreshCartPrices)
    def refresh_cart_prices(self, command):
        """Re-price every line from the catalog. Returns the number of lines whose price moved.

        Unlisted products keep their price; checkout's stock check rejects them.
        """
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.find_active(command.customer_id)
        if cart is None or not cart.lines:
            return 0

        listings = get_catalog().get_products([str(line.product_id) for line in cart.lines])
        repriced = 0
        for line in list(cart.lines):
            listing = listings.get(str(line.product_id))
            if listing is not None and cart.reprice_line(line.id, listing.unit_price):
                repriced += 1

        if repriced:
            repo.add(cart)
            logger.info("Cart re-priced", cart_id=str(cart.id), customer_id=str(command.customer_id), lines=repriced)
        return repriced
