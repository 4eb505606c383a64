"""Cart aggregation — groups a customer's active cart by retailer.

The result is a read-only snapshot. It carries the cart's revision and a line
fingerprint so the materializer can refuse to create orders from a cart that
changed after it was grouped.
"""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import UTC, datetime

from protean.utils.globals import current_domain

from ordering.cart.cart import ShoppingCart
from ordering.catalog import get_catalog
from ordering.exceptions import EmptyCartError, InsufficientStockError, ProductUnavailableError

_EPOCH = datetime.min.replace(tzinfo=UTC)


@dataclass(frozen=True)
class GroupLine:
    line_id: str
    product_id: str
    product_name: str
    unit_price: int
    quantity: int

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class RetailerGroup:
    retailer_id: str
    retailer_name: str
    pickup_location: str
    lines: tuple[GroupLine, ...]

    @property
    def subtotal(self) -> int:
        return sum(line.line_total for line in self.lines)


@dataclass(frozen=True)
class CartSnapshot:
    cart_id: str
    customer_id: str
    revision: int
    fingerprint: str
    groups: tuple[RetailerGroup, ...]

    @property
    def subtotal(self) -> int:
        return sum(group.subtotal for group in self.groups)


def cart_fingerprint(cart) -> str:
    """Stable digest of a cart's lines (id, product, quantity and price)."""
    return "|".join(
        sorted(f"{line.id}:{line.product_id}:{line.quantity}:{line.unit_price}" for line in cart.lines)
    )


def group_lines(cart) -> tuple[RetailerGroup, ...]:
    """Group cart lines by retailer, in ascending retailer id order.

    Within a group, lines keep the order they were added in, with product id
    breaking ties.
    """
    ordered = sorted(cart.lines, key=lambda li: (li.added_at or _EPOCH, str(li.product_id)))

    by_retailer: OrderedDict[str, list] = OrderedDict()
    for line in ordered:
        by_retailer.setdefault(str(line.retailer_id), []).append(line)

    groups = []
    for retailer_id in sorted(by_retailer):
        lines = by_retailer[retailer_id]
        first = lines[0]
        groups.append(
            RetailerGroup(
                retailer_id=retailer_id,
                retailer_name=first.retailer_name or "",
                pickup_location=first.pickup_location or "",
                lines=tuple(
                    GroupLine(
                        line_id=str(li.id),
                        product_id=str(li.product_id),
                        product_name=li.product_name,
                        unit_price=li.unit_price,
                        quantity=li.quantity,
                    )
                    for li in lines
                ),
            )
        )
    return tuple(groups)


def validate_stock(cart) -> None:
    """Raise if any line's product is gone or short on stock.

    Every short line is reported, not only the first.
    """
    listings = get_catalog().get_products([str(line.product_id) for line in cart.lines])

    shortages = []
    for line in cart.lines:
        listing = listings.get(str(line.product_id))
        if listing is None or not listing.is_active:
            raise ProductUnavailableError(line.product_id)
        if line.quantity > listing.stock:
            shortages.append(
                {
                    "product_id": str(line.product_id),
                    "name": line.product_name,
                    "requested": line.quantity,
                    "available": listing.stock,
                }
            )

    if shortages:
        raise InsufficientStockError(shortages)


def aggregate_cart(customer_id, check_stock=True) -> CartSnapshot:
    """Load the customer's active cart and group it by retailer.

    Raises:
        EmptyCartError: no active cart, or the cart has no lines.
        InsufficientStockError: one or more lines exceed available stock.
    """
    cart = current_domain.repository_for(ShoppingCart).find_active(customer_id)
    if cart is None or not cart.lines:
        raise EmptyCartError()

    if check_stock:
        validate_stock(cart)

    return CartSnapshot(
        cart_id=str(cart.id),
        customer_id=str(customer_id),
        revision=cart.revision,
        fingerprint=cart_fingerprint(cart),
        groups=group_lines(cart),
    )
