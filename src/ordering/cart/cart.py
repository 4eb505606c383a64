"""Shopping Cart aggregate (CQRS) — one active cart per customer, spanning retailers.

Lines snapshot the product's price, retailer and pickup location when they
are added, and checkout re-prices them from the catalog before grouping.
Every mutation bumps `revision`, which checkout uses as an optimistic
concurrency token: orders are only materialized from a cart whose revision
has not moved since it was grouped.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from ordering.cart.events import (
    CartCheckedOut,
    CartLineAdded,
    CartLineQuantityUpdated,
    CartLineRemoved,
    CartLineRepriced,
)
from ordering.domain import ordering


class CartStatus(Enum):
    ACTIVE = "Active"
    CHECKED_OUT = "Checked_Out"


@ordering.entity(part_of="ShoppingCart")
class CartLine:
    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    retailer_id = Identifier(required=True)
    retailer_name = String(max_length=255)
    pickup_location = String(max_length=500)
    unit_price = Integer(required=True, min_value=0)
    quantity = Integer(required=True, min_value=1)
    added_at = DateTime()

    @property
    def line_total(self):
        return self.unit_price * self.quantity


@ordering.aggregate
class ShoppingCart:
    customer_id = Identifier(required=True)
    lines = HasMany(CartLine)
    status = String(choices=CartStatus, default=CartStatus.ACTIVE.value)
    revision = Integer(default=0)
    checkout_id = Identifier()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def checked_out_cart_must_be_empty(self):
        if self.status == CartStatus.CHECKED_OUT.value and self.lines:
            raise ValidationError({"cart": ["A checked-out cart cannot hold lines"]})

    @classmethod
    def create(cls, customer_id):
        now = datetime.now(UTC)
        return cls(
            customer_id=customer_id,
            status=CartStatus.ACTIVE.value,
            revision=0,
            created_at=now,
            updated_at=now,
        )

    def _assert_active(self, action):
        if CartStatus(self.status) != CartStatus.ACTIVE:
            raise ValidationError({"status": [f"Cannot {action} a cart that is not active"]})

    def _touch(self):
        self.revision = (self.revision or 0) + 1
        self.updated_at = datetime.now(UTC)

    def find_line(self, line_id):
        line = next((li for li in self.lines if str(li.id) == str(line_id)), None)
        if line is None:
            raise ValidationError({"line_id": ["Line not found in cart"]})
        return line

    def line_for_product(self, product_id):
        return next((li for li in self.lines if str(li.product_id) == str(product_id)), None)

    # -------------------------------------------------------------------
    # Line management
    # -------------------------------------------------------------------
    def add_line(self, listing, quantity):
        """Add a product to the cart, merging with an existing line for the same product.

        Args:
            listing: ProductListing from the catalog.
            quantity: Units to add (at least 1).
        """
        self._assert_active("add to")

        existing = self.line_for_product(listing.product_id)
        now = datetime.now(UTC)

        if existing:
            existing.quantity += quantity
            existing.unit_price = listing.unit_price
            line_id = str(existing.id)
        else:
            line = CartLine(
                product_id=listing.product_id,
                product_name=listing.name,
                retailer_id=listing.retailer_id,
                retailer_name=listing.retailer_name,
                pickup_location=listing.pickup_location,
                unit_price=listing.unit_price,
                quantity=quantity,
                added_at=now,
            )
            self.add_lines(line)
            line_id = str(line.id)

        self._touch()

        self.raise_(
            CartLineAdded(
                cart_id=str(self.id),
                line_id=line_id,
                product_id=str(listing.product_id),
                retailer_id=str(listing.retailer_id),
                quantity=quantity,
            )
        )
        return line_id

    def update_line_quantity(self, line_id, new_quantity):
        self._assert_active("update")

        line = self.find_line(line_id)
        previous_quantity = line.quantity
        line.quantity = new_quantity
        self._touch()

        self.raise_(
            CartLineQuantityUpdated(
                cart_id=str(self.id),
                line_id=str(line_id),
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
            )
        )

    def remove_line(self, line_id):
        self._assert_active("remove from")

        line = self.find_line(line_id)
        self.remove_lines(line)
        self._touch()

        self.raise_(CartLineRemoved(cart_id=str(self.id), line_id=str(line_id)))

    def reprice_line(self, line_id, unit_price):
        """Set a line to the catalog's current price. Returns True if the price moved."""
        self._assert_active("reprice")

        line = self.find_line(line_id)
        previous_unit_price = line.unit_price
        if previous_unit_price == unit_price:
            return False

        line.unit_price = unit_price
        self._touch()

        self.raise_(
            CartLineRepriced(
                cart_id=str(self.id),
                line_id=str(line_id),
                previous_unit_price=previous_unit_price,
                unit_price=unit_price,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------
    def check_out(self, checkout_id):
        """Close the cart once its lines have become orders."""
        self._assert_active("check out")
        if not self.lines:
            raise ValidationError({"cart": ["Cannot check out an empty cart"]})

        line_count = len(self.lines)
        for line in list(self.lines):
            self.remove_lines(line)

        self.status = CartStatus.CHECKED_OUT.value
        self.checkout_id = checkout_id
        self._touch()

        self.raise_(
            CartCheckedOut(
                cart_id=str(self.id),
                customer_id=str(self.customer_id),
                checkout_id=str(checkout_id),
                line_count=line_count,
            )
        )


@ordering.repository(part_of=ShoppingCart)
class ShoppingCartRepository:
    def find_active(self, customer_id) -> ShoppingCart | None:
        """Return the customer's active cart, if there is one."""
        carts = self._dao.query.filter(customer_id=str(customer_id), status=CartStatus.ACTIVE.value).all().items
        return carts[0] if carts else None
