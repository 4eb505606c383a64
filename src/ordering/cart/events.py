"""Domain events for the ShoppingCart aggregate."""

from protean.fields import Identifier, Integer

from ordering.domain import ordering


@ordering.event(part_of="ShoppingCart")
class CartLineAdded:
    """A product was added to the cart, or its existing line was topped up."""

    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    product_id = Identifier(required=True)
    retailer_id = Identifier(required=True)
    quantity = Integer(required=True)


@ordering.event(part_of="ShoppingCart")
class CartLineQuantityUpdated:
    """The quantity of a cart line was changed."""

    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@ordering.event(part_of="ShoppingCart")
class CartLineRemoved:
    """A line was removed from the cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)


@ordering.event(part_of="ShoppingCart")
class CartCheckedOut:
    """The cart's lines were turned into per-retailer orders."""

    __version__ = 1

    cart_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    checkout_id = Identifier(required=True)
    line_count = Integer(required=True)


@ordering.event(part_of="ShoppingCart")
class CartLineRepriced:
    """A line's unit price was brought in line with the catalog."""

    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    previous_unit_price = Integer(required=True)
    unit_price = Integer(required=True)
