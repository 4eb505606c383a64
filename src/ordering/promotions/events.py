"""Domain events for the DiscountCode aggregate."""

from protean.fields import Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="DiscountCode")
class DiscountCodeCreated:
    """A new discount code was issued."""

    __version__ = 1

    discount_code_id = Identifier(required=True)
    code = String(required=True)
    discount_type = String(required=True)
    value = Integer(required=True)


@ordering.event(part_of="DiscountCode")
class DiscountRedeemed:
    """A checkout used the code; its usage counter went up by one."""

    __version__ = 1

    discount_code_id = Identifier(required=True)
    code = String(required=True)
    checkout_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Integer(required=True)


@ordering.event(part_of="DiscountCode")
class DiscountReleased:
    """Every order of a checkout that used the code was cancelled."""

    __version__ = 1

    discount_code_id = Identifier(required=True)
    code = String(required=True)
    checkout_id = Identifier(required=True)
