"""Domain events for the CheckoutAttempt aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="CheckoutAttempt")
class CheckoutMaterialized:
    """A cart became one order per retailer, committed atomically."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    order_ids = Text(required=True)  # JSON array
    total = Integer(required=True)


@ordering.event(part_of="CheckoutAttempt")
class CheckoutSettled:
    """Every order of a checkout has a capture handle or has been cancelled."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    status = String(required=True)
    succeeded_count = Integer(required=True)
    failed_count = Integer(required=True)
    settled_at = DateTime(required=True)
