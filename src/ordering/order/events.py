"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """Checkout created an order for one retailer, with its settlement breakdown."""

    __version__ = 1

    order_id = Identifier(required=True)
    checkout_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    retailer_id = Identifier(required=True)
    subtotal = Integer(required=True)
    discount_amount = Integer(required=True)
    points_redeemed = Integer(required=True)
    platform_commission = Integer(required=True)
    retailer_amount = Integer(required=True)
    total = Integer(required=True)
    currency = String(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderPaymentHandleCreated:
    """The payment processor issued a capture handle for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    checkout_id = Identifier(required=True)
    payment_handle_id = String(required=True)
    payment_url = String()


@ordering.event(part_of="Order")
class OrderPaymentCompleted:
    """The processor confirmed the customer paid for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_transaction_id = String(required=True)
    amount = Integer(required=True)
    completed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderProcessing:
    """The retailer started preparing the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    started_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderReadyForPickup:
    """The order is waiting at the retailer's pickup location."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    retailer_id = Identifier(required=True)
    pickup_location = String()
    ready_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderPickedUp:
    """The customer collected the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    retailer_id = Identifier(required=True)
    total = Integer(required=True)
    picked_up_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled; its points and discount shares are released."""

    __version__ = 1

    order_id = Identifier(required=True)
    checkout_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    retailer_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_by = String(required=True)
    points_redeemed = Integer(required=True)
    discount_amount = Integer(required=True)
    total = Integer(required=True)
    payment_transaction_id = String()
    cancelled_at = DateTime(required=True)
