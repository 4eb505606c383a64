"""Order aggregate (CQRS) — one retailer's share of a customer checkout.

An order is created by checkout with its settlement breakdown already fixed:
the discount and points shares allocated to it, the platform commission and
the amount due to the retailer. Those figures never change afterwards.

State Machine:
    PENDING → PROCESSING → READY_FOR_PICKUP → PICKED_UP
    CANCELLED (from PENDING, PROCESSING, READY_FOR_PICKUP)

PENDING → PROCESSING is normally driven by the payment processor's
completion callback. PICKED_UP and CANCELLED are terminal.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text

from ordering.domain import ordering
from ordering.exceptions import InvalidStatusTransitionError
from ordering.order.events import (
    OrderCancelled,
    OrderPaymentCompleted,
    OrderPaymentHandleCreated,
    OrderPickedUp,
    OrderPlaced,
    OrderProcessing,
    OrderReadyForPickup,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    READY_FOR_PICKUP = "Ready_For_Pickup"
    PICKED_UP = "Picked_Up"
    CANCELLED = "Cancelled"


class CancellationActor(Enum):
    CUSTOMER = "Customer"
    RETAILER = "Retailer"
    SYSTEM = "System"
    ADMIN = "Admin"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.READY_FOR_PICKUP, OrderStatus.CANCELLED},
    OrderStatus.READY_FOR_PICKUP: {OrderStatus.PICKED_UP, OrderStatus.CANCELLED},
    OrderStatus.PICKED_UP: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A product line captured at checkout. Prices are frozen with the order."""

    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    unit_price = Integer(required=True, min_value=0)
    quantity = Integer(required=True, min_value=1)
    line_total = Integer(required=True, min_value=0)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    customer_id = Identifier(required=True)
    retailer_id = Identifier(required=True)
    retailer_name = String(max_length=255)
    checkout_id = Identifier(required=True)
    items = HasMany(OrderItem)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    currency = String(max_length=3, default="GBP")
    subtotal = Integer(required=True, min_value=0)
    discount_amount = Integer(default=0, min_value=0)
    points_redeemed = Integer(default=0, min_value=0)
    platform_commission = Integer(default=0, min_value=0)
    retailer_amount = Integer(default=0, min_value=0)
    total = Integer(required=True, min_value=0)
    discount_code = String(max_length=50)
    pickup_location = String(max_length=500)
    pickup_instructions = Text()
    payment_handle_id = String(max_length=255)
    payment_url = String(max_length=1000)
    payment_transaction_id = String(max_length=255)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=50)
    created_at = DateTime()
    updated_at = DateTime()
    ready_for_pickup_at = DateTime()
    picked_up_at = DateTime()
    cancelled_at = DateTime()

    @invariant.post
    def total_must_equal_subtotal_less_reductions(self):
        if self.total != self.subtotal - self.discount_amount - self.points_redeemed:
            raise ValidationError({"total": ["Total must equal subtotal less discount and points"]})

    @invariant.post
    def total_must_equal_retailer_amount_plus_commission(self):
        if self.total != self.retailer_amount + self.platform_commission:
            raise ValidationError({"total": ["Total must equal retailer amount plus platform commission"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        customer_id,
        checkout_id,
        retailer_id,
        retailer_name,
        items_data,
        allocation,
        currency="GBP",
        pickup_location=None,
        pickup_instructions=None,
        discount_code=None,
    ):
        """Create an order for one retailer group.

        Args:
            items_data: List of dicts with product_id, product_name,
                        unit_price and quantity.
            allocation: GroupAllocation holding subtotal, discount, points,
                        commission, retailer amount and total.
        """
        now = datetime.now(UTC)
        order = cls(
            customer_id=customer_id,
            checkout_id=checkout_id,
            retailer_id=retailer_id,
            retailer_name=retailer_name,
            items=[
                OrderItem(
                    product_id=item["product_id"],
                    product_name=item["product_name"],
                    unit_price=item["unit_price"],
                    quantity=item["quantity"],
                    line_total=item["unit_price"] * item["quantity"],
                )
                for item in items_data
            ],
            status=OrderStatus.PENDING.value,
            currency=currency,
            subtotal=allocation.subtotal,
            discount_amount=allocation.discount_amount,
            points_redeemed=allocation.points_redeemed,
            platform_commission=allocation.platform_commission,
            retailer_amount=allocation.retailer_amount,
            total=allocation.total,
            discount_code=discount_code if allocation.discount_amount else None,
            pickup_location=pickup_location,
            pickup_instructions=pickup_instructions,
            created_at=now,
            updated_at=now,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                checkout_id=str(checkout_id),
                customer_id=str(customer_id),
                retailer_id=str(retailer_id),
                subtotal=order.subtotal,
                discount_amount=order.discount_amount,
                points_redeemed=order.points_redeemed,
                platform_commission=order.platform_commission,
                retailer_amount=order.retailer_amount,
                total=order.total,
                currency=currency,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    @property
    def is_terminal(self):
        return not _VALID_TRANSITIONS[OrderStatus(self.status)]

    def can_transition_to(self, target_status):
        return OrderStatus(target_status) in _VALID_TRANSITIONS[OrderStatus(self.status)]

    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(current.value, target_status.value)

    def transition_to(self, target_status, actor=None, reason=None):
        """Move the order to `target_status` via the matching lifecycle step."""
        target = OrderStatus(target_status)
        if target == OrderStatus.PROCESSING:
            self.mark_processing()
        elif target == OrderStatus.READY_FOR_PICKUP:
            self.mark_ready_for_pickup()
        elif target == OrderStatus.PICKED_UP:
            self.mark_picked_up()
        elif target == OrderStatus.CANCELLED:
            self.cancel(
                reason=reason or "Cancelled",
                cancelled_by=actor or CancellationActor.ADMIN.value,
            )
        else:
            self._assert_can_transition(target)

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def record_payment_handle(self, handle_id, payment_url):
        """Attach the processor's capture handle. The order stays PENDING."""
        if OrderStatus(self.status) != OrderStatus.PENDING:
            raise ValidationError({"status": ["Payment handles can only be recorded on pending orders"]})
        if self.payment_handle_id and self.payment_handle_id != handle_id:
            raise ValidationError({"payment_handle_id": ["Order already has a different payment handle"]})

        self.payment_handle_id = handle_id
        self.payment_url = payment_url
        self.updated_at = datetime.now(UTC)

        self.raise_(
            OrderPaymentHandleCreated(
                order_id=str(self.id),
                checkout_id=str(self.checkout_id),
                payment_handle_id=handle_id,
                payment_url=payment_url,
            )
        )

    def complete_payment(self, transaction_id):
        """Record the processor's completion callback and start processing the order."""
        self._assert_can_transition(OrderStatus.PROCESSING)
        now = datetime.now(UTC)
        self.payment_transaction_id = transaction_id
        self.raise_(
            OrderPaymentCompleted(
                order_id=str(self.id),
                payment_transaction_id=transaction_id,
                amount=self.total,
                completed_at=now,
            )
        )
        self.mark_processing()

    # -------------------------------------------------------------------
    # Pickup
    # -------------------------------------------------------------------
    def mark_processing(self):
        self._assert_can_transition(OrderStatus.PROCESSING)
        self.status = OrderStatus.PROCESSING.value
        self.updated_at = datetime.now(UTC)

        self.raise_(OrderProcessing(order_id=str(self.id), started_at=self.updated_at))

    def mark_ready_for_pickup(self):
        self._assert_can_transition(OrderStatus.READY_FOR_PICKUP)
        now = datetime.now(UTC)
        self.status = OrderStatus.READY_FOR_PICKUP.value
        if self.ready_for_pickup_at is None:
            self.ready_for_pickup_at = now
        self.updated_at = now

        self.raise_(
            OrderReadyForPickup(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                retailer_id=str(self.retailer_id),
                pickup_location=self.pickup_location,
                ready_at=self.ready_for_pickup_at,
            )
        )

    def mark_picked_up(self):
        self._assert_can_transition(OrderStatus.PICKED_UP)
        now = datetime.now(UTC)
        self.status = OrderStatus.PICKED_UP.value
        if self.picked_up_at is None:
            self.picked_up_at = now
        self.updated_at = now

        self.raise_(
            OrderPickedUp(
                order_id=str(self.id),
                customer_id=str(self.customer_id),
                retailer_id=str(self.retailer_id),
                total=self.total,
                picked_up_at=self.picked_up_at,
            )
        )

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason, cancelled_by):
        self._assert_can_transition(OrderStatus.CANCELLED)
        now = datetime.now(UTC)
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.cancelled_at = now
        self.updated_at = now

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                checkout_id=str(self.checkout_id),
                customer_id=str(self.customer_id),
                retailer_id=str(self.retailer_id),
                reason=reason,
                cancelled_by=cancelled_by,
                points_redeemed=self.points_redeemed,
                discount_amount=self.discount_amount,
                total=self.total,
                payment_transaction_id=self.payment_transaction_id,
                cancelled_at=now,
            )
        )


@ordering.repository(part_of=Order)
class OrderRepository:
    def find_by_checkout(self, checkout_id) -> list[Order]:
        orders = self._dao.query.filter(checkout_id=str(checkout_id)).all().items
        return sorted(orders, key=lambda o: str(o.retailer_id))

    def find_by_payment_handle(self, payment_handle_id) -> Order | None:
        orders = self._dao.query.filter(payment_handle_id=str(payment_handle_id)).all().items
        return orders[0] if orders else None

    def find_for_customer(self, customer_id) -> list[Order]:
        orders = self._dao.query.filter(customer_id=str(customer_id)).all().items
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def find_for_retailer(self, retailer_id) -> list[Order]:
        orders = self._dao.query.filter(retailer_id=str(retailer_id)).all().items
        return sorted(orders, key=lambda o: o.created_at, reverse=True)
