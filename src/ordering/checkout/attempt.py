"""Checkout Attempt aggregate (CQRS) — one customer checkout and its settlement result.

The attempt ties the orders created from one cart together, remembers the
idempotency key the client sent, and records what happened when each order
was sent to the payment processor.

Status:
    MATERIALIZED → SUCCEEDED | PARTIALLY_FAILED | FAILED
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from ordering.checkout.events import CheckoutMaterialized, CheckoutSettled
from ordering.domain import ordering


class CheckoutStatus(Enum):
    MATERIALIZED = "Materialized"
    SUCCEEDED = "Succeeded"
    PARTIALLY_FAILED = "Partially_Failed"
    FAILED = "Failed"


@ordering.aggregate
class CheckoutAttempt:
    customer_id = Identifier(required=True)
    idempotency_key = String(required=True, max_length=255)
    request_fingerprint = String(max_length=1000)
    cart_id = Identifier()
    order_ids = Text()  # JSON array of order ids, ascending retailer id
    status = String(choices=CheckoutStatus, default=CheckoutStatus.MATERIALIZED.value)
    subtotal = Integer(default=0)
    discount_code = String(max_length=50)
    discount_amount = Integer(default=0)
    points_redeemed = Integer(default=0)
    total = Integer(default=0)
    outcomes = Text()  # JSON array of per-order settlement outcomes
    created_at = DateTime()
    settled_at = DateTime()
    restored_at = DateTime()

    @classmethod
    def create(
        cls,
        checkout_id,
        customer_id,
        idempotency_key,
        request_fingerprint,
        cart_id,
        order_ids,
        subtotal,
        discount_code,
        discount_amount,
        points_redeemed,
    ):
        attempt = cls(
            id=checkout_id,
            customer_id=customer_id,
            idempotency_key=idempotency_key,
            request_fingerprint=request_fingerprint,
            cart_id=cart_id,
            order_ids=json.dumps(order_ids),
            status=CheckoutStatus.MATERIALIZED.value,
            subtotal=subtotal,
            discount_code=discount_code,
            discount_amount=discount_amount,
            points_redeemed=points_redeemed,
            total=subtotal - discount_amount - points_redeemed,
            outcomes=json.dumps([]),
            created_at=datetime.now(UTC),
        )
        attempt.raise_(
            CheckoutMaterialized(
                checkout_id=str(attempt.id),
                customer_id=str(customer_id),
                order_ids=attempt.order_ids,
                total=attempt.total,
            )
        )
        return attempt

    def get_order_ids(self):
        return json.loads(self.order_ids) if self.order_ids else []

    def get_outcomes(self):
        return json.loads(self.outcomes) if self.outcomes else []

    @property
    def is_settled(self):
        return CheckoutStatus(self.status) != CheckoutStatus.MATERIALIZED

    def mark_restored(self):
        """Note that failed orders' items went back into the cart. Allowed once."""
        if self.restored_at is not None:
            raise ValidationError({"checkout": ["Failed items were already returned to the cart"]})
        self.restored_at = datetime.now(UTC)

    def record_settlement(self, outcomes):
        """Store per-order outcomes and derive the attempt's final status.

        Args:
            outcomes: List of dicts, one per order, each with a boolean
                      `succeeded`.
        """
        if not outcomes:
            raise ValidationError({"outcomes": ["A settlement must cover at least one order"]})

        succeeded = sum(1 for o in outcomes if o["succeeded"])
        if succeeded == len(outcomes):
            status = CheckoutStatus.SUCCEEDED
        elif succeeded == 0:
            status = CheckoutStatus.FAILED
        else:
            status = CheckoutStatus.PARTIALLY_FAILED

        now = datetime.now(UTC)
        self.outcomes = json.dumps(outcomes)
        self.status = status.value
        self.settled_at = now

        self.raise_(
            CheckoutSettled(
                checkout_id=str(self.id),
                customer_id=str(self.customer_id),
                status=status.value,
                succeeded_count=succeeded,
                failed_count=len(outcomes) - succeeded,
                settled_at=now,
            )
        )


@ordering.repository(part_of=CheckoutAttempt)
class CheckoutAttemptRepository:
    def find_by_key(self, customer_id, idempotency_key) -> CheckoutAttempt | None:
        attempts = (
            self._dao.query.filter(customer_id=str(customer_id), idempotency_key=str(idempotency_key)).all().items
        )
        return attempts[0] if attempts else None
