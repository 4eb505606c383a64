"""Refunds for cancelled orders that were already paid.

Runs after the cancellation commits. A failed refund is logged for manual
follow-up; the cancellation itself stands.
"""

import structlog
from protean.utils.mixins import handle

from ordering.domain import ordering
from ordering.order.events import OrderCancelled
from ordering.order.order import Order
from ordering.settlement.gateway import get_processor

logger = structlog.get_logger(__name__)


@ordering.event_handler(part_of=Order)
class PaidOrderRefundHandler:
    """Refunds captured payments when an order is cancelled."""

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        if not event.payment_transaction_id or event.total <= 0:
            return

        result = get_processor().create_refund(
            transaction_id=event.payment_transaction_id,
            amount=event.total,
            reason=event.reason,
        )
        if result.success:
            logger.info(
                "Refund issued for cancelled order",
                order_id=str(event.order_id),
                refund_id=result.refund_id,
                amount=event.total,
            )
        else:
            logger.error(
                "Refund failed for cancelled order",
                order_id=str(event.order_id),
                transaction_id=event.payment_transaction_id,
                reason=result.failure_reason,
            )
