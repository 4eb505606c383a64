"""Cashback — credits points when a customer picks up an order.

Listens to the Order stream. The credit is keyed by order id, so a replayed
OrderPickedUp does not award points twice.
"""

from decimal import ROUND_FLOOR, Decimal

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from ordering.domain import custom_setting, ordering
from ordering.order.events import OrderPickedUp
from ordering.points.account import PointsAccount
from ordering.utils.locks import customer_lock

logger = structlog.get_logger(__name__)


def cashback_for(total) -> int:
    """Points earned on an order total: the cashback rate, rounded down."""
    rate = custom_setting("CASHBACK_RATE", 0.01)
    return int((Decimal(total) * Decimal(str(rate))).to_integral_value(rounding=ROUND_FLOOR))


@ordering.event_handler(part_of=PointsAccount, stream_category="ordering::order")
class OrderCashbackHandler:
    """Awards cashback points for collected orders."""

    @handle(OrderPickedUp)
    def on_order_picked_up(self, event: OrderPickedUp) -> None:
        amount = cashback_for(event.total)
        if amount <= 0:
            logger.info("No cashback for order", order_id=str(event.order_id), total=event.total)
            return

        from ordering.points.ledger import EarnPoints

        with customer_lock(event.customer_id):
            current_domain.process(
                EarnPoints(
                    customer_id=event.customer_id,
                    order_id=event.order_id,
                    amount=amount,
                    description=f"Cashback on order {event.order_id}",
                ),
                asynchronous=False,
            )
