"""Returns a cancelled order's items to the retailer's stock.

Checkout reserves stock for every order it creates; cancelling the order
gives it back once the cancellation commits.
"""

from collections import Counter

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from ordering.catalog import get_catalog
from ordering.domain import ordering
from ordering.order.events import OrderCancelled
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


def order_quantities(items) -> dict[str, int]:
    """Units per product id across a set of order or cart lines."""
    quantities = Counter()
    for item in items:
        quantities[str(item.product_id)] += item.quantity
    return dict(quantities)


@ordering.event_handler(part_of=Order)
class CancelledOrderStockHandler:
    """Releases the stock reserved for an order when it is cancelled."""

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        order = current_domain.repository_for(Order).get(event.order_id)
        quantities = order_quantities(order.items)
        get_catalog().release_stock(quantities)
        logger.info("Stock released for cancelled order", order_id=str(event.order_id), quantities=quantities)
