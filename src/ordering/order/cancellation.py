"""Order cancellation — command, handler and compensation.

Cancelling an order gives back what checkout took for it, in the same unit
of work as the status change:
- the points redeemed on the order are refunded to the customer's account
- the order's share of a discount redemption is released, which returns the
  code's usage once every order of the checkout is cancelled

Refunding a payment that was already captured happens after commit, in
ordering.settlement.refunds.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order
from ordering.points.account import PointsAccount
from ordering.promotions.discount import DiscountCode

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    cancelled_by = String(required=True, max_length=50)
    retailer_id = Identifier()  # Set when a retailer cancels; must own the order


def assert_owned_by(order, retailer_id):
    if retailer_id and str(order.retailer_id) != str(retailer_id):
        raise ValidationError({"retailer_id": ["Order does not belong to this retailer"]})


def cancel_with_compensation(order, reason, cancelled_by):
    """Cancel `order` and persist the compensating points and discount changes.

    Must run inside a unit of work so the three writes commit together.
    """
    order.cancel(reason=reason, cancelled_by=cancelled_by)
    current_domain.repository_for(Order).add(order)

    if order.points_redeemed:
        points_repo = current_domain.repository_for(PointsAccount)
        account = points_repo.find_for_customer(order.customer_id)
        if account is not None and account.refund(order.id):
            points_repo.add(account)

    if order.discount_code:
        discount_repo = current_domain.repository_for(DiscountCode)
        discount = discount_repo.find_by_code(order.discount_code)
        if discount is not None:
            discount.release_order_share(order.checkout_id)
            discount_repo.add(discount)

    logger.info(
        "Order cancelled",
        order_id=str(order.id),
        checkout_id=str(order.checkout_id),
        cancelled_by=cancelled_by,
        reason=reason,
        points_refunded=order.points_redeemed,
    )


@ordering.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        order = current_domain.repository_for(Order).get(command.order_id)
        assert_owned_by(order, command.retailer_id)
        cancel_with_compensation(order, reason=command.reason, cancelled_by=command.cancelled_by)
