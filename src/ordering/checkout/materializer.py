"""Order materialization — turns a grouped, priced cart into orders in one unit of work.

PlaceOrders commits all of the following together, or none of it:
- one Order per retailer group, carrying its allocated amounts
- the cart closed and emptied
- the points debited from the customer's account, per order
- the discount code's usage recorded
- the CheckoutAttempt linking the orders

Every precondition is checked before the first write. The cart must still
be at the revision it was grouped at; otherwise the customer is asked to
review it.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.cart.aggregation import cart_fingerprint, group_lines
from ordering.cart.cart import CartStatus, ShoppingCart
from ordering.checkout.allocation import GroupAllocation
from ordering.checkout.attempt import CheckoutAttempt
from ordering.domain import ordering
from ordering.exceptions import CartModifiedError, DiscountNotFoundError, InsufficientPointsError
from ordering.order.order import Order
from ordering.points.account import PointsAccount
from ordering.promotions.discount import DiscountCode

logger = structlog.get_logger(__name__)


@ordering.command(part_of="CheckoutAttempt")
class PlaceOrders:
    checkout_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    idempotency_key = String(required=True, max_length=255)
    request_fingerprint = String(max_length=1000)
    cart_id = Identifier(required=True)
    cart_revision = Integer(required=True)
    cart_fingerprint = Text(required=True)
    allocations = Text(required=True)  # JSON array of GroupAllocation dicts
    discount_code = String(max_length=50)
    currency = String(max_length=3, default="GBP")
    pickup_instructions = Text()


def allocations_to_json(allocations):
    return json.dumps(
        [
            {
                "retailer_id": a.retailer_id,
                "subtotal": a.subtotal,
                "discount_amount": a.discount_amount,
                "points_redeemed": a.points_redeemed,
                "platform_commission": a.platform_commission,
                "retailer_amount": a.retailer_amount,
            }
            for a in allocations
        ]
    )


@ordering.command_handler(part_of=CheckoutAttempt)
class PlaceOrdersHandler:
    @handle(PlaceOrders)
    def place_orders(self, command):
        cart_repo = current_domain.repository_for(ShoppingCart)
        cart = cart_repo.get(command.cart_id)
        if (
            CartStatus(cart.status) != CartStatus.ACTIVE
            or cart.revision != command.cart_revision
            or cart_fingerprint(cart) != command.cart_fingerprint
        ):
            raise CartModifiedError()

        groups = group_lines(cart)
        allocations = [GroupAllocation(**a) for a in json.loads(command.allocations)]
        if [g.retailer_id for g in groups] != [a.retailer_id for a in allocations] or any(
            g.subtotal != a.subtotal for g, a in zip(groups, allocations, strict=True)
        ):
            raise CartModifiedError()

        points_total = sum(a.points_redeemed for a in allocations)
        discount_total = sum(a.discount_amount for a in allocations)

        # Preconditions on the points account and the discount code
        points_repo = current_domain.repository_for(PointsAccount)
        account = points_repo.find_for_customer(command.customer_id) if points_total else None
        if points_total and (account is None or account.balance < points_total):
            raise InsufficientPointsError(requested=points_total, balance=account.balance if account else 0)

        discount_repo = current_domain.repository_for(DiscountCode)
        discount = None
        if discount_total:
            discount = discount_repo.find_by_code(command.discount_code or "")
            if discount is None:
                raise DiscountNotFoundError(command.discount_code)
            discount.assert_applicable(sum(a.subtotal for a in allocations))

        # Orders
        order_repo = current_domain.repository_for(Order)
        orders = []
        for group, allocation in zip(groups, allocations, strict=True):
            order = Order.create(
                customer_id=command.customer_id,
                checkout_id=command.checkout_id,
                retailer_id=group.retailer_id,
                retailer_name=group.retailer_name,
                items_data=[
                    {
                        "product_id": line.product_id,
                        "product_name": line.product_name,
                        "unit_price": line.unit_price,
                        "quantity": line.quantity,
                    }
                    for line in group.lines
                ],
                allocation=allocation,
                currency=command.currency,
                pickup_location=group.pickup_location,
                pickup_instructions=command.pickup_instructions,
                discount_code=discount.code if discount else None,
            )
            order_repo.add(order)
            orders.append(order)

        cart.check_out(command.checkout_id)
        cart_repo.add(cart)

        if account is not None:
            for order in orders:
                if order.points_redeemed:
                    account.debit(order.points_redeemed, order.id, f"Redeemed at checkout {command.checkout_id}")
            points_repo.add(account)

        if discount is not None:
            discount.redeem(
                checkout_id=command.checkout_id,
                customer_id=command.customer_id,
                amount=discount_total,
                order_count=sum(1 for order in orders if order.discount_amount),
            )
            discount_repo.add(discount)

        attempt = CheckoutAttempt.create(
            checkout_id=command.checkout_id,
            customer_id=command.customer_id,
            idempotency_key=command.idempotency_key,
            request_fingerprint=command.request_fingerprint,
            cart_id=command.cart_id,
            order_ids=[str(order.id) for order in orders],
            subtotal=sum(a.subtotal for a in allocations),
            discount_code=discount.code if discount else None,
            discount_amount=discount_total,
            points_redeemed=points_total,
        )
        current_domain.repository_for(CheckoutAttempt).add(attempt)

        logger.info(
            "Checkout materialized",
            checkout_id=str(command.checkout_id),
            customer_id=str(command.customer_id),
            order_count=len(orders),
            discount_amount=discount_total,
            points_redeemed=points_total,
        )
        return str(attempt.id)
