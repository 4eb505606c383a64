"""Returning a failed checkout's items to the cart — command and handler.

After a partial or total settlement failure the customer can put the items
of the cancelled orders back into their active cart and try those retailers
again later. Products no longer listed are left out.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from ordering.cart.cart import ShoppingCart
from ordering.catalog import get_catalog
from ordering.checkout.attempt import CheckoutAttempt
from ordering.domain import ordering
from ordering.order.order import Order, OrderStatus

logger = structlog.get_logger(__name__)


@ordering.command(part_of="CheckoutAttempt")
class RestoreFailedItems:
    customer_id = Identifier(required=True)
    checkout_id = Identifier(required=True)


@ordering.command_handler(part_of=CheckoutAttempt)
class RestoreFailedItemsHandler:
    @handle(RestoreFailedItems)
    def restore_failed_items(self, command):
        attempt_repo = current_domain.repository_for(CheckoutAttempt)
        attempt = attempt_repo.get(command.checkout_id)
        if str(attempt.customer_id) != str(command.customer_id):
            raise ValidationError({"checkout_id": ["Checkout does not belong to this customer"]})

        cancelled = [
            o
            for o in current_domain.repository_for(Order).find_by_checkout(attempt.id)
            if OrderStatus(o.status) == OrderStatus.CANCELLED
        ]
        if not cancelled:
            raise ValidationError({"checkout_id": ["Checkout has no failed orders to restore"]})

        attempt.mark_restored()

        cart_repo = current_domain.repository_for(ShoppingCart)
        cart = cart_repo.find_active(command.customer_id) or ShoppingCart.create(customer_id=command.customer_id)

        catalog = get_catalog()
        restored = 0
        for order in cancelled:
            for item in order.items:
                listing = catalog.get_product(str(item.product_id))
                if listing is None or not listing.is_active:
                    logger.info("Skipping unlisted product on restore", product_id=str(item.product_id))
                    continue
                cart.add_line(listing, item.quantity)
                restored += 1

        if restored:
            cart_repo.add(cart)
        attempt_repo.add(attempt)
        return restored
