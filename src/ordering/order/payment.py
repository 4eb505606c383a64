"""Payment tracking on orders — commands and handler."""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order, OrderStatus

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class RecordPaymentHandle:
    order_id = Identifier(required=True)
    payment_handle_id = String(required=True, max_length=255)
    payment_url = String(max_length=1000)


@ordering.command(part_of="Order")
class CompleteOrderPayment:
    payment_handle_id = String(required=True, max_length=255)
    payment_transaction_id = String(required=True, max_length=255)


@ordering.command_handler(part_of=Order)
class OrderPaymentHandler:
    @handle(RecordPaymentHandle)
    def record_payment_handle(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_payment_handle(command.payment_handle_id, command.payment_url)
        repo.add(order)

    @handle(CompleteOrderPayment)
    def complete_order_payment(self, command):
        """Handle the processor's completion callback.

        A repeated callback for an order that already moved on is ignored.
        """
        repo = current_domain.repository_for(Order)
        order = repo.find_by_payment_handle(command.payment_handle_id)
        if order is None:
            raise ObjectNotFoundError({"payment_handle_id": [f"No order for payment {command.payment_handle_id}"]})

        if (
            order.payment_transaction_id == command.payment_transaction_id
            and OrderStatus(order.status) != OrderStatus.PENDING
        ):
            logger.info("Duplicate payment completion ignored", order_id=str(order.id))
            return str(order.id)

        order.complete_payment(command.payment_transaction_id)
        repo.add(order)
        logger.info(
            "Order payment completed",
            order_id=str(order.id),
            payment_transaction_id=command.payment_transaction_id,
        )
        return str(order.id)
