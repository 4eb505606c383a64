"""Retailer and admin status changes — command and handler."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.cancellation import assert_owned_by, cancel_with_compensation
from ordering.order.order import CancellationActor, Order, OrderStatus


@ordering.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, choices=OrderStatus)
    retailer_id = Identifier()
    reason = String(max_length=500)


@ordering.command_handler(part_of=Order)
class UpdateOrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        assert_owned_by(order, command.retailer_id)

        if OrderStatus(command.status) == OrderStatus.CANCELLED:
            actor = CancellationActor.RETAILER if command.retailer_id else CancellationActor.ADMIN
            cancel_with_compensation(order, reason=command.reason or "Cancelled by retailer", cancelled_by=actor.value)
            return order.status

        order.transition_to(command.status)
        repo.add(order)
        return order.status
