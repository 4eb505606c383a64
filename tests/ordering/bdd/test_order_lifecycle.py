"""BDD tests for an order's life after checkout."""

from ordering.order.order import Order
from ordering.order.payment import CompleteOrderPayment
from ordering.order.status import UpdateOrderStatus
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/order_lifecycle.feature")


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("the customer checked out with {points:d} points"), target_fixture="order")
def _(run_checkout, points):
    result = run_checkout(points_to_redeem=points)
    (order,) = current_domain.repository_for(Order).find_by_checkout(result.checkout_id)
    return order


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the payment completes", target_fixture="order")
def _(order):
    current_domain.process(
        CompleteOrderPayment(payment_handle_id=order.payment_handle_id, payment_transaction_id="txn_001"),
        asynchronous=False,
    )
    return current_domain.repository_for(Order).get(order.id)


@when(parsers.cfparse('the retailer marks the order "{status}"'))
def _(order, error, status):
    try:
        current_domain.process(
            UpdateOrderStatus(order_id=order.id, status=status, retailer_id=order.retailer_id),
            asynchronous=False,
        )
    except ValidationError as exc:
        error["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the status change is refused")
def _(error):
    assert isinstance(error["exc"], ValidationError)


@then("the payment is refunded")
def _(processor):
    (refund,) = processor.calls_for("create_refund")
    assert refund["transaction_id"] == "txn_001"
    assert refund["amount"] == 2500
