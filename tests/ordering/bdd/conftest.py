"""Shared BDD fixtures and step definitions for the marketplace checkout."""

import asyncio

import pytest
from ordering.checkout.service import CheckoutRequest, checkout
from ordering.order.order import Order
from ordering.points.account import PointsAccount
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

CUSTOMER_ID = "cust-001"


@pytest.fixture()
def error():
    """Container for a captured validation error."""
    return {"exc": None}


@pytest.fixture()
def run_checkout(orchestrator, error):
    """Check out the customer's cart. With `capture`, a rejection is stored in `error`."""

    def _run(capture=False, **kwargs):
        request = CheckoutRequest(customer_id=CUSTOMER_ID, idempotency_key="key-001", **kwargs)
        try:
            return asyncio.run(checkout(request, orchestrator=orchestrator))
        except ValidationError as exc:
            if not capture:
                raise
            error["exc"] = exc
            return None

    return _run


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("the retailers can accept payments")
def _(payout_accounts):
    pass


@given(parsers.cfparse("the customer has {amount:d} points"))
def _(give_points, amount):
    give_points(amount)


@given(parsers.cfparse('a discount code "{code}" worth {value:d} off'))
def _(create_discount, code, value):
    create_discount(code, value=value)


@given(parsers.cfparse('a discount code "{code}" worth {value:d} off orders of at least {minimum:d}'))
def _(create_discount, code, value, minimum):
    create_discount(code, value=value, min_order_total=minimum)


@given(parsers.cfparse('the cart holds {quantity:d} of "{product_id}"'))
def _(add_to_cart, quantity, product_id):
    add_to_cart(product_id, quantity)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the customer has {amount:d} points"))
def _(amount):
    account = current_domain.repository_for(PointsAccount).find_for_customer(CUSTOMER_ID)
    assert account.balance == amount


@then(parsers.cfparse('the order status is "{status}"'))
def _(order, status):
    assert current_domain.repository_for(Order).get(order.id).status == status
