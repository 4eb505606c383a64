"""Application tests for returning a failed checkout's items to the cart."""

import asyncio
from dataclasses import replace

import pytest
from ordering.cart.cart import ShoppingCart
from ordering.checkout.restore import RestoreFailedItems
from ordering.checkout.service import CheckoutRequest, checkout
from protean import current_domain
from protean.exceptions import ValidationError

CUSTOMER_ID = "cust-001"


def _restore(checkout_id, customer_id=CUSTOMER_ID):
    return current_domain.process(
        RestoreFailedItems(customer_id=customer_id, checkout_id=checkout_id),
        asynchronous=False,
    )


@pytest.fixture()
def partially_failed(add_to_cart, payout_accounts, orchestrator, processor):
    add_to_cart("prod-a1", 2)
    add_to_cart("prod-b1", 1)
    processor.configure("acct_birch", mode="reject")
    result = asyncio.run(
        checkout(CheckoutRequest(customer_id=CUSTOMER_ID, idempotency_key="key-001"), orchestrator=orchestrator)
    )
    return result.checkout_id


class TestRestoreFailedItems:
    def test_failed_items_go_back_into_a_new_cart(self, partially_failed):
        assert _restore(partially_failed) == 1

        cart = current_domain.repository_for(ShoppingCart).find_active(CUSTOMER_ID)
        (line,) = cart.lines
        assert line.product_id == "prod-b1"
        assert line.quantity == 1

    def test_items_merge_into_existing_cart(self, partially_failed, add_to_cart):
        add_to_cart("prod-b1", 2)

        _restore(partially_failed)

        cart = current_domain.repository_for(ShoppingCart).find_active(CUSTOMER_ID)
        assert cart.lines[0].quantity == 3

    def test_restore_only_once(self, partially_failed):
        _restore(partially_failed)
        with pytest.raises(ValidationError):
            _restore(partially_failed)

    def test_unlisted_products_are_skipped(self, partially_failed, catalog):
        catalog.add(replace(catalog.get_product("prod-b1"), is_active=False))
        assert _restore(partially_failed) == 0

    def test_other_customers_checkout(self, partially_failed):
        with pytest.raises(ValidationError):
            _restore(partially_failed, customer_id="cust-999")

    def test_nothing_to_restore(self, add_to_cart, payout_accounts, orchestrator):
        add_to_cart("prod-a1")
        result = asyncio.run(
            checkout(CheckoutRequest(customer_id=CUSTOMER_ID, idempotency_key="key-001"), orchestrator=orchestrator)
        )
        with pytest.raises(ValidationError):
            _restore(result.checkout_id)
