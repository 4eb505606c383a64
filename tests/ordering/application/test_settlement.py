"""Application tests for per-retailer settlement — timeouts, rejections and compensation."""

import asyncio
import json

import pytest
from ordering.checkout.attempt import CheckoutAttempt, CheckoutStatus
from ordering.checkout.service import CheckoutRequest, checkout
from ordering.order.order import Order, OrderStatus
from ordering.points.account import PointsAccount
from ordering.promotions.discount import DiscountCode
from ordering.settlement.orchestrator import RecordSettlement, SettlementOrchestrator, _CaptureOutcome
from ordering.settlement.payout import ConnectPayoutAccount
from protean import current_domain

CUSTOMER_ID = "cust-001"


def _checkout(orchestrator, key="key-001", **kwargs):
    request = CheckoutRequest(customer_id=CUSTOMER_ID, idempotency_key=key, **kwargs)
    return asyncio.run(checkout(request, orchestrator=orchestrator))


def _orders(checkout_id):
    return current_domain.repository_for(Order).find_by_checkout(checkout_id)


@pytest.fixture()
def priced_cart(add_to_cart, create_discount, give_points, payout_accounts):
    """£30 at Alder Bakery and £10 at Birch Books, a £5 code and 1000 points."""
    add_to_cart("prod-a1", 2)
    add_to_cart("prod-b1", 1)
    create_discount("SAVE5", value=500)
    give_points(1000)


class TestPartialFailure:
    def test_one_retailer_times_out(self, priced_cart, orchestrator, processor):
        processor.configure("acct_birch", delay=0.5)

        result = _checkout(orchestrator, discount_code="SAVE5", points_to_redeem=400)

        assert result.status == CheckoutStatus.PARTIALLY_FAILED.value
        order_a, order_b = _orders(result.checkout_id)

        assert order_a.status == OrderStatus.PENDING.value
        assert order_a.payment_url is not None
        assert order_b.status == OrderStatus.CANCELLED.value
        assert order_b.cancelled_by == "System"
        assert order_b.cancellation_reason == "Payment processor did not respond after 3 attempts"
        assert len(processor.calls_for("create_capture", "acct_birch")) == 3

    def test_failed_order_shares_are_compensated(self, priced_cart, orchestrator, processor):
        processor.configure("acct_birch", delay=0.5)

        result = _checkout(orchestrator, discount_code="SAVE5", points_to_redeem=400)

        order_a, order_b = _orders(result.checkout_id)
        account = current_domain.repository_for(PointsAccount).find_for_customer(CUSTOMER_ID)
        assert account.balance == 700
        assert account.redeemed_for(order_a.id) == 300
        assert account.balance == account.total_earned - account.total_redeemed

        discount = current_domain.repository_for(DiscountCode).find_by_code("SAVE5")
        assert discount.redemptions[0].open_orders == 1
        assert discount.used_count == 1

    def test_outcomes_report_failed_items(self, priced_cart, orchestrator, processor):
        processor.configure("acct_birch", mode="reject", failure_reason="Account restricted")

        result = _checkout(orchestrator)

        (failed,) = result.failed
        assert failed.retailer_id == "ret-b"
        assert failed.failure_reason == "Account restricted"
        assert failed.items[0]["product_id"] == "prod-b1"
        assert [o.retailer_id for o in result.succeeded] == ["ret-a"]

    def test_settlement_recorded_on_attempt(self, priced_cart, orchestrator, processor):
        processor.configure("acct_birch", mode="reject")

        result = _checkout(orchestrator)

        attempt = current_domain.repository_for(CheckoutAttempt).get(result.checkout_id)
        assert attempt.status == CheckoutStatus.PARTIALLY_FAILED.value
        assert [o["succeeded"] for o in attempt.get_outcomes()] == [True, False]


class TestTotalFailure:
    def test_every_retailer_fails(self, priced_cart, orchestrator, processor):
        processor.configure(mode="reject")

        result = _checkout(orchestrator, discount_code="SAVE5", points_to_redeem=400)

        assert result.status == CheckoutStatus.FAILED.value
        assert all(o.status == OrderStatus.CANCELLED.value for o in _orders(result.checkout_id))

        account = current_domain.repository_for(PointsAccount).find_for_customer(CUSTOMER_ID)
        assert account.balance == 1000
        discount = current_domain.repository_for(DiscountCode).find_by_code("SAVE5")
        assert discount.used_count == 0
        assert discount.redemptions[0].released


class TestRetries:
    def test_transient_failures_are_retried(self, priced_cart, orchestrator, processor):
        processor.configure("acct_birch", transient_failures=2)

        result = _checkout(orchestrator)

        assert result.status == CheckoutStatus.SUCCEEDED.value
        assert len(processor.calls_for("create_capture", "acct_birch")) == 3

    def test_retries_reuse_the_idempotency_key(self, priced_cart, orchestrator, processor):
        processor.configure("acct_birch", transient_failures=1)

        _checkout(orchestrator)

        keys = {c["idempotency_key"] for c in processor.calls_for("create_capture", "acct_birch")}
        assert len(keys) == 1

    def test_unavailable_processor_exhausts_attempts(self, priced_cart, orchestrator, processor):
        processor.configure("acct_birch", mode="unavailable")

        result = _checkout(orchestrator)

        assert [o.succeeded for o in result.outcomes] == [True, False]
        assert len(processor.calls_for("create_capture", "acct_birch")) == 3

    def test_dropped_connections_are_retried(self, priced_cart, orchestrator, processor):
        processor.configure("acct_birch", network_failures=2)

        result = _checkout(orchestrator)

        assert result.status == CheckoutStatus.SUCCEEDED.value
        assert len(processor.calls_for("create_capture", "acct_birch")) == 3

    def test_persistent_network_error_cancels_only_that_order(self, priced_cart, orchestrator, processor):
        processor.configure("acct_birch", mode="network_error")

        result = _checkout(orchestrator)

        assert result.status == CheckoutStatus.PARTIALLY_FAILED.value
        order_a, order_b = _orders(result.checkout_id)
        assert order_a.payment_handle_id is not None
        assert order_b.status == OrderStatus.CANCELLED.value
        assert order_b.cancellation_reason == "Payment processor did not respond after 3 attempts"
        assert len(processor.calls_for("create_capture", "acct_birch")) == 3

    def test_unexpected_processor_error_cancels_only_that_order(self, priced_cart, orchestrator, processor):
        processor.configure("acct_birch", mode="malformed")

        result = _checkout(orchestrator)

        assert result.status == CheckoutStatus.PARTIALLY_FAILED.value
        order_a, order_b = _orders(result.checkout_id)
        assert order_a.status == OrderStatus.PENDING.value
        assert order_a.payment_handle_id is not None
        assert order_b.status == OrderStatus.CANCELLED.value
        assert order_b.cancellation_reason == "Payment could not be set up"
        assert len(processor.calls_for("create_capture", "acct_birch")) == 1


class TestPayoutAccounts:
    def test_retailer_without_payout_account(self, add_to_cart, orchestrator, processor):
        current_domain.process(
            ConnectPayoutAccount(retailer_id="ret-a", account_id="acct_alder"),
            asynchronous=False,
        )
        add_to_cart("prod-a1")
        add_to_cart("prod-b1")

        result = _checkout(orchestrator)

        (failed,) = result.failed
        assert failed.retailer_id == "ret-b"
        assert failed.failure_reason == "Retailer Birch Books cannot accept payments yet"
        assert processor.calls_for("create_capture", "acct_birch") == []

    def test_charges_disabled(self, priced_cart, orchestrator, processor):
        current_domain.process(
            ConnectPayoutAccount(retailer_id="ret-b", account_id="acct_birch", charges_enabled=False),
            asynchronous=False,
        )

        result = _checkout(orchestrator)

        assert [o.retailer_id for o in result.failed] == ["ret-b"]


class TestResume:
    def test_settling_again_only_touches_outstanding_orders(self, priced_cart, orchestrator, processor):
        result = _checkout(orchestrator)
        calls_before = len(processor.calls)

        again = asyncio.run(orchestrator.settle(result.checkout_id))

        assert len(processor.calls) == calls_before
        assert [o.payment_handle_id for o in again.outcomes] == [o.payment_handle_id for o in result.outcomes]

    def test_applying_an_outcome_to_a_cancelled_order_is_skipped(self, priced_cart, orchestrator, processor, catalog):
        processor.configure("acct_birch", mode="reject")
        result = _checkout(orchestrator)
        _, order_b = _orders(result.checkout_id)
        stock_after_cancel = catalog.get_product("prod-b1").stock

        # The same failure arriving a second time, from a replay working on a stale copy
        orchestrator._apply(order_b, _CaptureOutcome(success=False, failure_reason="Declined"), CUSTOMER_ID)

        order_b = current_domain.repository_for(Order).get(order_b.id)
        assert order_b.status == OrderStatus.CANCELLED.value
        assert order_b.cancellation_reason == "Payout account rejected the payment"
        assert catalog.get_product("prod-b1").stock == stock_after_cancel

    def test_applying_a_handle_to_an_order_that_has_one_is_skipped(self, priced_cart, orchestrator):
        result = _checkout(orchestrator)
        order_a, _ = _orders(result.checkout_id)

        orchestrator._apply(order_a, _CaptureOutcome(success=True, handle_id="fake_cs_other"), CUSTOMER_ID)

        assert current_domain.repository_for(Order).get(order_a.id).payment_handle_id == order_a.payment_handle_id

    def test_recording_a_settled_checkout_again_keeps_the_first_result(self, priced_cart, orchestrator, processor):
        processor.configure("acct_birch", mode="reject")
        result = _checkout(orchestrator)
        attempt = current_domain.repository_for(CheckoutAttempt).get(result.checkout_id)

        status = current_domain.process(
            RecordSettlement(
                checkout_id=result.checkout_id,
                outcomes=json.dumps([{"order_id": "ord-x", "succeeded": True}]),
            ),
            asynchronous=False,
        )

        assert status == CheckoutStatus.PARTIALLY_FAILED.value
        reloaded = current_domain.repository_for(CheckoutAttempt).get(result.checkout_id)
        assert reloaded.settled_at == attempt.settled_at
        assert [o["succeeded"] for o in reloaded.get_outcomes()] == [True, False]

    def test_default_settings_come_from_config(self, processor):
        orchestrator = SettlementOrchestrator(processor=processor)
        assert orchestrator.max_attempts == 3
        assert orchestrator.timeout_seconds == 10.0
        assert orchestrator.backoff_seconds == 0.5
