"""Settlement orchestration — requests a capture handle for every order of a checkout.

Processor calls for different retailers run concurrently, each bounded by a
timeout and retried with exponential backoff on transient failures. A slow
or failing retailer therefore never holds up the others, and one retailer's
failure never rolls back another retailer's order.

Outcomes are applied one at a time once every call has finished:
- handle created: the order stays PENDING and records the handle
- rejected, no usable payout account, or out of retries: the order is
  cancelled and its points and discount shares are released

Settling the same checkout again only touches orders that are still PENDING
without a handle, so an interrupted settlement can be resumed.
"""

import asyncio
import json
from dataclasses import dataclass, field

import structlog
from protean import handle
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain

from ordering.checkout.attempt import CheckoutAttempt
from ordering.domain import custom_setting, ordering
from ordering.order.cancellation import CancelOrder
from ordering.order.order import CancellationActor, Order, OrderStatus
from ordering.order.payment import RecordPaymentHandle
from ordering.order.status import UpdateOrderStatus
from ordering.settlement.gateway import get_processor
from ordering.settlement.gateway.port import TransientGatewayError
from ordering.settlement.payout import PayoutAccount
from ordering.utils.locks import customer_lock

logger = structlog.get_logger(__name__)

# Retried with the same idempotency key. Network errors surface as OSError.
RETRYABLE_ERRORS = (TimeoutError, TransientGatewayError, OSError)


@dataclass(frozen=True)
class SettlementOutcome:
    order_id: str
    retailer_id: str
    retailer_name: str
    total: int
    status: str
    succeeded: bool
    payment_handle_id: str | None = None
    payment_url: str | None = None
    failure_reason: str | None = None
    items: tuple = field(default_factory=tuple)

    def to_dict(self):
        return {
            "order_id": self.order_id,
            "retailer_id": self.retailer_id,
            "retailer_name": self.retailer_name,
            "total": self.total,
            "status": self.status,
            "succeeded": self.succeeded,
            "payment_handle_id": self.payment_handle_id,
            "payment_url": self.payment_url,
            "failure_reason": self.failure_reason,
            "items": list(self.items),
        }

    @classmethod
    def from_order(cls, order):
        status = OrderStatus(order.status)
        if status == OrderStatus.CANCELLED:
            succeeded = False
        elif status == OrderStatus.PENDING:
            succeeded = bool(order.payment_handle_id)
        else:
            succeeded = True
        return cls(
            order_id=str(order.id),
            retailer_id=str(order.retailer_id),
            retailer_name=order.retailer_name or "",
            total=order.total,
            status=order.status,
            succeeded=succeeded,
            payment_handle_id=order.payment_handle_id,
            payment_url=order.payment_url,
            failure_reason=order.cancellation_reason if status == OrderStatus.CANCELLED else None,
            items=tuple(
                {
                    "product_id": str(item.product_id),
                    "product_name": item.product_name,
                    "unit_price": item.unit_price,
                    "quantity": item.quantity,
                }
                for item in order.items
            ),
        )


@dataclass(frozen=True)
class CheckoutResult:
    checkout_id: str
    status: str
    outcomes: tuple[SettlementOutcome, ...]

    @property
    def succeeded(self):
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self):
        return [o for o in self.outcomes if not o.succeeded]


@dataclass(frozen=True)
class _CaptureOutcome:
    success: bool
    handle_id: str | None = None
    redirect_url: str | None = None
    failure_reason: str | None = None
    attempts: int = 0


# ---------------------------------------------------------------------------
# Recording the result on the checkout attempt
# ---------------------------------------------------------------------------
@ordering.command(part_of="CheckoutAttempt")
class RecordSettlement:
    checkout_id = Identifier(required=True)
    outcomes = Text(required=True)  # JSON array of SettlementOutcome dicts


@ordering.command_handler(part_of=CheckoutAttempt)
class RecordSettlementHandler:
    @handle(RecordSettlement)
    def record_settlement(self, command):
        repo = current_domain.repository_for(CheckoutAttempt)
        attempt = repo.get(command.checkout_id)
        if attempt.is_settled:
            return attempt.status
        attempt.record_settlement(json.loads(command.outcomes))
        repo.add(attempt)
        return attempt.status


def _is_outstanding(order):
    return OrderStatus(order.status) == OrderStatus.PENDING and not order.payment_handle_id


def _still_outstanding(order_id):
    return _is_outstanding(current_domain.repository_for(Order).get(order_id))


def checkout_result(checkout_id) -> CheckoutResult:
    """Build the per-retailer report for a checkout from current order state."""
    attempt = current_domain.repository_for(CheckoutAttempt).get(checkout_id)
    orders = current_domain.repository_for(Order).find_by_checkout(checkout_id)
    return CheckoutResult(
        checkout_id=str(attempt.id),
        status=attempt.status,
        outcomes=tuple(SettlementOutcome.from_order(order) for order in orders),
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------
class SettlementOrchestrator:
    """Settles the orders of a checkout against the payment processor."""

    def __init__(self, processor=None, max_attempts=None, timeout_seconds=None, backoff_seconds=None):
        self.processor = processor or get_processor()
        self.max_attempts = max_attempts or custom_setting("SETTLEMENT_MAX_ATTEMPTS", 3)
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else custom_setting("SETTLEMENT_TIMEOUT_SECONDS", 10.0)
        )
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else custom_setting("SETTLEMENT_BACKOFF_SECONDS", 0.5)
        )

    async def settle(self, checkout_id) -> CheckoutResult:
        attempt = current_domain.repository_for(CheckoutAttempt).get(checkout_id)
        orders = current_domain.repository_for(Order).find_by_checkout(checkout_id)

        outstanding = [o for o in orders if _is_outstanding(o)]
        payable = [o for o in outstanding if o.total > 0]
        free = [o for o in outstanding if o.total == 0]

        payout_repo = current_domain.repository_for(PayoutAccount)
        payouts = {str(o.retailer_id): payout_repo.find_for_retailer(o.retailer_id) for o in payable}

        logger.info(
            "Settling checkout",
            checkout_id=str(checkout_id),
            orders=len(orders),
            outstanding=len(outstanding),
        )

        captures = await asyncio.gather(
            *(self._capture(o, payouts[str(o.retailer_id)]) for o in payable),
            return_exceptions=True,
        )

        for order, capture in zip(payable, captures, strict=True):
            if isinstance(capture, BaseException):
                if not isinstance(capture, Exception):
                    raise capture
                logger.error(
                    "Capture request crashed",
                    order_id=str(order.id),
                    retailer_id=str(order.retailer_id),
                    error=repr(capture),
                )
                capture = _CaptureOutcome(success=False, failure_reason="Payment could not be set up")
            self._apply(order, capture, attempt.customer_id)

        for order in free:
            # Nothing to collect: discount and points covered the whole order
            with customer_lock(attempt.customer_id):
                if _still_outstanding(order.id):
                    current_domain.process(
                        UpdateOrderStatus(order_id=order.id, status=OrderStatus.PROCESSING.value),
                        asynchronous=False,
                    )

        with customer_lock(attempt.customer_id):
            result = checkout_result(checkout_id)
            status = current_domain.process(
                RecordSettlement(
                    checkout_id=checkout_id,
                    outcomes=json.dumps([o.to_dict() for o in result.outcomes]),
                ),
                asynchronous=False,
            )
        logger.info(
            "Checkout settled",
            checkout_id=str(checkout_id),
            status=status,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
        )
        return CheckoutResult(checkout_id=result.checkout_id, status=status, outcomes=result.outcomes)

    async def _capture(self, order, payout) -> _CaptureOutcome:
        if payout is None or not payout.charges_enabled:
            return _CaptureOutcome(
                success=False,
                failure_reason=f"Retailer {order.retailer_name or order.retailer_id} cannot accept payments yet",
            )

        idempotency_key = f"{order.checkout_id}:{order.id}"
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await asyncio.wait_for(
                    asyncio.to_thread(
                        self.processor.create_capture,
                        amount=order.total,
                        currency=order.currency,
                        destination_account=payout.account_id,
                        application_fee=order.platform_commission,
                        idempotency_key=idempotency_key,
                        description=f"Order {order.id}",
                    ),
                    timeout=self.timeout_seconds,
                )
            except RETRYABLE_ERRORS as exc:
                logger.warning(
                    "Capture request failed",
                    order_id=str(order.id),
                    retailer_id=str(order.retailer_id),
                    attempt=attempt,
                    error=type(exc).__name__,
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.backoff_seconds * 2 ** (attempt - 1))
                continue

            return _CaptureOutcome(
                success=result.success,
                handle_id=result.handle_id,
                redirect_url=result.redirect_url,
                failure_reason=result.failure_reason,
                attempts=attempt,
            )

        return _CaptureOutcome(
            success=False,
            failure_reason=f"Payment processor did not respond after {self.max_attempts} attempts",
            attempts=self.max_attempts,
        )

    def _apply(self, order, capture, customer_id):
        with customer_lock(customer_id):
            # A concurrent replay of the same checkout may have got here first
            if not _still_outstanding(order.id):
                logger.info("Order already settled", order_id=str(order.id))
                return

            if capture.success:
                current_domain.process(
                    RecordPaymentHandle(
                        order_id=order.id,
                        payment_handle_id=capture.handle_id,
                        payment_url=capture.redirect_url,
                    ),
                    asynchronous=False,
                )
                return

            logger.warning(
                "Settlement failed for order",
                order_id=str(order.id),
                retailer_id=str(order.retailer_id),
                reason=capture.failure_reason,
                attempts=capture.attempts,
            )
            current_domain.process(
                CancelOrder(
                    order_id=order.id,
                    reason=capture.failure_reason or "Payment could not be set up",
                    cancelled_by=CancellationActor.SYSTEM.value,
                ),
                asynchronous=False,
            )
