"""Checkout — the entry point that takes a cart all the way to settlement.

    RefreshCartPrices → aggregate_cart → validate_discount / validate_redemption
    → allocate → reserve stock → PlaceOrders (one unit of work)
    → SettlementOrchestrator.settle

Checkouts are idempotent per customer and Idempotency-Key. Repeating a
request returns the stored result, resuming settlement first if it was
interrupted. Reusing a key for a different request is rejected.

Grouping, pricing and materialization run under the customer's lock; the
lock is released before any payment processor call.
"""

import json
from dataclasses import asdict, dataclass
from uuid import uuid4

import structlog
from protean.utils.globals import current_domain

from ordering.cart.aggregation import aggregate_cart
from ordering.cart.items import RefreshCartPrices
from ordering.catalog import get_catalog
from ordering.checkout.allocation import allocate
from ordering.checkout.attempt import CheckoutAttempt
from ordering.checkout.materializer import PlaceOrders, allocations_to_json
from ordering.domain import custom_setting
from ordering.exceptions import IdempotencyConflictError
from ordering.order.stock import order_quantities
from ordering.promotions.resolver import validate_discount, validate_redemption
from ordering.settlement.orchestrator import CheckoutResult, SettlementOrchestrator, checkout_result
from ordering.settlement.payout import PayoutAccount
from ordering.utils.locks import customer_lock
from ordering.utils.logging import checkout_context

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CheckoutRequest:
    customer_id: str
    idempotency_key: str
    discount_code: str | None = None
    points_to_redeem: int = 0
    use_max_points: bool = False
    pickup_instructions: str | None = None

    def fingerprint(self) -> str:
        payload = asdict(self)
        payload.pop("idempotency_key")
        if payload["discount_code"]:
            payload["discount_code"] = payload["discount_code"].strip().upper()
        return json.dumps(payload, sort_keys=True)


def _existing_attempt(request):
    attempt = current_domain.repository_for(CheckoutAttempt).find_by_key(request.customer_id, request.idempotency_key)
    if attempt is not None and attempt.request_fingerprint != request.fingerprint():
        raise IdempotencyConflictError(request.idempotency_key)
    return attempt


def _materialize(request) -> str:
    current_domain.process(RefreshCartPrices(customer_id=request.customer_id), asynchronous=False)
    snapshot = aggregate_cart(request.customer_id)

    discount_code = None
    discount_total = 0
    if request.discount_code:
        quote = validate_discount(request.discount_code, snapshot.subtotal)
        discount_code = quote.code
        discount_total = quote.amount

    points_total = 0
    if request.points_to_redeem or request.use_max_points:
        points_total = validate_redemption(
            request.customer_id,
            request.points_to_redeem,
            snapshot.subtotal,
            discount_total,
            use_max=request.use_max_points,
        )

    retailer_ids = [group.retailer_id for group in snapshot.groups]
    allocations = allocate(
        snapshot.groups,
        discount_total,
        points_total,
        commission_rates=current_domain.repository_for(PayoutAccount).commission_rates(retailer_ids),
        default_rate=custom_setting("PLATFORM_COMMISSION_RATE", 0.10),
    )

    checkout_id = str(uuid4())
    quantities = order_quantities(line for group in snapshot.groups for line in group.lines)
    catalog = get_catalog()
    catalog.reserve_stock(quantities)
    try:
        current_domain.process(
            PlaceOrders(
                checkout_id=checkout_id,
                customer_id=request.customer_id,
                idempotency_key=request.idempotency_key,
                request_fingerprint=request.fingerprint(),
                cart_id=snapshot.cart_id,
                cart_revision=snapshot.revision,
                cart_fingerprint=snapshot.fingerprint,
                allocations=allocations_to_json(allocations),
                discount_code=discount_code,
                currency=custom_setting("CURRENCY", "GBP"),
                pickup_instructions=request.pickup_instructions,
            ),
            asynchronous=False,
        )
    except Exception:
        # Nothing was committed, so the reservation goes back
        catalog.release_stock(quantities)
        raise
    return checkout_id


async def checkout(request: CheckoutRequest, orchestrator: SettlementOrchestrator | None = None) -> CheckoutResult:
    """Run a checkout for `request`, returning the per-retailer settlement report."""
    orchestrator = orchestrator or SettlementOrchestrator()

    with checkout_context(request.customer_id, request.idempotency_key):
        with customer_lock(request.customer_id):
            attempt = _existing_attempt(request)
            if attempt is not None:
                checkout_id = str(attempt.id)
                logger.info("Replaying checkout", checkout_id=checkout_id)
                if attempt.is_settled:
                    return checkout_result(checkout_id)
            else:
                checkout_id = _materialize(request)

        return await orchestrator.settle(checkout_id)
