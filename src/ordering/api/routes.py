"""FastAPI routes for the marketplace — cart, checkout, discounts, points, orders and payments.

The caller's identity comes from the authentication layer in front of this
service as the X-Customer-Id header. Retailer dashboards send X-Retailer-Id.
"""

from fastapi import APIRouter, Header, HTTPException, Request
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.api.schemas import (
    AddToCartRequest,
    CartLineSchema,
    CartResponse,
    CheckoutRequestSchema,
    CheckoutResponse,
    ConnectPayoutAccountRequest,
    CreateDiscountCodeRequest,
    DiscountCodeIdResponse,
    DiscountQuoteResponse,
    LineIdResponse,
    OrderItemSchema,
    OrderResponse,
    PaymentWebhookRequest,
    PayoutAccountIdResponse,
    PointsResponse,
    PointsTransactionSchema,
    RestoreResponse,
    RetailerGroupSchema,
    StatusResponse,
    UpdateCartLineRequest,
    UpdateOrderStatusRequest,
    ValidateDiscountRequest,
)
from ordering.cart.aggregation import group_lines
from ordering.cart.cart import ShoppingCart
from ordering.cart.items import AddToCart, RemoveCartLine, UpdateCartLine
from ordering.checkout.attempt import CheckoutAttempt
from ordering.checkout.restore import RestoreFailedItems
from ordering.checkout.service import CheckoutRequest, checkout
from ordering.order.order import Order
from ordering.order.payment import CompleteOrderPayment
from ordering.order.status import UpdateOrderStatus
from ordering.points.account import PointsAccount
from ordering.promotions.management import CreateDiscountCode
from ordering.promotions.resolver import validate_discount
from ordering.settlement.gateway import get_processor
from ordering.settlement.orchestrator import checkout_result
from ordering.settlement.payout import ConnectPayoutAccount
from ordering.utils.locks import customer_lock

PAYMENT_COMPLETED_EVENT = "checkout.session.completed"


def _checkout_response(result) -> CheckoutResponse:
    return CheckoutResponse(
        checkout_id=result.checkout_id,
        status=result.status,
        orders=[outcome.to_dict() for outcome in result.outcomes],
    )


def _order_response(order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        checkout_id=str(order.checkout_id),
        customer_id=str(order.customer_id),
        retailer_id=str(order.retailer_id),
        retailer_name=order.retailer_name,
        status=order.status,
        currency=order.currency,
        items=[
            OrderItemSchema(
                product_id=str(item.product_id),
                product_name=item.product_name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                line_total=item.line_total,
            )
            for item in order.items
        ],
        subtotal=order.subtotal,
        discount_amount=order.discount_amount,
        points_redeemed=order.points_redeemed,
        platform_commission=order.platform_commission,
        retailer_amount=order.retailer_amount,
        total=order.total,
        pickup_location=order.pickup_location,
        pickup_instructions=order.pickup_instructions,
        payment_url=order.payment_url,
        cancellation_reason=order.cancellation_reason,
        created_at=order.created_at,
        ready_for_pickup_at=order.ready_for_pickup_at,
        picked_up_at=order.picked_up_at,
    )


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("", response_model=CartResponse)
async def get_cart(x_customer_id: str = Header()) -> CartResponse:
    """The caller's active cart, grouped by retailer."""
    cart = current_domain.repository_for(ShoppingCart).find_active(x_customer_id)
    if cart is None:
        return CartResponse()

    groups = group_lines(cart)
    return CartResponse(
        cart_id=str(cart.id),
        revision=cart.revision,
        subtotal=sum(g.subtotal for g in groups),
        groups=[
            RetailerGroupSchema(
                retailer_id=g.retailer_id,
                retailer_name=g.retailer_name,
                pickup_location=g.pickup_location,
                subtotal=g.subtotal,
                lines=[
                    CartLineSchema(
                        line_id=line.line_id,
                        product_id=line.product_id,
                        product_name=line.product_name,
                        unit_price=line.unit_price,
                        quantity=line.quantity,
                        line_total=line.line_total,
                    )
                    for line in g.lines
                ],
            )
            for g in groups
        ],
    )


@cart_router.post("/items", status_code=201, response_model=LineIdResponse)
async def add_cart_item(body: AddToCartRequest, x_customer_id: str = Header()) -> LineIdResponse:
    command = AddToCart(
        customer_id=x_customer_id,
        product_id=body.product_id,
        quantity=body.quantity,
    )
    with customer_lock(x_customer_id):
        line_id = current_domain.process(command, asynchronous=False)
    return LineIdResponse(line_id=line_id)


@cart_router.put("/items/{line_id}", response_model=StatusResponse)
async def update_cart_item(line_id: str, body: UpdateCartLineRequest, x_customer_id: str = Header()) -> StatusResponse:
    command = UpdateCartLine(
        customer_id=x_customer_id,
        line_id=line_id,
        new_quantity=body.quantity,
    )
    with customer_lock(x_customer_id):
        current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.delete("/items/{line_id}", response_model=StatusResponse)
async def remove_cart_item(line_id: str, x_customer_id: str = Header()) -> StatusResponse:
    command = RemoveCartLine(customer_id=x_customer_id, line_id=line_id)
    with customer_lock(x_customer_id):
        current_domain.process(command, asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(tags=["checkout"])


@checkout_router.post("/checkout", status_code=201, response_model=CheckoutResponse)
async def run_checkout(
    body: CheckoutRequestSchema,
    x_customer_id: str = Header(),
    idempotency_key: str = Header(),
) -> CheckoutResponse:
    """Split the cart into per-retailer orders and set up payment for each.

    Orders whose payment could not be set up come back with `succeeded`
    false and their items, so the client can offer to restore them.
    """
    result = await checkout(
        CheckoutRequest(
            customer_id=x_customer_id,
            idempotency_key=idempotency_key,
            discount_code=body.discount_code,
            points_to_redeem=body.points_to_redeem,
            use_max_points=body.use_max_points,
            pickup_instructions=body.pickup_instructions,
        )
    )
    return _checkout_response(result)


def _owned_attempt(checkout_id, customer_id):
    attempt = current_domain.repository_for(CheckoutAttempt).get(checkout_id)
    if str(attempt.customer_id) != str(customer_id):
        raise ObjectNotFoundError({"checkout_id": [f"Checkout {checkout_id} not found"]})
    return attempt


@checkout_router.get("/checkouts/{checkout_id}", response_model=CheckoutResponse)
async def get_checkout(checkout_id: str, x_customer_id: str = Header()) -> CheckoutResponse:
    _owned_attempt(checkout_id, x_customer_id)
    return _checkout_response(checkout_result(checkout_id))


@checkout_router.post("/checkouts/{checkout_id}/restore", response_model=RestoreResponse)
async def restore_failed_items(checkout_id: str, x_customer_id: str = Header()) -> RestoreResponse:
    """Put the items of the checkout's cancelled orders back into the cart."""
    command = RestoreFailedItems(customer_id=x_customer_id, checkout_id=checkout_id)
    with customer_lock(x_customer_id):
        restored = current_domain.process(command, asynchronous=False)
    return RestoreResponse(restored_lines=restored)


# ---------------------------------------------------------------------------
# Discount Router
# ---------------------------------------------------------------------------
discount_router = APIRouter(prefix="/discount-codes", tags=["discounts"])


@discount_router.post("", status_code=201, response_model=DiscountCodeIdResponse)
async def create_discount_code(body: CreateDiscountCodeRequest) -> DiscountCodeIdResponse:
    command = CreateDiscountCode(**body.model_dump(exclude_none=True))
    discount_code_id = current_domain.process(command, asynchronous=False)
    return DiscountCodeIdResponse(discount_code_id=discount_code_id)


@discount_router.post("/validate", response_model=DiscountQuoteResponse)
async def validate_discount_code(body: ValidateDiscountRequest) -> DiscountQuoteResponse:
    """Price a discount code against an order total without using it."""
    quote = validate_discount(body.code, body.order_total)
    return DiscountQuoteResponse(
        code=quote.code,
        discount_type=quote.discount_type,
        discount_amount=quote.amount,
    )


# ---------------------------------------------------------------------------
# Points Router
# ---------------------------------------------------------------------------
points_router = APIRouter(prefix="/points", tags=["points"])


@points_router.get("", response_model=PointsResponse)
async def get_points(x_customer_id: str = Header()) -> PointsResponse:
    account = current_domain.repository_for(PointsAccount).find_for_customer(x_customer_id)
    if account is None:
        return PointsResponse(customer_id=x_customer_id)

    return PointsResponse(
        customer_id=x_customer_id,
        balance=account.balance,
        total_earned=account.total_earned,
        total_redeemed=account.total_redeemed,
        transactions=[
            PointsTransactionSchema(
                order_id=str(t.order_id),
                kind=t.kind,
                amount=t.amount,
                description=t.description,
                created_at=t.created_at,
            )
            for t in sorted(account.transactions, key=lambda t: t.created_at, reverse=True)
        ],
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("", response_model=list[OrderResponse])
async def list_orders(
    x_customer_id: str | None = Header(default=None),
    x_retailer_id: str | None = Header(default=None),
) -> list[OrderResponse]:
    """The caller's orders: a retailer's incoming orders, or a customer's own."""
    repo = current_domain.repository_for(Order)
    if x_retailer_id:
        orders = repo.find_for_retailer(x_retailer_id)
    elif x_customer_id:
        orders = repo.find_for_customer(x_customer_id)
    else:
        raise HTTPException(status_code=401, detail="Caller identity required")
    return [_order_response(order) for order in orders]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    x_customer_id: str | None = Header(default=None),
    x_retailer_id: str | None = Header(default=None),
) -> OrderResponse:
    order = current_domain.repository_for(Order).get(order_id)
    if str(order.customer_id) != str(x_customer_id) and str(order.retailer_id) != str(x_retailer_id):
        raise ObjectNotFoundError({"order_id": [f"Order {order_id} not found"]})
    return _order_response(order)


@order_router.put("/{order_id}/status", response_model=StatusResponse)
async def update_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    x_retailer_id: str | None = Header(default=None),
) -> StatusResponse:
    """Retailer (X-Retailer-Id) or admin status change."""
    order = current_domain.repository_for(Order).get(order_id)
    command = UpdateOrderStatus(
        order_id=order_id,
        status=body.status,
        retailer_id=x_retailer_id,
        reason=body.reason,
    )
    with customer_lock(order.customer_id):
        status = current_domain.process(command, asynchronous=False)
    return StatusResponse(status=status)


# ---------------------------------------------------------------------------
# Retailer Router
# ---------------------------------------------------------------------------
retailer_router = APIRouter(prefix="/retailers", tags=["retailers"])


@retailer_router.put("/{retailer_id}/payout-account", response_model=PayoutAccountIdResponse)
async def connect_payout_account(retailer_id: str, body: ConnectPayoutAccountRequest) -> PayoutAccountIdResponse:
    command = ConnectPayoutAccount(
        retailer_id=retailer_id,
        account_id=body.account_id,
        charges_enabled=body.charges_enabled,
        commission_rate=body.commission_rate,
    )
    payout_account_id = current_domain.process(command, asynchronous=False)
    return PayoutAccountIdResponse(payout_account_id=payout_account_id)


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/webhook", response_model=StatusResponse)
async def payment_webhook(
    body: PaymentWebhookRequest,
    request: Request,
    x_gateway_signature: str = Header(default=""),
) -> StatusResponse:
    """Payment processor callback. Completed payments move the order to processing.

    The signature covers the bytes the processor sent, not a re-serialization.
    """
    processor = get_processor()
    payload = (await request.body()).decode()
    if not processor.verify_webhook_signature(payload, x_gateway_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    if body.event_type != PAYMENT_COMPLETED_EVENT:
        return StatusResponse(status="ignored")
    if not body.payment_transaction_id:
        raise HTTPException(status_code=400, detail="payment_transaction_id is required")

    command = CompleteOrderPayment(
        payment_handle_id=body.payment_handle_id,
        payment_transaction_id=body.payment_transaction_id,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="processed")
