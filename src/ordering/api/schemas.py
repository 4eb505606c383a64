"""Pydantic request/response schemas for the marketplace API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands. Money is always an integer in minor units.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1, default=1)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "prod-001",
                    "quantity": 2,
                }
            ]
        }
    }


class UpdateCartLineRequest(BaseModel):
    quantity: int = Field(ge=1)


class LineIdResponse(BaseModel):
    line_id: str


class CartLineSchema(BaseModel):
    line_id: str
    product_id: str
    product_name: str
    unit_price: int
    quantity: int
    line_total: int


class RetailerGroupSchema(BaseModel):
    retailer_id: str
    retailer_name: str
    pickup_location: str
    subtotal: int
    lines: list[CartLineSchema]


class CartResponse(BaseModel):
    cart_id: str | None = None
    revision: int = 0
    subtotal: int = 0
    groups: list[RetailerGroupSchema] = []


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
class CheckoutRequestSchema(BaseModel):
    discount_code: str | None = None
    points_to_redeem: int = Field(ge=0, default=0)
    use_max_points: bool = False
    pickup_instructions: str | None = Field(default=None, max_length=1000)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "discount_code": "WELCOME10",
                    "points_to_redeem": 400,
                    "use_max_points": False,
                    "pickup_instructions": "Collecting after 5pm",
                }
            ]
        }
    }


class OutcomeItemSchema(BaseModel):
    product_id: str
    product_name: str
    unit_price: int
    quantity: int


class SettlementOutcomeSchema(BaseModel):
    order_id: str
    retailer_id: str
    retailer_name: str
    total: int
    status: str
    succeeded: bool
    payment_handle_id: str | None = None
    payment_url: str | None = None
    failure_reason: str | None = None
    items: list[OutcomeItemSchema] = []


class CheckoutResponse(BaseModel):
    checkout_id: str
    status: str
    orders: list[SettlementOutcomeSchema]


class RestoreResponse(BaseModel):
    restored_lines: int


# ---------------------------------------------------------------------------
# Discounts
# ---------------------------------------------------------------------------
class ValidateDiscountRequest(BaseModel):
    code: str
    order_total: int = Field(ge=0)


class DiscountQuoteResponse(BaseModel):
    code: str
    discount_type: str
    discount_amount: int


class CreateDiscountCodeRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    discount_type: str
    value: int = Field(ge=0)
    max_discount: int | None = Field(default=None, ge=0)
    min_order_total: int = Field(default=0, ge=0)
    valid_until: datetime | None = None
    usage_limit: int | None = Field(default=None, ge=1)
    description: str | None = None


class DiscountCodeIdResponse(BaseModel):
    discount_code_id: str


# ---------------------------------------------------------------------------
# Points
# ---------------------------------------------------------------------------
class PointsTransactionSchema(BaseModel):
    order_id: str
    kind: str
    amount: int
    description: str | None = None
    created_at: datetime | None = None


class PointsResponse(BaseModel):
    customer_id: str
    balance: int = 0
    total_earned: int = 0
    total_redeemed: int = 0
    transactions: list[PointsTransactionSchema] = []


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderItemSchema(BaseModel):
    product_id: str
    product_name: str
    unit_price: int
    quantity: int
    line_total: int


class OrderResponse(BaseModel):
    order_id: str
    checkout_id: str
    customer_id: str
    retailer_id: str
    retailer_name: str | None = None
    status: str
    currency: str
    items: list[OrderItemSchema]
    subtotal: int
    discount_amount: int
    points_redeemed: int
    platform_commission: int
    retailer_amount: int
    total: int
    pickup_location: str | None = None
    pickup_instructions: str | None = None
    payment_url: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    ready_for_pickup_at: datetime | None = None
    picked_up_at: datetime | None = None


class UpdateOrderStatusRequest(BaseModel):
    status: str
    reason: str | None = Field(default=None, max_length=500)


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Retailer payout accounts
# ---------------------------------------------------------------------------
class ConnectPayoutAccountRequest(BaseModel):
    account_id: str
    charges_enabled: bool = True
    commission_rate: float | None = Field(default=None, ge=0.0, le=1.0)


class PayoutAccountIdResponse(BaseModel):
    payout_account_id: str


# ---------------------------------------------------------------------------
# Payment processor webhook
# ---------------------------------------------------------------------------
class PaymentWebhookRequest(BaseModel):
    event_type: str
    payment_handle_id: str
    payment_transaction_id: str | None = None
