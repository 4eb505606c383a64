"""Promotion resolution — turns a discount code and a points request into amounts.

Both checks run against the grand total of the whole cart, before it is
split by retailer. Nothing here writes; the materializer records usage.
"""

from dataclasses import dataclass

from protean.utils.globals import current_domain

from ordering.exceptions import DiscountNotFoundError, InsufficientPointsError, RedemptionExceedsTotalError
from ordering.points.account import PointsAccount
from ordering.promotions.discount import DiscountCode, normalize_code


@dataclass(frozen=True)
class DiscountQuote:
    code: str
    discount_type: str
    amount: int


def validate_discount(code, order_total, now=None) -> DiscountQuote:
    """Check a discount code against an order total and price it.

    Raises:
        DiscountNotFoundError: unknown or inactive code.
        DiscountExpiredError: past its valid_until.
        DiscountUsageExceededError: usage limit reached.
        DiscountMinimumNotMetError: order total below the code's minimum.
    """
    discount = current_domain.repository_for(DiscountCode).find_by_code(code)
    if discount is None:
        raise DiscountNotFoundError(normalize_code(code))

    discount.assert_applicable(order_total, now=now)
    return DiscountQuote(
        code=discount.code,
        discount_type=discount.discount_type,
        amount=discount.quote(order_total),
    )


def max_redeemable(balance, order_total, discount_amount) -> int:
    return max(0, min(balance, order_total - discount_amount))


def validate_redemption(customer_id, requested, order_total, discount_amount, use_max=False) -> int:
    """Work out how many points the customer may apply to this checkout.

    With `use_max` the request is clamped to what is redeemable. Otherwise a
    request above the balance or above the discounted total is rejected.
    """
    requested = requested or 0
    if requested < 0:
        raise RedemptionExceedsTotalError(requested=requested, maximum=0)

    balance = current_domain.repository_for(PointsAccount).balance_of(customer_id)
    maximum = max_redeemable(balance, order_total, discount_amount)

    if use_max:
        return maximum
    if requested > balance:
        raise InsufficientPointsError(requested=requested, balance=balance)
    if requested > order_total - discount_amount:
        raise RedemptionExceedsTotalError(requested=requested, maximum=maximum)
    return requested
