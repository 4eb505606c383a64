"""Allocation of cart-wide reductions across retailer orders.

A discount and a points redemption are applied to the cart as a whole, but
each retailer is settled separately. This module splits both amounts across
the retailer groups in proportion to their subtotals, then works out the
platform commission on what each group still has to pay.

All amounts are integers in minor units. Splits use the largest-remainder
method so shares always add up to the amount being split; ties between
equal remainders go to the earlier group, which keeps results reproducible
for a given group order.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

import structlog

from ordering.exceptions import AllocationError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GroupAllocation:
    retailer_id: str
    subtotal: int
    discount_amount: int
    points_redeemed: int
    platform_commission: int
    retailer_amount: int

    @property
    def total(self) -> int:
        return self.subtotal - self.discount_amount - self.points_redeemed


def largest_remainder(amount: int, weights: list[int]) -> list[int]:
    """Split `amount` in proportion to `weights` so the parts sum to `amount`."""
    if amount < 0 or any(w < 0 for w in weights):
        raise AllocationError(f"Cannot split {amount} over weights {weights}")

    total_weight = sum(weights)
    if total_weight == 0:
        if amount:
            raise AllocationError(f"Cannot split {amount} over zero total weight")
        return [0] * len(weights)

    shares = [amount * w // total_weight for w in weights]
    remainders = [amount * w % total_weight for w in weights]
    leftover = amount - sum(shares)

    by_remainder = sorted(range(len(weights)), key=lambda i: (-remainders[i], i))
    for i in by_remainder[:leftover]:
        shares[i] += 1
    return shares


def allocate_capped(amount: int, weights: list[int], caps: list[int]) -> list[int]:
    """Proportional split where no share may exceed its cap.

    Whatever a capped group cannot absorb is split again, by the same
    weights, over the groups that still have room.
    """
    if amount > sum(caps):
        raise AllocationError(f"Cannot place {amount} within total capacity {sum(caps)}")

    shares = [0] * len(weights)
    remaining = amount
    while remaining > 0:
        open_groups = [i for i in range(len(weights)) if shares[i] < caps[i]]
        open_weights = [weights[i] for i in open_groups]
        if sum(open_weights) == 0:
            open_weights = [caps[i] - shares[i] for i in open_groups]

        placed = 0
        for i, share in zip(open_groups, largest_remainder(remaining, open_weights), strict=True):
            take = min(share, caps[i] - shares[i])
            shares[i] += take
            placed += take
        remaining -= placed

    return shares


def commission_for(payable: int, rate) -> int:
    """Platform commission on a payable amount, rounded half up to a minor unit."""
    commission = (Decimal(payable) * Decimal(str(rate))).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return min(int(commission), payable)


def allocate(groups, discount_total: int, points_total: int, commission_rates=None, default_rate=0.10):
    """Split the discount and points over retailer groups and price each order.

    Args:
        groups: Sequence of objects with `retailer_id` and `subtotal`, in
                the order ties should be broken.
        discount_total: Discount for the whole cart, at most its subtotal.
        points_total: Points for the whole cart, at most subtotal less discount.
        commission_rates: Optional retailer id -> rate overrides.
        default_rate: Platform commission rate for everyone else.

    Returns:
        A tuple of GroupAllocation, one per group, in the same order.

    Raises:
        AllocationError: The amounts cannot be placed within the subtotals.
            This means an earlier validation step was skipped.
    """
    commission_rates = commission_rates or {}
    subtotals = [group.subtotal for group in groups]

    try:
        discounts = allocate_capped(discount_total, subtotals, subtotals)
        points = allocate_capped(
            points_total,
            subtotals,
            [s - d for s, d in zip(subtotals, discounts, strict=True)],
        )
    except AllocationError as exc:
        logger.critical(
            "Allocation invariant violated",
            subtotals=subtotals,
            discount_total=discount_total,
            points_total=points_total,
            error=str(exc),
        )
        raise

    allocations = []
    for group, subtotal, discount, redeemed in zip(groups, subtotals, discounts, points, strict=True):
        payable = subtotal - discount - redeemed
        rate = commission_rates.get(str(group.retailer_id), default_rate)
        commission = commission_for(payable, rate)
        allocations.append(
            GroupAllocation(
                retailer_id=str(group.retailer_id),
                subtotal=subtotal,
                discount_amount=discount,
                points_redeemed=redeemed,
                platform_commission=commission,
                retailer_amount=payable - commission,
            )
        )

    if sum(a.discount_amount for a in allocations) != discount_total or (
        sum(a.points_redeemed for a in allocations) != points_total
    ):
        logger.critical("Allocation shares do not sum to their totals", discount_total=discount_total)
        raise AllocationError("Allocated shares do not sum to their totals")

    return tuple(allocations)
