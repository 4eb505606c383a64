"""Discount Code aggregate (CQRS) — cart-wide promotion codes.

A code carries one rule, either a fixed amount off or a percentage off with
an optional cap. Percentages are stored in basis points (1500 = 15%) and
amounts in minor units, so evaluating a rule never touches floats.

Each checkout that uses a code records a redemption. The redemption tracks
how many of that checkout's orders still hold a share of the discount; the
code's usage counter is given back only when the last of them is cancelled.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Identifier, Integer, String

from ordering.domain import ordering
from ordering.exceptions import (
    DiscountExpiredError,
    DiscountMinimumNotMetError,
    DiscountNotFoundError,
    DiscountUsageExceededError,
)
from ordering.promotions.events import DiscountCodeCreated, DiscountRedeemed, DiscountReleased


class DiscountType(Enum):
    FIXED = "Fixed"
    PERCENTAGE = "Percentage"


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class DiscountRule:
    """A discount rule as plain data: the kind tags how `value` is read.

    For FIXED rules `value` is an amount in minor units. For PERCENTAGE
    rules it is a rate in basis points, optionally limited by `cap`.
    """

    kind: DiscountType
    value: int
    cap: int | None = None


def _fixed_amount(rule: DiscountRule, order_total: int) -> int:
    return rule.value


def _percentage(rule: DiscountRule, order_total: int) -> int:
    amount = int((Decimal(order_total) * Decimal(rule.value) / Decimal(10000)).quantize(Decimal("1"), ROUND_HALF_UP))
    if rule.cap is not None:
        amount = min(amount, rule.cap)
    return amount


_EVALUATORS = {
    DiscountType.FIXED: _fixed_amount,
    DiscountType.PERCENTAGE: _percentage,
}


def evaluate_rule(rule: DiscountRule, order_total: int) -> int:
    """Discount produced by `rule` on `order_total`, never more than the total."""
    amount = _EVALUATORS[rule.kind](rule, order_total)
    return max(0, min(amount, order_total))


def normalize_code(code: str) -> str:
    return code.strip().upper()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="DiscountCode")
class DiscountRedemption:
    checkout_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Integer(required=True, min_value=0)
    open_orders = Integer(required=True, min_value=0)
    released = Boolean(default=False)
    redeemed_at = DateTime()


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class DiscountCode:
    code = String(required=True, max_length=50, unique=True)
    description = String(max_length=255)
    discount_type = String(required=True, choices=DiscountType)
    value = Integer(required=True, min_value=0)
    max_discount = Integer(min_value=0)
    min_order_total = Integer(default=0, min_value=0)
    valid_until = DateTime()
    usage_limit = Integer(min_value=1)
    used_count = Integer(default=0)
    is_active = Boolean(default=True)
    redemptions = HasMany(DiscountRedemption)
    created_at = DateTime()

    @invariant.post
    def usage_count_must_not_be_negative(self):
        if self.used_count is not None and self.used_count < 0:
            raise ValidationError({"used_count": ["Usage count cannot be negative"]})

    @invariant.post
    def percentage_must_not_exceed_one_hundred(self):
        if self.discount_type == DiscountType.PERCENTAGE.value and self.value > 10000:
            raise ValidationError({"value": ["Percentage discounts cannot exceed 100%"]})

    @classmethod
    def create(
        cls,
        code,
        discount_type,
        value,
        max_discount=None,
        min_order_total=0,
        valid_until=None,
        usage_limit=None,
        description=None,
    ):
        discount = cls(
            code=normalize_code(code),
            description=description,
            discount_type=discount_type,
            value=value,
            max_discount=max_discount,
            min_order_total=min_order_total or 0,
            valid_until=valid_until,
            usage_limit=usage_limit,
            used_count=0,
            is_active=True,
            created_at=datetime.now(UTC),
        )
        discount.raise_(
            DiscountCodeCreated(
                discount_code_id=str(discount.id),
                code=discount.code,
                discount_type=discount_type,
                value=value,
            )
        )
        return discount

    @property
    def rule(self):
        return DiscountRule(kind=DiscountType(self.discount_type), value=self.value, cap=self.max_discount)

    # -------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------
    def assert_applicable(self, order_total, now=None):
        """Check the code can be used against `order_total` right now."""
        now = now or datetime.now(UTC)
        if not self.is_active:
            raise DiscountNotFoundError(self.code)
        if self.valid_until is not None and _aware(self.valid_until) < now:
            raise DiscountExpiredError(self.code)
        if self.usage_limit is not None and self.used_count >= self.usage_limit:
            raise DiscountUsageExceededError(self.code)
        if order_total < (self.min_order_total or 0):
            raise DiscountMinimumNotMetError(self.code, self.min_order_total)

    def quote(self, order_total) -> int:
        return evaluate_rule(self.rule, order_total)

    # -------------------------------------------------------------------
    # Usage
    # -------------------------------------------------------------------
    def redeem(self, checkout_id, customer_id, amount, order_count):
        """Record use of the code by a checkout that produced `order_count` orders."""
        if self.usage_limit is not None and self.used_count >= self.usage_limit:
            raise DiscountUsageExceededError(self.code)

        self.add_redemptions(
            DiscountRedemption(
                checkout_id=checkout_id,
                customer_id=customer_id,
                amount=amount,
                open_orders=order_count,
                released=False,
                redeemed_at=datetime.now(UTC),
            )
        )
        self.used_count += 1

        self.raise_(
            DiscountRedeemed(
                discount_code_id=str(self.id),
                code=self.code,
                checkout_id=str(checkout_id),
                customer_id=str(customer_id),
                amount=amount,
            )
        )

    def release_order_share(self, checkout_id):
        """Give back one order's share of a redemption.

        The usage counter is decremented once, when no order from the
        checkout holds a share any more. Returns True if the usage was
        released by this call.
        """
        redemption = next((r for r in self.redemptions if str(r.checkout_id) == str(checkout_id)), None)
        if redemption is None or redemption.released:
            return False

        with atomic_change(self):
            redemption.open_orders = max(0, redemption.open_orders - 1)
            if redemption.open_orders > 0:
                return False
            redemption.released = True
            self.used_count -= 1

        self.raise_(
            DiscountReleased(
                discount_code_id=str(self.id),
                code=self.code,
                checkout_id=str(checkout_id),
            )
        )
        return True

    def deactivate(self):
        self.is_active = False


def _aware(value):
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


@ordering.repository(part_of=DiscountCode)
class DiscountCodeRepository:
    def find_by_code(self, code) -> DiscountCode | None:
        """Look up a code case-insensitively."""
        matches = self._dao.query.filter(code=normalize_code(code)).all().items
        return matches[0] if matches else None
