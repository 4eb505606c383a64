"""Points Account aggregate (CQRS) — a customer's loyalty points ledger.

Points are redeemed one-for-one against minor currency units. Every movement
is kept as a transaction tagged with the order that caused it, which makes
crediting and refunding idempotent per order.

Invariant: balance == total_earned - total_redeemed, and balance >= 0.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from ordering.domain import ordering
from ordering.exceptions import InsufficientPointsError
from ordering.points.events import PointsEarned, PointsRedeemed, PointsRefunded


class TransactionKind(Enum):
    EARNED = "Earned"
    REDEEMED = "Redeemed"
    REFUNDED = "Refunded"


@ordering.entity(part_of="PointsAccount")
class PointsTransaction:
    order_id = Identifier(required=True)
    kind = String(required=True, choices=TransactionKind)
    amount = Integer(required=True, min_value=0)
    description = String(max_length=255)
    created_at = DateTime()


@ordering.aggregate
class PointsAccount:
    customer_id = Identifier(required=True, unique=True)
    balance = Integer(default=0)
    total_earned = Integer(default=0)
    total_redeemed = Integer(default=0)
    transactions = HasMany(PointsTransaction)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def balance_must_match_totals(self):
        if self.balance != self.total_earned - self.total_redeemed:
            raise ValidationError({"balance": ["Balance must equal points earned minus points redeemed"]})

    @invariant.post
    def balance_must_not_be_negative(self):
        if self.balance < 0:
            raise ValidationError({"balance": ["Points balance cannot be negative"]})

    @classmethod
    def open(cls, customer_id):
        now = datetime.now(UTC)
        return cls(
            customer_id=customer_id,
            balance=0,
            total_earned=0,
            total_redeemed=0,
            created_at=now,
            updated_at=now,
        )

    def _has(self, order_id, kind):
        return any(str(t.order_id) == str(order_id) and t.kind == kind.value for t in self.transactions)

    def _record(self, order_id, kind, amount, description):
        self.add_transactions(
            PointsTransaction(
                order_id=order_id,
                kind=kind.value,
                amount=amount,
                description=description,
                created_at=datetime.now(UTC),
            )
        )

    def redeemed_for(self, order_id) -> int:
        return sum(
            t.amount
            for t in self.transactions
            if str(t.order_id) == str(order_id) and t.kind == TransactionKind.REDEEMED.value
        )

    # -------------------------------------------------------------------
    # Movements
    # -------------------------------------------------------------------
    def debit(self, amount, order_id, description=None):
        """Spend points against an order."""
        if amount <= 0:
            raise ValidationError({"amount": ["Points to redeem must be positive"]})
        if amount > self.balance:
            raise InsufficientPointsError(requested=amount, balance=self.balance)

        with atomic_change(self):
            self.balance -= amount
            self.total_redeemed += amount
            self.updated_at = datetime.now(UTC)
            self._record(order_id, TransactionKind.REDEEMED, amount, description or f"Redeemed on order {order_id}")

        self.raise_(
            PointsRedeemed(
                account_id=str(self.id),
                customer_id=str(self.customer_id),
                order_id=str(order_id),
                amount=amount,
                balance=self.balance,
            )
        )

    def credit(self, amount, order_id, description=None):
        """Award points for an order. A second credit for the same order is ignored.

        Returns True if points were added.
        """
        if amount <= 0 or self._has(order_id, TransactionKind.EARNED):
            return False

        with atomic_change(self):
            self.balance += amount
            self.total_earned += amount
            self.updated_at = datetime.now(UTC)
            self._record(order_id, TransactionKind.EARNED, amount, description or f"Earned on order {order_id}")

        self.raise_(
            PointsEarned(
                account_id=str(self.id),
                customer_id=str(self.customer_id),
                order_id=str(order_id),
                amount=amount,
                balance=self.balance,
            )
        )
        return True

    def refund(self, order_id, amount=None, description=None):
        """Reverse the redemption made against an order.

        Only what was debited for the order can be given back, and only once.
        Returns the number of points restored.
        """
        redeemed = self.redeemed_for(order_id)
        if redeemed == 0 or self._has(order_id, TransactionKind.REFUNDED):
            return 0

        amount = redeemed if amount is None else min(amount, redeemed)
        if amount <= 0:
            return 0

        with atomic_change(self):
            self.balance += amount
            self.total_redeemed -= amount
            self.updated_at = datetime.now(UTC)
            self._record(order_id, TransactionKind.REFUNDED, amount, description or f"Refunded from order {order_id}")

        self.raise_(
            PointsRefunded(
                account_id=str(self.id),
                customer_id=str(self.customer_id),
                order_id=str(order_id),
                amount=amount,
                balance=self.balance,
            )
        )
        return amount


@ordering.repository(part_of=PointsAccount)
class PointsAccountRepository:
    def find_for_customer(self, customer_id) -> PointsAccount | None:
        accounts = self._dao.query.filter(customer_id=str(customer_id)).all().items
        return accounts[0] if accounts else None

    def balance_of(self, customer_id) -> int:
        account = self.find_for_customer(customer_id)
        return account.balance if account else 0
