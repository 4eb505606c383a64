"""Tests for the PointsAccount aggregate — credits, debits, refunds and the balance invariant."""

import pytest
from ordering.exceptions import InsufficientPointsError
from ordering.points.account import PointsAccount, TransactionKind
from ordering.points.events import PointsEarned, PointsRedeemed, PointsRefunded
from protean.exceptions import ValidationError


def _account_with(balance):
    account = PointsAccount.open("cust-001")
    if balance:
        account.credit(balance, "signup-bonus")
    account._events.clear()
    return account


class TestOpen:
    def test_new_account_is_empty(self):
        account = PointsAccount.open("cust-001")
        assert account.balance == 0
        assert account.total_earned == 0
        assert account.total_redeemed == 0
        assert len(account.transactions) == 0


class TestCredit:
    def test_credit_adds_points(self):
        account = _account_with(0)
        assert account.credit(40, "ord-001") is True
        assert account.balance == 40
        assert account.total_earned == 40
        assert account.transactions[0].kind == TransactionKind.EARNED.value

    def test_credit_raises_event(self):
        account = _account_with(0)
        account.credit(40, "ord-001")
        event = account._events[0]
        assert isinstance(event, PointsEarned)
        assert event.amount == 40
        assert event.balance == 40

    def test_credit_is_idempotent_per_order(self):
        account = _account_with(0)
        account.credit(40, "ord-001")
        assert account.credit(40, "ord-001") is False
        assert account.balance == 40
        assert len(account.transactions) == 1

    def test_zero_credit_is_ignored(self):
        account = _account_with(0)
        assert account.credit(0, "ord-001") is False
        assert len(account._events) == 0


class TestDebit:
    def test_debit_spends_points(self):
        account = _account_with(1000)
        account.debit(300, "ord-001")
        assert account.balance == 700
        assert account.total_redeemed == 300
        assert account.redeemed_for("ord-001") == 300

    def test_debit_raises_event(self):
        account = _account_with(1000)
        account.debit(300, "ord-001")
        event = account._events[0]
        assert isinstance(event, PointsRedeemed)
        assert event.balance == 700

    def test_debit_whole_balance(self):
        account = _account_with(500)
        account.debit(500, "ord-001")
        assert account.balance == 0

    def test_debit_beyond_balance_fails(self):
        account = _account_with(100)
        with pytest.raises(InsufficientPointsError) as exc:
            account.debit(101, "ord-001")
        assert exc.value.balance == 100
        assert account.balance == 100

    def test_debit_must_be_positive(self):
        account = _account_with(100)
        with pytest.raises(ValidationError):
            account.debit(0, "ord-001")


class TestRefund:
    def test_refund_restores_redemption(self):
        account = _account_with(1000)
        account.debit(100, "ord-b")
        account._events.clear()

        assert account.refund("ord-b") == 100

        assert account.balance == 1000
        assert account.total_redeemed == 0
        assert isinstance(account._events[0], PointsRefunded)

    def test_refund_only_once(self):
        account = _account_with(1000)
        account.debit(100, "ord-b")
        account.refund("ord-b")
        assert account.refund("ord-b") == 0
        assert account.balance == 1000

    def test_refund_limited_to_what_was_redeemed(self):
        account = _account_with(1000)
        account.debit(100, "ord-b")
        assert account.refund("ord-b", amount=500) == 100

    def test_partial_refund(self):
        account = _account_with(1000)
        account.debit(100, "ord-b")
        assert account.refund("ord-b", amount=40) == 40
        assert account.balance == 940

    def test_refund_without_redemption_does_nothing(self):
        account = _account_with(1000)
        assert account.refund("ord-unknown") == 0
        assert len(account._events) == 0

    def test_refund_of_one_order_leaves_others(self):
        account = _account_with(1000)
        account.debit(300, "ord-a")
        account.debit(100, "ord-b")
        account.refund("ord-b")
        assert account.balance == 700
        assert account.redeemed_for("ord-a") == 300


class TestBalanceInvariant:
    def test_balance_equals_earned_less_redeemed(self):
        account = _account_with(1000)
        account.debit(250, "ord-a")
        account.credit(30, "ord-c")
        account.refund("ord-a")
        assert account.balance == account.total_earned - account.total_redeemed

    def test_direct_balance_tampering_fails(self):
        account = _account_with(100)
        with pytest.raises(ValidationError):
            account.balance = 200
