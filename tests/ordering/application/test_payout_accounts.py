"""Application tests for retailer payout accounts and marketplace settings."""

import pytest
from ordering.domain import custom_setting
from ordering.settlement.payout import ConnectPayoutAccount, PayoutAccount
from protean import current_domain
from protean.exceptions import ValidationError


def _connect(retailer_id="ret-a", account_id="acct_alder", **kwargs):
    return current_domain.process(
        ConnectPayoutAccount(retailer_id=retailer_id, account_id=account_id, **kwargs),
        asynchronous=False,
    )


class TestConnectPayoutAccount:
    def test_connect(self):
        payout_account_id = _connect()
        account = current_domain.repository_for(PayoutAccount).get(payout_account_id)
        assert account.retailer_id == "ret-a"
        assert account.account_id == "acct_alder"
        assert account.charges_enabled

    def test_reconnecting_updates_the_same_account(self):
        first = _connect()
        second = _connect(account_id="acct_alder_2", charges_enabled=False)

        assert first == second
        account = current_domain.repository_for(PayoutAccount).find_for_retailer("ret-a")
        assert account.account_id == "acct_alder_2"
        assert not account.charges_enabled

    def test_blank_account_id(self):
        with pytest.raises(ValidationError):
            _connect(account_id="   ")

    def test_commission_rates_only_for_overrides(self):
        _connect("ret-a", "acct_alder", commission_rate=0.05)
        _connect("ret-b", "acct_birch")

        rates = current_domain.repository_for(PayoutAccount).commission_rates(["ret-a", "ret-b", "ret-c"])

        assert rates == {"ret-a": 0.05}

    def test_commission_rate_bounds(self):
        with pytest.raises(ValidationError):
            _connect(commission_rate=1.5)


class TestCustomSettings:
    def test_reads_configured_value(self):
        assert custom_setting("PLATFORM_COMMISSION_RATE") == 0.10
        assert custom_setting("CURRENCY") == "GBP"

    def test_default_for_missing_setting(self):
        assert custom_setting("NOT_CONFIGURED", 42) == 42

    def test_environment_override_keeps_type(self, monkeypatch):
        monkeypatch.setenv("SETTLEMENT_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("CASHBACK_RATE", "0.02")
        assert custom_setting("SETTLEMENT_MAX_ATTEMPTS") == 5
        assert custom_setting("CASHBACK_RATE") == 0.02
