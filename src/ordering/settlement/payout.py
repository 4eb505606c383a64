"""Payout Account aggregate (CQRS) — where a retailer's share of each order is paid.

Retailers connect a payment processor account during onboarding. Orders for
a retailer without a connected account that can accept charges fail
settlement and are cancelled.
"""

from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering


@ordering.aggregate
class PayoutAccount:
    retailer_id = Identifier(required=True, unique=True)
    account_id = String(required=True, max_length=255)
    charges_enabled = Boolean(default=False)
    commission_rate = Float(min_value=0.0, max_value=1.0)  # Overrides the platform default when set
    connected_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def connect(cls, retailer_id, account_id, charges_enabled=True, commission_rate=None):
        now = datetime.now(UTC)
        return cls(
            retailer_id=retailer_id,
            account_id=account_id,
            charges_enabled=charges_enabled,
            commission_rate=commission_rate,
            connected_at=now,
            updated_at=now,
        )

    def update(self, account_id, charges_enabled, commission_rate=None):
        self.account_id = account_id
        self.charges_enabled = charges_enabled
        self.commission_rate = commission_rate
        self.updated_at = datetime.now(UTC)


@ordering.repository(part_of=PayoutAccount)
class PayoutAccountRepository:
    def find_for_retailer(self, retailer_id) -> PayoutAccount | None:
        accounts = self._dao.query.filter(retailer_id=str(retailer_id)).all().items
        return accounts[0] if accounts else None

    def commission_rates(self, retailer_ids) -> dict[str, float]:
        """Retailer-specific commission rates for the given retailers, where set."""
        rates = {}
        for retailer_id in retailer_ids:
            account = self.find_for_retailer(retailer_id)
            if account is not None and account.commission_rate is not None:
                rates[str(retailer_id)] = account.commission_rate
        return rates


@ordering.command(part_of="PayoutAccount")
class ConnectPayoutAccount:
    retailer_id = Identifier(required=True)
    account_id = String(required=True, max_length=255)
    charges_enabled = Boolean(default=True)
    commission_rate = Float(min_value=0.0, max_value=1.0)


@ordering.command_handler(part_of=PayoutAccount)
class PayoutAccountHandler:
    @handle(ConnectPayoutAccount)
    def connect_payout_account(self, command):
        if not command.account_id.strip():
            raise ValidationError({"account_id": ["Account id cannot be blank"]})

        repo = current_domain.repository_for(PayoutAccount)
        account = repo.find_for_retailer(command.retailer_id)
        if account is None:
            account = PayoutAccount.connect(
                retailer_id=command.retailer_id,
                account_id=command.account_id,
                charges_enabled=command.charges_enabled,
                commission_rate=command.commission_rate,
            )
        else:
            account.update(command.account_id, command.charges_enabled, command.commission_rate)
        repo.add(account)
        return str(account.id)
