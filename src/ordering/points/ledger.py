"""Points ledger — commands and handler.

Checkout debits points directly inside its own unit of work; these commands
cover the other movements: cashback credits, standalone redemptions, and
refunds of a cancelled order's redemption.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.exceptions import InsufficientPointsError
from ordering.points.account import PointsAccount

logger = structlog.get_logger(__name__)


@ordering.command(part_of="PointsAccount")
class EarnPoints:
    customer_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True, min_value=0)
    description = String(max_length=255)


@ordering.command(part_of="PointsAccount")
class RedeemPoints:
    customer_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True, min_value=1)
    description = String(max_length=255)


@ordering.command(part_of="PointsAccount")
class RefundPoints:
    customer_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(min_value=1)  # Defaults to everything redeemed on the order


@ordering.command_handler(part_of=PointsAccount)
class PointsLedgerHandler:
    @handle(EarnPoints)
    def earn_points(self, command):
        repo = current_domain.repository_for(PointsAccount)
        account = repo.find_for_customer(command.customer_id) or PointsAccount.open(command.customer_id)
        if account.credit(command.amount, command.order_id, command.description):
            repo.add(account)
            logger.info(
                "Points earned",
                customer_id=str(command.customer_id),
                order_id=str(command.order_id),
                amount=command.amount,
            )
            return command.amount
        return 0

    @handle(RedeemPoints)
    def redeem_points(self, command):
        repo = current_domain.repository_for(PointsAccount)
        account = repo.find_for_customer(command.customer_id)
        if account is None:
            raise InsufficientPointsError(requested=command.amount, balance=0)
        account.debit(command.amount, command.order_id, command.description)
        repo.add(account)

    @handle(RefundPoints)
    def refund_points(self, command):
        repo = current_domain.repository_for(PointsAccount)
        account = repo.find_for_customer(command.customer_id)
        if account is None:
            raise ValidationError({"customer_id": ["Customer has no points account"]})
        restored = account.refund(command.order_id, amount=command.amount)
        if restored:
            repo.add(account)
        return restored
