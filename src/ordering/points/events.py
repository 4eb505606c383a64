"""Domain events for the PointsAccount aggregate."""

from protean.fields import Identifier, Integer

from ordering.domain import ordering


@ordering.event(part_of="PointsAccount")
class PointsEarned:
    """Points were credited to a customer for an order."""

    __version__ = 1

    account_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True)
    balance = Integer(required=True)


@ordering.event(part_of="PointsAccount")
class PointsRedeemed:
    """Points were spent against an order."""

    __version__ = 1

    account_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True)
    balance = Integer(required=True)


@ordering.event(part_of="PointsAccount")
class PointsRefunded:
    """Points spent against a cancelled order were given back."""

    __version__ = 1

    account_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True)
    balance = Integer(required=True)
