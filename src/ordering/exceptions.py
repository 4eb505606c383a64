"""Domain errors raised during cart, checkout, settlement and points operations.

Business-rule violations are ValidationErrors so the API layer maps them to
4xx responses with the usual `{"field": ["message"]}` body. They are always
raised before anything is committed.

AllocationError is different: it signals an arithmetic invariant that should
be impossible to break, and is never shown to customers as a validation
message.
"""

from protean.exceptions import ValidationError


class EmptyCartError(ValidationError):
    def __init__(self, message="Cart is empty"):
        super().__init__({"cart": [message]})


class CartModifiedError(ValidationError):
    def __init__(self, message="Cart changed during checkout, please review it and try again"):
        super().__init__({"cart": [message]})


class ProductUnavailableError(ValidationError):
    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__({"product_id": [f"Product {product_id} is not available"]})


class InsufficientStockError(ValidationError):
    """One or more cart lines ask for more than the retailer has in stock.

    `shortages` holds one dict per short line: product_id, name, requested
    and available.
    """

    def __init__(self, shortages):
        self.shortages = shortages
        super().__init__(
            {
                "stock": [
                    f"Only {s['available']} of {s['name']} available, {s['requested']} requested" for s in shortages
                ]
            }
        )


class DiscountNotFoundError(ValidationError):
    def __init__(self, code):
        super().__init__({"discount_code": [f"Discount code {code} is not valid"]})


class DiscountExpiredError(ValidationError):
    def __init__(self, code):
        super().__init__({"discount_code": [f"Discount code {code} has expired"]})


class DiscountMinimumNotMetError(ValidationError):
    def __init__(self, code, minimum):
        self.minimum = minimum
        super().__init__({"discount_code": [f"Discount code {code} requires a minimum order total of {minimum}"]})


class DiscountUsageExceededError(ValidationError):
    def __init__(self, code):
        super().__init__({"discount_code": [f"Discount code {code} has reached its usage limit"]})


class InsufficientPointsError(ValidationError):
    def __init__(self, requested, balance):
        self.requested = requested
        self.balance = balance
        super().__init__({"points": [f"Cannot redeem {requested} points, balance is {balance}"]})


class RedemptionExceedsTotalError(ValidationError):
    def __init__(self, requested, maximum):
        self.requested = requested
        self.maximum = maximum
        super().__init__({"points": [f"Cannot redeem {requested} points, at most {maximum} can be applied"]})


class InvalidStatusTransitionError(ValidationError):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__({"status": [f"Cannot transition from {current} to {target}"]})


class IdempotencyConflictError(ValidationError):
    def __init__(self, key):
        super().__init__({"idempotency_key": [f"Idempotency key {key} was already used for a different checkout"]})


class AllocationError(Exception):
    """Allocation arithmetic could not satisfy its invariants."""
