"""Payment processor port (abstract interface).

Settlement asks the processor for one capture handle per order: a hosted
payment session whose proceeds go to the retailer's payout account, less the
platform's application fee. The customer completes payment through the
handle's redirect URL and the processor reports back via webhook.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class TransientGatewayError(Exception):
    """The processor could not be reached or asked us to retry later."""


@dataclass(frozen=True)
class CaptureResult:
    """Result of a capture handle request.

    `success=False` is a definite rejection; retrying will not help.
    """

    success: bool
    handle_id: str | None = None
    redirect_url: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    refund_id: str | None = None
    failure_reason: str | None = None


class PaymentProcessor(ABC):
    """Abstract payment processor interface."""

    @abstractmethod
    def create_capture(
        self,
        amount: int,
        currency: str,
        destination_account: str,
        application_fee: int,
        idempotency_key: str,
        description: str = "",
    ) -> CaptureResult:
        """Create a capture handle paying `amount` into `destination_account`.

        Raises:
            TransientGatewayError: the request may be retried with the same key.
        """
        ...

    @abstractmethod
    def create_refund(
        self,
        transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Refund a completed payment."""
        ...

    @abstractmethod
    def verify_webhook_signature(
        self,
        payload: str,
        signature: str,
    ) -> bool:
        """Verify that a webhook payload is authentically from the processor."""
        ...
