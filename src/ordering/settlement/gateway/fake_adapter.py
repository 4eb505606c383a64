"""Configurable fake payment processor for development and testing.

Behaviour can be set per destination account, so a test can have one
retailer succeed, another reject, and a third time out within the same
checkout. Capture requests are idempotent on their key, like the real thing.
"""

import threading
import time
from dataclasses import dataclass
from uuid import uuid4

from ordering.settlement.gateway.port import CaptureResult, PaymentProcessor, RefundResult, TransientGatewayError


@dataclass
class AccountBehaviour:
    """How the fake responds for one destination account.

    mode: "succeed", "reject", "unavailable", "network_error" or "malformed".
        "network_error" raises ConnectionResetError, as a dropped socket
        would. "malformed" raises ValueError, as a broken response would.
    delay: seconds to block before answering, to simulate a slow processor.
    transient_failures: number of calls that raise TransientGatewayError
        before `mode` applies.
    network_failures: number of calls that raise ConnectionResetError
        before `mode` applies.
    """

    mode: str = "succeed"
    delay: float = 0.0
    transient_failures: int = 0
    network_failures: int = 0
    failure_reason: str = "Payout account rejected the payment"


class FakePaymentProcessor(PaymentProcessor):
    """Configurable fake payment processor."""

    def __init__(self) -> None:
        self.default = AccountBehaviour()
        self.behaviours: dict[str, AccountBehaviour] = {}
        self.refunds_succeed: bool = True
        self.calls: list[dict] = []
        self._captures: dict[str, CaptureResult] = {}
        self._lock = threading.Lock()

    def configure(self, destination_account: str | None = None, **behaviour) -> None:
        """Set behaviour for one account, or the default when no account is given."""
        if destination_account is None:
            self.default = AccountBehaviour(**behaviour)
        else:
            self.behaviours[destination_account] = AccountBehaviour(**behaviour)

    def calls_for(self, method: str, destination_account: str | None = None) -> list[dict]:
        return [
            c
            for c in self.calls
            if c["method"] == method
            and (destination_account is None or c.get("destination_account") == destination_account)
        ]

    def create_capture(
        self,
        amount: int,
        currency: str,
        destination_account: str,
        application_fee: int,
        idempotency_key: str,
        description: str = "",
    ) -> CaptureResult:
        with self._lock:
            self.calls.append(
                {
                    "method": "create_capture",
                    "amount": amount,
                    "currency": currency,
                    "destination_account": destination_account,
                    "application_fee": application_fee,
                    "idempotency_key": idempotency_key,
                    "description": description,
                }
            )
            behaviour = self.behaviours.get(destination_account, self.default)
            transient = behaviour.transient_failures > 0
            if transient:
                behaviour.transient_failures -= 1
            dropped = not transient and behaviour.network_failures > 0
            if dropped:
                behaviour.network_failures -= 1

        if behaviour.delay:
            time.sleep(behaviour.delay)

        if transient or behaviour.mode == "unavailable":
            raise TransientGatewayError(f"Processor unavailable for {destination_account}")
        if dropped or behaviour.mode == "network_error":
            raise ConnectionResetError(f"Connection reset while capturing for {destination_account}")
        if behaviour.mode == "malformed":
            raise ValueError(f"Malformed capture response for {destination_account}")

        with self._lock:
            if idempotency_key in self._captures:
                return self._captures[idempotency_key]

            if behaviour.mode == "reject":
                result = CaptureResult(success=False, failure_reason=behaviour.failure_reason)
            else:
                handle_id = f"fake_cs_{uuid4().hex[:12]}"
                result = CaptureResult(
                    success=True,
                    handle_id=handle_id,
                    redirect_url=f"https://pay.example.test/checkout/{handle_id}",
                )
            self._captures[idempotency_key] = result
            return result

    def create_refund(
        self,
        transaction_id: str,
        amount: int,
        reason: str,
    ) -> RefundResult:
        with self._lock:
            self.calls.append(
                {
                    "method": "create_refund",
                    "transaction_id": transaction_id,
                    "amount": amount,
                    "reason": reason,
                }
            )

        if self.refunds_succeed:
            return RefundResult(success=True, refund_id=f"fake_re_{uuid4().hex[:12]}")
        return RefundResult(success=False, failure_reason="Refund declined")

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        with self._lock:
            self.calls.append({"method": "verify_webhook_signature", "payload": payload, "signature": signature})
        return signature == "test-signature"
