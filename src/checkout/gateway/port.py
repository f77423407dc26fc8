"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement.
Payloads come back as plain dicts shaped like the gateway's JSON objects,
so handlers read them the same way whether they arrived in a webhook or
were fetched on demand.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund request."""

    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class GatewayError(Exception):
    """The gateway could not be reached or rejected the request."""


@dataclass(frozen=True)
class RefundRequest:
    payment_intent_id: str
    idempotency_key: str
    reason: str = "requested_by_customer"
    amount: int | None = None  # None refunds the full amount received
    metadata: dict = field(default_factory=dict)


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def retrieve_checkout_session(self, session_id: str) -> dict:
        """Fetch a checkout session with its shipping rate expanded."""
        ...

    @abstractmethod
    def retrieve_payment_intent(self, payment_intent_id: str) -> dict | None:
        """Fetch the gateway's current view of a payment intent, None if unknown."""
        ...

    @abstractmethod
    def create_refund(self, request: RefundRequest) -> RefundResult:
        """Refund a payment intent. Same idempotency key, same refund."""
        ...

    @abstractmethod
    def retrieve_refund(self, refund_id: str) -> dict | None:
        """Fetch the gateway's current view of a refund, None if unknown."""
        ...

    @abstractmethod
    def retrieve_event(self, event_id: str) -> dict | None:
        """Fetch a past event by id, None once the gateway no longer has it."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
