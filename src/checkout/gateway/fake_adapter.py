"""Configurable fake payment gateway for development and testing.

Simulates the gateway without any external calls. Sessions, payment intents,
refunds and events can be seeded so handlers that read back from the gateway see
predictable data, and refund creation can be switched to fail (returning an
unsuccessful result or raising) to exercise the escalation paths.
"""

from uuid import uuid4

from checkout.gateway.port import GatewayError, PaymentGateway, RefundRequest, RefundResult


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.raise_on_failure: bool = False
        self.failure_reason: str = "Refund declined"
        self.sessions: dict[str, dict] = {}
        self.refunds: dict[str, dict] = {}
        self.payment_intents: dict[str, dict] = {}
        self.events: dict[str, dict] = {}
        self.calls: list[dict] = []
        self._refunds_by_key: dict[str, RefundResult] = {}

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Refund declined",
        raise_on_failure: bool = False,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.raise_on_failure = raise_on_failure

    # -------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------
    def add_session(self, session: dict) -> None:
        self.sessions[session["id"]] = session

    def add_payment_intent(self, intent: dict) -> None:
        self.payment_intents[intent["id"]] = intent

    def add_refund(self, refund: dict) -> None:
        self.refunds[refund["id"]] = refund

    def add_event(self, event: dict) -> None:
        self.events[event["id"]] = event

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def retrieve_checkout_session(self, session_id: str) -> dict:
        self.calls.append({"method": "retrieve_checkout_session", "session_id": session_id})
        if session_id not in self.sessions:
            raise GatewayError(f"No such checkout session: {session_id}")
        return self.sessions[session_id]

    def retrieve_payment_intent(self, payment_intent_id: str) -> dict | None:
        self.calls.append({"method": "retrieve_payment_intent", "payment_intent_id": payment_intent_id})
        return self.payment_intents.get(payment_intent_id)

    def create_refund(self, request: RefundRequest) -> RefundResult:
        self.calls.append(
            {
                "method": "create_refund",
                "payment_intent_id": request.payment_intent_id,
                "idempotency_key": request.idempotency_key,
                "reason": request.reason,
                "amount": request.amount,
                "metadata": dict(request.metadata),
            }
        )

        if not self.should_succeed:
            if self.raise_on_failure:
                raise GatewayError(self.failure_reason)
            return RefundResult(success=False, failure_reason=self.failure_reason)

        if request.idempotency_key in self._refunds_by_key:
            return self._refunds_by_key[request.idempotency_key]

        result = RefundResult(
            success=True,
            gateway_refund_id=f"re_fake_{uuid4().hex[:12]}",
            gateway_status="pending",
        )
        self._refunds_by_key[request.idempotency_key] = result
        return result

    def retrieve_refund(self, refund_id: str) -> dict | None:
        self.calls.append({"method": "retrieve_refund", "refund_id": refund_id})
        return self.refunds.get(refund_id)

    def retrieve_event(self, event_id: str) -> dict | None:
        self.calls.append({"method": "retrieve_event", "event_id": event_id})
        return self.events.get(event_id)

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:  # noqa: ARG002
        return signature == "test-signature"
