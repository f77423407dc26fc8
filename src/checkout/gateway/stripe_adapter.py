"""Stripe payment gateway adapter (production).

Talks to Stripe through the stripe-python SDK. Every call passes the API key
explicitly so the adapter never depends on module-level SDK state, and SDK
objects are converted to plain dicts before they leave the adapter.
"""

import json

import stripe
import structlog

from checkout.gateway.port import GatewayError, PaymentGateway, RefundRequest, RefundResult

logger = structlog.get_logger(__name__)


def _as_dict(stripe_object) -> dict:
    return json.loads(str(stripe_object))


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    def __init__(self, api_key: str, webhook_secret: str) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def retrieve_checkout_session(self, session_id: str) -> dict:
        try:
            session = stripe.checkout.Session.retrieve(
                session_id,
                expand=["shipping_cost.shipping_rate"],
                api_key=self.api_key,
            )
        except stripe.StripeError as exc:
            raise GatewayError(f"Could not retrieve checkout session {session_id}: {exc}") from exc
        return _as_dict(session)

    def retrieve_payment_intent(self, payment_intent_id: str) -> dict | None:
        try:
            return _as_dict(stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key))
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing":
                return None
            raise GatewayError(str(exc)) from exc
        except stripe.StripeError as exc:
            raise GatewayError(str(exc)) from exc

    def create_refund(self, request: RefundRequest) -> RefundResult:
        params = {
            "payment_intent": request.payment_intent_id,
            "reason": request.reason,
            "metadata": request.metadata,
        }
        if request.amount is not None:
            params["amount"] = request.amount

        try:
            refund = stripe.Refund.create(
                **params,
                idempotency_key=request.idempotency_key,
                api_key=self.api_key,
            )
        except stripe.StripeError as exc:
            logger.error(
                "Stripe refund creation failed",
                payment_intent_id=request.payment_intent_id,
                error=str(exc),
            )
            return RefundResult(success=False, failure_reason=str(exc))

        return RefundResult(
            success=refund.status != "failed",
            gateway_refund_id=refund.id,
            gateway_status=refund.status,
            failure_reason=getattr(refund, "failure_reason", None),
        )

    def retrieve_refund(self, refund_id: str) -> dict | None:
        try:
            return _as_dict(stripe.Refund.retrieve(refund_id, api_key=self.api_key))
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing":
                return None
            raise GatewayError(str(exc)) from exc
        except stripe.StripeError as exc:
            raise GatewayError(str(exc)) from exc

    def retrieve_event(self, event_id: str) -> dict | None:
        try:
            return _as_dict(stripe.Event.retrieve(event_id, api_key=self.api_key))
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing":
                return None
            raise GatewayError(str(exc)) from exc
        except stripe.StripeError as exc:
            raise GatewayError(str(exc)) from exc

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            logger.warning("Webhook signature verification failed", error=str(exc))
            return False
        return True
