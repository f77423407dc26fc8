"""Payment intent events.

``succeeded`` is informational: the checkout session events confirm orders.
``payment_failed`` and ``canceled`` fail the order, put taken stock back and,
when money was captured anyway, refund it automatically.
"""

import re

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout import cache_keys
from checkout.emails.context import order_context
from checkout.gateway import get_gateway
from checkout.gateway.port import GatewayError, RefundRequest
from checkout.order.order import Order
from checkout.order.payment_failure import FlagManualRefund, RecordPaymentFailure
from checkout.tasks.task import PostTask, TaskKind, email_task, invalidate_cache
from checkout.urls import admin_email, checkout_retry_url, gateway_payment_url
from checkout.webhook.event import GatewayEvent
from checkout.webhook.result import HandlerResult

logger = structlog.get_logger(__name__)

FAILED_REASON = "Payment failed"
CANCELED_REASON = "Payment canceled"


def refund_idempotency_key(reason: str, payment_intent_id: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", reason.lower()).strip("-")
    return f"auto-refund-{slug}-{payment_intent_id}"


def _order_id(intent: dict) -> str:
    order_id = (intent.get("metadata") or {}).get("order_id")
    if not order_id:
        raise ValidationError({"order_id": [f"Payment intent {intent.get('id')} carries no order id"]})
    return order_id


def failure_details(intent: dict) -> dict:
    error = intent.get("last_payment_error") or {}
    return {
        "failure_code": error.get("code"),
        "decline_code": error.get("decline_code"),
        "failure_message": error.get("message") or intent.get("cancellation_reason"),
    }


def issue_automatic_refund(order: Order, payment_intent_id: str, reason: str) -> list[PostTask]:
    """Refund captured money for a failed payment. Escalates instead of retrying."""
    request = RefundRequest(
        payment_intent_id=payment_intent_id,
        idempotency_key=refund_idempotency_key(reason, payment_intent_id),
        metadata={"order_id": str(order.id), "reason": reason, "auto_refund": "true"},
    )
    try:
        result = get_gateway().create_refund(request)
    except GatewayError as exc:
        error = str(exc)
    else:
        if result.success:
            logger.info(
                "Automatic refund issued",
                order_id=str(order.id),
                payment_intent_id=payment_intent_id,
                gateway_refund_id=result.gateway_refund_id,
            )
            return []
        error = result.failure_reason or "Refund was not accepted"

    logger.error(
        "Automatic refund failed",
        order_id=str(order.id),
        payment_intent_id=payment_intent_id,
        error=error,
    )
    current_domain.process(FlagManualRefund(order_id=str(order.id), reason=error), asynchronous=False)
    return [
        email_task(
            TaskKind.ADMIN_REFUND_FAILED_ALERT,
            admin_email(),
            order_number=order.order_number,
            amount=order.total,
            currency=order.currency,
            reason=f"{reason}: {error}",
            gateway_reference=payment_intent_id,
            dashboard_url=gateway_payment_url(payment_intent_id),
        ),
        invalidate_cache(cache_keys.order_notes(order.id)),
    ]


def fail_payment(intent: dict, reason: str, refund_allowed: bool, order_id: str | None = None) -> HandlerResult:
    """Fail the order behind a payment intent and plan the follow-up tasks."""
    order_id = order_id or _order_id(intent)

    outcome = current_domain.process(
        RecordPaymentFailure(order_id=order_id, payment_intent_id=intent.get("id"), **failure_details(intent)),
        asynchronous=False,
    )
    if outcome.already_processed:
        return HandlerResult(order_id=order_id, already_processed=True)

    order = outcome.order
    keys = [cache_keys.ORDERS_LIST, cache_keys.ADMIN_BADGES, cache_keys.order_detail(order.id)]
    keys.extend(cache_keys.sku_stock(sku_id) for sku_id in outcome.restored_sku_ids)
    if order.user_id:
        keys.append(cache_keys.user_orders(order.user_id))
    tasks = [invalidate_cache(*keys)]

    if order.customer_email:
        tasks.append(
            email_task(
                TaskKind.PAYMENT_FAILED_EMAIL,
                order.customer_email,
                failure_reason=order.payment_failure_message,
                retry_url=checkout_retry_url(order.id),
                **order_context(order),
            )
        )

    if refund_allowed and (intent.get("amount_received") or 0) > 0:
        tasks.extend(issue_automatic_refund(order, intent["id"], reason))

    return HandlerResult(order_id=order_id, tasks=tasks)


def handle_payment_succeeded(event: GatewayEvent) -> None:
    logger.info("Payment intent succeeded", payment_intent_id=event.payload.get("id"))
    return None


def handle_payment_failed(event: GatewayEvent) -> HandlerResult:
    return fail_payment(event.payload, FAILED_REASON, refund_allowed=True)


def handle_payment_canceled(event: GatewayEvent) -> HandlerResult:
    refund_allowed = event.payload.get("status") == "canceled"
    return fail_payment(event.payload, CANCELED_REASON, refund_allowed=refund_allowed)
