"""Catch-up for delayed payments whose final notification never arrived.

Orders paid with a delayed method (bank debit, voucher) stay PENDING until
the gateway reports the outcome. Orders that have been waiting between an
hour and a week are read back from the gateway: a succeeded intent pays the
order through the checkout path, a canceled or declined one fails it through
the payment failure path. Anything still processing is left for the next run.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout.gateway import get_gateway
from checkout.gateway.port import GatewayError
from checkout.order.order import Order, PaymentStatus
from checkout.tasks.task import PostTask
from checkout.webhook.checkout_events import confirm_checkout_session
from checkout.webhook.payment_intent_events import CANCELED_REASON, FAILED_REASON, fail_payment
from checkout.webhook.result import HandlerResult

logger = structlog.get_logger(__name__)

ASYNC_PAYMENT_MIN_AGE = timedelta(hours=1)
ASYNC_PAYMENT_MAX_AGE = timedelta(days=7)
SWEEP_BATCH_SIZE = 25

_FAILED_INTENT_REASONS = {
    "canceled": CANCELED_REASON,
    "requires_payment_method": FAILED_REASON,
}


@dataclass
class PaymentSweepReport:
    checked: int = 0
    updated: int = 0
    errors: int = 0
    has_more: bool = False
    tasks: list[PostTask] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "checked": self.checked,
            "updated": self.updated,
            "errors": self.errors,
            "has_more": self.has_more,
        }


def _awaiting_orders(now: datetime) -> list[Order]:
    pending = (
        current_domain.repository_for(Order)
        ._dao.query.filter(
            payment_status=PaymentStatus.PENDING.value,
            created_at__gte=now - ASYNC_PAYMENT_MAX_AGE,
            created_at__lt=now - ASYNC_PAYMENT_MIN_AGE,
        )
        .all()
        .items
    )
    return sorted((o for o in pending if o.payment_intent_id), key=lambda o: o.created_at)


def _settle(order: Order, intent: dict) -> HandlerResult | None:
    status = intent.get("status")
    if status == "succeeded":
        if not order.checkout_session_id:
            raise ValidationError({"checkout_session_id": [f"Order {order.id} has no checkout session"]})
        session = get_gateway().retrieve_checkout_session(order.checkout_session_id)
        return confirm_checkout_session(session, str(order.id))
    if status in _FAILED_INTENT_REASONS:
        return fail_payment(intent, _FAILED_INTENT_REASONS[status], refund_allowed=True, order_id=str(order.id))
    return None


def sync_async_payments(now: datetime | None = None) -> PaymentSweepReport:
    awaiting = _awaiting_orders(now or datetime.now(UTC))
    report = PaymentSweepReport(has_more=len(awaiting) > SWEEP_BATCH_SIZE)
    gateway = get_gateway()

    for order in awaiting[:SWEEP_BATCH_SIZE]:
        report.checked += 1
        try:
            intent = gateway.retrieve_payment_intent(order.payment_intent_id)
        except GatewayError as exc:
            report.errors += 1
            logger.warning(
                "Could not fetch payment intent from the gateway",
                order_id=str(order.id),
                payment_intent_id=order.payment_intent_id,
                error=str(exc),
            )
            continue
        if intent is None:
            report.errors += 1
            logger.warning(
                "Payment intent unknown to the gateway",
                order_id=str(order.id),
                payment_intent_id=order.payment_intent_id,
            )
            continue

        try:
            result = _settle(order, intent)
        except (GatewayError, ValidationError) as exc:
            report.errors += 1
            logger.error(
                "Could not settle delayed payment",
                order_id=str(order.id),
                payment_intent_id=order.payment_intent_id,
                intent_status=intent.get("status"),
                error=str(exc),
            )
            continue

        if result is None:
            continue
        report.tasks.extend(result.tasks)
        if not result.already_processed:
            report.updated += 1
            logger.info(
                "Delayed payment settled",
                order_id=str(order.id),
                intent_status=intent.get("status"),
            )

    logger.info("Delayed payment sweep finished", **report.as_dict())
    return report
