"""Refund events: charge.refunded, refund.created/updated, refund.failed."""

import json

import structlog
from protean.utils.globals import current_domain

from checkout import cache_keys
from checkout.order.order import Order
from checkout.refund.reconciliation import MarkRefundFailed, ReconcileChargeRefunds, SyncRefund
from checkout.refund.refund import Refund
from checkout.tasks.task import PostTask, TaskKind, email_task, invalidate_cache
from checkout.urls import admin_email, dashboard_order_url, order_details_url
from checkout.webhook.event import GatewayEvent
from checkout.webhook.result import HandlerResult

logger = structlog.get_logger(__name__)


def _refund_cache_keys(order: Order) -> list[str]:
    keys = [
        cache_keys.ORDERS_LIST,
        cache_keys.REFUNDS_LIST,
        cache_keys.ADMIN_BADGES,
        cache_keys.order_detail(order.id),
    ]
    if order.user_id:
        keys.append(cache_keys.user_orders(order.user_id))
    return keys


def refund_confirmation(order: Order, amount: int, total_refunded: int, reason: str | None) -> PostTask | None:
    if not order.customer_email:
        logger.warning("Refunded order has no customer email", order_id=str(order.id))
        return None
    return email_task(
        TaskKind.REFUND_CONFIRMATION_EMAIL,
        order.customer_email,
        order_number=order.order_number,
        customer_name=order.customer_name,
        refund_amount=amount,
        original_order_total=order.total,
        currency=order.currency,
        is_partial_refund=total_refunded < order.total,
        reason=reason,
        order_details_url=order_details_url(order.id),
    )


def refund_failed_alert(order: Order, refund: Refund) -> PostTask:
    return email_task(
        TaskKind.ADMIN_REFUND_FAILED_ALERT,
        admin_email(),
        order_number=order.order_number,
        amount=refund.amount,
        currency=refund.currency,
        reason=refund.failure_reason,
        gateway_reference=refund.gateway_refund_id,
        dashboard_url=dashboard_order_url(order.id),
    )


def handle_charge_refunded(event: GatewayEvent) -> HandlerResult | None:
    charge = event.payload
    payment_intent_id = charge.get("payment_intent")
    if not payment_intent_id:
        logger.warning("Refunded charge has no payment intent", charge_id=charge.get("id"))
        return None

    refunds = (charge.get("refunds") or {}).get("data") or []
    reconciliation = current_domain.process(
        ReconcileChargeRefunds(
            payment_intent_id=payment_intent_id,
            charge_id=charge.get("id"),
            amount_refunded=charge.get("amount_refunded") or 0,
            refunds=json.dumps(refunds),
        ),
        asynchronous=False,
    )
    if reconciliation is None:
        return None

    order = reconciliation.order
    tasks = [invalidate_cache(*_refund_cache_keys(order))]
    if reconciliation.newly_completed:
        amount = sum(r.amount for r in reconciliation.newly_completed)
        task = refund_confirmation(order, amount, reconciliation.total_refunded, reconciliation.latest_reason)
        if task:
            tasks.append(task)
    return HandlerResult(order_id=str(order.id), tasks=tasks)


def handle_refund_updated(event: GatewayEvent) -> HandlerResult | None:
    """Handles both refund.created and refund.updated."""
    payload = event.payload
    sync = current_domain.process(
        SyncRefund(
            gateway_refund_id=payload["id"],
            refund_id=(payload.get("metadata") or {}).get("refund_id"),
            status=payload.get("status"),
        ),
        asynchronous=False,
    )
    if sync is None:
        return None
    if not sync.changed:
        return HandlerResult(order_id=str(sync.refund.order_id), already_processed=True)

    order = sync.order or current_domain.repository_for(Order).get(sync.refund.order_id)
    tasks = [invalidate_cache(*_refund_cache_keys(order))]
    if sync.completed_now:
        task = refund_confirmation(order, sync.refund.amount, sync.total_refunded, payload.get("reason"))
        if task:
            tasks.append(task)
    return HandlerResult(order_id=str(order.id), tasks=tasks)


def handle_refund_failed(event: GatewayEvent) -> HandlerResult | None:
    payload = event.payload
    failure = current_domain.process(
        MarkRefundFailed(
            gateway_refund_id=payload["id"],
            refund_id=(payload.get("metadata") or {}).get("refund_id"),
            failure_reason=payload.get("failure_reason") or "Unknown failure",
        ),
        asynchronous=False,
    )
    if failure is None:
        return None

    refund = failure.refund
    if failure.already_processed:
        return HandlerResult(order_id=str(refund.order_id), already_processed=True)

    order = current_domain.repository_for(Order).get(refund.order_id)
    return HandlerResult(
        order_id=str(order.id),
        tasks=[invalidate_cache(*_refund_cache_keys(order)), refund_failed_alert(order, refund)],
    )
