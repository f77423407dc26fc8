"""Dispute events.

Every dispute notification carries the full dispute, so whichever arrives
first creates the local row. Alerts go out once: when the dispute is first
recorded and when it closes.
"""

from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout import cache_keys
from checkout.dispute.dispute import Dispute
from checkout.dispute.handling import CloseDispute, DisputeOutcome, OpenDispute, SyncDispute
from checkout.tasks.task import PostTask, TaskKind, email_task, invalidate_cache
from checkout.urls import admin_email, dashboard_order_url, gateway_dispute_url
from checkout.webhook.event import GatewayEvent
from checkout.webhook.result import HandlerResult

logger = structlog.get_logger(__name__)


def _dispute_fields(dispute: dict) -> dict:
    payment_intent_id = dispute.get("payment_intent")
    if not payment_intent_id:
        raise ValidationError({"payment_intent": [f"Dispute {dispute.get('id')} carries no payment intent"]})

    due_by = (dispute.get("evidence_details") or {}).get("due_by")
    fee = sum(txn.get("fee") or 0 for txn in dispute.get("balance_transactions") or [])
    return {
        "dispute_id": dispute["id"],
        "payment_intent_id": payment_intent_id,
        "charge_id": dispute.get("charge"),
        "amount": dispute.get("amount") or 0,
        "currency": dispute.get("currency") or "eur",
        "fee": fee,
        "reason": dispute.get("reason"),
        "status": dispute.get("status"),
        "evidence_due_by": datetime.fromtimestamp(due_by, UTC) if due_by else None,
    }


def dispute_alert(dispute: Dispute, order, stage: str) -> PostTask:
    return email_task(
        TaskKind.ADMIN_DISPUTE_ALERT,
        admin_email(),
        stage=stage,
        order_number=order.order_number,
        dispute_id=dispute.dispute_id,
        amount=dispute.amount,
        currency=dispute.currency,
        reason_label=dispute.reason_label,
        evidence_due_by=f"{dispute.evidence_due_by:%Y-%m-%d %H:%M} UTC",
        outcome=dispute.status,
        dashboard_url=dashboard_order_url(order.id),
        gateway_url=gateway_dispute_url(dispute.dispute_id),
    )


def _cache_task(order) -> PostTask:
    return invalidate_cache(
        cache_keys.DISPUTES_LIST,
        cache_keys.ADMIN_BADGES,
        cache_keys.ORDERS_LIST,
        cache_keys.order_detail(order.id),
        cache_keys.order_notes(order.id),
    )


def _result(outcome: DisputeOutcome) -> HandlerResult:
    if outcome.skipped:
        return HandlerResult.skip("No order for disputed payment")

    order = outcome.order
    tasks = []
    if outcome.created:
        tasks.append(dispute_alert(outcome.dispute, order, "opened"))
    if outcome.closed:
        tasks.append(dispute_alert(outcome.dispute, order, "closed"))
    if not tasks:
        return HandlerResult(order_id=str(order.id), already_processed=True)
    return HandlerResult(order_id=str(order.id), tasks=[_cache_task(order), *tasks])


def handle_dispute_created(event: GatewayEvent) -> HandlerResult:
    outcome = current_domain.process(OpenDispute(**_dispute_fields(event.payload)), asynchronous=False)
    return _result(outcome)


def handle_dispute_updated(event: GatewayEvent) -> HandlerResult:
    outcome = current_domain.process(SyncDispute(**_dispute_fields(event.payload)), asynchronous=False)
    return _result(outcome)


def handle_dispute_closed(event: GatewayEvent) -> HandlerResult:
    outcome = current_domain.process(CloseDispute(**_dispute_fields(event.payload)), asynchronous=False)
    return _result(outcome)


def handle_dispute_funds_moved(event: GatewayEvent) -> None:
    dispute = event.payload
    logger.info(
        "Dispute funds moved",
        event_type=event.type,
        dispute_id=dispute.get("id"),
        amount=dispute.get("amount"),
        status=dispute.get("status"),
    )
    return None
