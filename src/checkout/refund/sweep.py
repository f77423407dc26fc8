"""Catch-up for refunds whose final notification never arrived.

An APPROVED refund that has been waiting at the gateway for over an hour is
read back from the gateway; a final status is applied through the same
commands the webhook handlers use.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import structlog
from protean.utils.globals import current_domain

from checkout.gateway import get_gateway
from checkout.gateway.port import GatewayError
from checkout.order.order import Order
from checkout.refund.reconciliation import MarkRefundFailed, SyncRefund
from checkout.refund.refund import Refund, RefundStatus, map_gateway_refund_status
from checkout.tasks.task import PostTask
from checkout.webhook.refund_events import refund_confirmation, refund_failed_alert

logger = structlog.get_logger(__name__)

PENDING_REFUND_AGE = timedelta(hours=1)
SWEEP_BATCH_SIZE = 25


@dataclass
class RefundSweepReport:
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


def _stale_refunds(now: datetime) -> list[Refund]:
    cutoff = now - PENDING_REFUND_AGE
    approved = (
        current_domain.repository_for(Refund)._dao.query.filter(status=RefundStatus.APPROVED.value).all().items
    )
    stale = [r for r in approved if r.gateway_refund_id and r.processed_at and r.processed_at < cutoff]
    return sorted(stale, key=lambda r: r.processed_at)


def _complete(refund: Refund, gateway_refund: dict) -> list[PostTask]:
    sync = current_domain.process(
        SyncRefund(
            gateway_refund_id=refund.gateway_refund_id,
            refund_id=str(refund.id),
            status=gateway_refund.get("status"),
        ),
        asynchronous=False,
    )
    if sync is None or not sync.completed_now:
        return []
    task = refund_confirmation(sync.order, refund.amount, sync.total_refunded, gateway_refund.get("reason"))
    return [task] if task else []


def _fail(refund: Refund, gateway_refund: dict) -> list[PostTask]:
    failure = current_domain.process(
        MarkRefundFailed(
            gateway_refund_id=refund.gateway_refund_id,
            refund_id=str(refund.id),
            failure_reason=gateway_refund.get("failure_reason") or "Unknown failure",
        ),
        asynchronous=False,
    )
    if failure is None or failure.already_processed:
        return []
    order = current_domain.repository_for(Order).get(refund.order_id)
    return [refund_failed_alert(order, failure.refund)]


def reconcile_pending_refunds(now: datetime | None = None) -> RefundSweepReport:
    stale = _stale_refunds(now or datetime.now(UTC))
    report = RefundSweepReport(has_more=len(stale) > SWEEP_BATCH_SIZE)
    gateway = get_gateway()

    for refund in stale[:SWEEP_BATCH_SIZE]:
        report.checked += 1
        try:
            gateway_refund = gateway.retrieve_refund(refund.gateway_refund_id)
        except GatewayError as exc:
            report.errors += 1
            logger.warning(
                "Could not fetch refund from the gateway",
                refund_id=str(refund.id),
                gateway_refund_id=refund.gateway_refund_id,
                error=str(exc),
            )
            continue
        if gateway_refund is None:
            report.errors += 1
            logger.warning("Refund unknown to the gateway", refund_id=str(refund.id))
            continue

        mapped = map_gateway_refund_status(gateway_refund.get("status"))
        if mapped == RefundStatus.COMPLETED:
            report.tasks.extend(_complete(refund, gateway_refund))
        elif mapped == RefundStatus.FAILED:
            report.tasks.extend(_fail(refund, gateway_refund))
        else:
            continue
        report.updated += 1

    logger.info("Pending refund sweep finished", **report.as_dict())
    return report
