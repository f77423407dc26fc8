"""Retry sweep for gateway events we failed to process.

Runs on a schedule. Deliveries stuck in PROCESSING (the process died while
handling them) are marked FAILED first; every FAILED delivery with attempts
left is then fetched again from the gateway and reprocessed.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import structlog
from protean.utils.globals import current_domain

from checkout.gateway import get_gateway
from checkout.gateway.port import GatewayError
from checkout.tasks.task import PostTask
from checkout.webhook.delivery import (
    MAX_DELIVERY_ATTEMPTS,
    DeliveryStatus,
    FailWebhookDelivery,
    SkipWebhookDelivery,
    WebhookEvent,
)
from checkout.webhook.event import EventKind, GatewayEvent
from checkout.webhook.processing import DeliveryOutcome, process_gateway_event

logger = structlog.get_logger(__name__)

ORPHAN_AFTER = timedelta(minutes=10)
RETRY_BATCH_SIZE = 50


@dataclass
class RetryReport:
    orphaned: int = 0
    retried: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    tasks: list[PostTask] = field(default_factory=list)


def _records(status: DeliveryStatus, **filters) -> list[WebhookEvent]:
    dao = current_domain.repository_for(WebhookEvent)._dao
    return dao.query.filter(status=status.value, **filters).limit(RETRY_BATCH_SIZE).all().items


def fail_orphaned_deliveries(now: datetime | None = None) -> int:
    cutoff = (now or datetime.now(UTC)) - ORPHAN_AFTER
    orphans = _records(DeliveryStatus.PROCESSING, received_at__lt=cutoff)
    for record in orphans:
        logger.warning("Webhook delivery interrupted while processing", event_id=record.event_id)
        current_domain.process(
            FailWebhookDelivery(event_id=record.event_id, error="Processing interrupted"),
            asynchronous=False,
        )
    return len(orphans)


def retry_failed_webhooks(now: datetime | None = None) -> RetryReport:
    report = RetryReport(orphaned=fail_orphaned_deliveries(now))
    gateway = get_gateway()

    for record in _records(DeliveryStatus.FAILED, attempts__lt=MAX_DELIVERY_ATTEMPTS):
        try:
            data = gateway.retrieve_event(record.event_id)
        except GatewayError as exc:
            logger.warning("Could not fetch event for retry", event_id=record.event_id, error=str(exc))
            report.failed += 1
            continue

        if data is None or EventKind.from_type(data.get("type", "")) == EventKind.UNSUPPORTED:
            reason = "Event no longer available at the gateway" if data is None else "Unsupported event type"
            current_domain.process(SkipWebhookDelivery(event_id=record.event_id, reason=reason), asynchronous=False)
            report.skipped += 1
            continue

        report.retried += 1
        processed = process_gateway_event(GatewayEvent.from_dict(data))
        report.tasks.extend(processed.tasks)
        if processed.outcome == DeliveryOutcome.FAILED:
            report.failed += 1
            if processed.attempts >= MAX_DELIVERY_ATTEMPTS:
                logger.error(
                    "Webhook delivery permanently failed",
                    event_id=record.event_id,
                    attempts=processed.attempts,
                )
        else:
            report.succeeded += 1

    logger.info(
        "Webhook retry sweep finished",
        orphaned=report.orphaned,
        retried=report.retried,
        succeeded=report.succeeded,
        failed=report.failed,
        skipped=report.skipped,
    )
    return report
