"""Retention of the webhook delivery log."""

from datetime import UTC, datetime, timedelta

import structlog
from protean import handle
from protean.fields import Integer
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.webhook.delivery import DeliveryStatus, WebhookEvent

logger = structlog.get_logger(__name__)

FINISHED_RETENTION_DAYS = 90
FAILED_RETENTION_DAYS = 180
STALE_PROCESSING_DAYS = 90


@checkout.command(part_of="WebhookEvent")
class PurgeWebhookEvents:
    finished_retention_days = Integer(default=FINISHED_RETENTION_DAYS, min_value=1)
    failed_retention_days = Integer(default=FAILED_RETENTION_DAYS, min_value=1)
    stale_processing_days = Integer(default=STALE_PROCESSING_DAYS, min_value=1)


@checkout.command_handler(part_of=WebhookEvent)
class WebhookRetentionHandler:
    @handle(PurgeWebhookEvents)
    def purge(self, command):
        """Delete old delivery records. Returns the count deleted per status."""
        now = datetime.now(UTC)
        rules = [
            (DeliveryStatus.COMPLETED, command.finished_retention_days),
            (DeliveryStatus.SKIPPED, command.finished_retention_days),
            (DeliveryStatus.FAILED, command.failed_retention_days),
            (DeliveryStatus.PROCESSING, command.stale_processing_days),
        ]

        dao = current_domain.repository_for(WebhookEvent)._dao
        deleted = {}
        for status, days in rules:
            cutoff = now - timedelta(days=days)
            records = dao.query.filter(status=status.value, received_at__lt=cutoff).all().items
            for record in records:
                dao.delete(record)
            deleted[status.value] = len(records)

        logger.info("Webhook delivery log purged", **deleted)
        return deleted


def purge_webhook_events() -> dict[str, int]:
    return current_domain.process(PurgeWebhookEvents(), asynchronous=False)
