"""WebhookEvent aggregate: the log of gateway notifications we received.

One row per gateway event id. It short-circuits redeliveries of events we
already finished, counts attempts for the retry sweep, and keeps the last
error for operators. It does not replace the per-handler idempotency guards:
a PROCESSING or FAILED event is always processed again.
"""

from datetime import UTC, datetime
from enum import Enum

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from checkout.domain import checkout

logger = structlog.get_logger(__name__)

MAX_DELIVERY_ATTEMPTS = 5
ALERT_AFTER_ATTEMPTS = 3


class DeliveryStatus(Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


_FINISHED = {DeliveryStatus.COMPLETED, DeliveryStatus.SKIPPED}


@checkout.aggregate
class WebhookEvent:
    event_id = Identifier(identifier=True, required=True)
    event_type = String(required=True, max_length=100)
    status = String(choices=DeliveryStatus, default=DeliveryStatus.PROCESSING.value)
    attempts = Integer(default=0, min_value=0)
    error_message = Text()
    gateway_created_at = DateTime()
    received_at = DateTime()
    processed_at = DateTime()

    @property
    def is_finished(self) -> bool:
        return DeliveryStatus(self.status) in _FINISHED

    def start_attempt(self) -> None:
        self.status = DeliveryStatus.PROCESSING.value
        self.attempts += 1
        self.received_at = datetime.now(UTC)

    def complete(self, skipped: bool = False) -> None:
        self.status = (DeliveryStatus.SKIPPED if skipped else DeliveryStatus.COMPLETED).value
        self.error_message = None
        self.processed_at = datetime.now(UTC)

    def fail(self, error: str) -> None:
        self.status = DeliveryStatus.FAILED.value
        self.error_message = error[:2000]
        self.processed_at = datetime.now(UTC)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@checkout.command(part_of="WebhookEvent")
class RegisterWebhookDelivery:
    event_id = Identifier(required=True)
    event_type = String(required=True, max_length=100)
    gateway_created_at = DateTime()


@checkout.command(part_of="WebhookEvent")
class CompleteWebhookDelivery:
    event_id = Identifier(required=True)
    skipped = Boolean(default=False)


@checkout.command(part_of="WebhookEvent")
class FailWebhookDelivery:
    event_id = Identifier(required=True)
    error = Text(required=True)


@checkout.command(part_of="WebhookEvent")
class SkipWebhookDelivery:
    event_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------
@checkout.command_handler(part_of=WebhookEvent)
class WebhookDeliveryHandler:
    @handle(RegisterWebhookDelivery)
    def register(self, command):
        """Start an attempt. Returns the record, or None for a finished duplicate."""
        repo = current_domain.repository_for(WebhookEvent)
        try:
            record = repo.get(command.event_id)
        except ObjectNotFoundError:
            record = WebhookEvent(
                event_id=command.event_id,
                event_type=command.event_type,
                gateway_created_at=command.gateway_created_at,
            )

        if record.is_finished:
            logger.info(
                "Duplicate webhook delivery ignored",
                event_id=command.event_id,
                event_type=command.event_type,
                status=record.status,
            )
            return None

        record.start_attempt()
        repo.add(record)
        return record

    @handle(CompleteWebhookDelivery)
    def complete(self, command):
        repo = current_domain.repository_for(WebhookEvent)
        record = repo.get(command.event_id)
        record.complete(skipped=bool(command.skipped))
        repo.add(record)

    @handle(FailWebhookDelivery)
    def fail(self, command):
        """Record the error. Returns the number of attempts so far."""
        repo = current_domain.repository_for(WebhookEvent)
        record = repo.get(command.event_id)
        record.fail(command.error)
        repo.add(record)
        return record.attempts

    @handle(SkipWebhookDelivery)
    def skip(self, command):
        repo = current_domain.repository_for(WebhookEvent)
        record = repo.get(command.event_id)
        record.complete(skipped=True)
        record.error_message = command.reason
        repo.add(record)
