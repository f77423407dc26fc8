"""One delivery of one gateway event: log it, dispatch it, record the outcome.

The handler's own Unit of Work has committed (or rolled back) by the time the
delivery record is completed or failed, so a crash in between leaves the
record PROCESSING and the retry sweep picks it up.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from protean.utils.globals import current_domain

from checkout.tasks.task import PostTask, TaskKind, email_task
from checkout.urls import admin_email
from checkout.utils.logging import add_context, clear_context
from checkout.webhook.delivery import (
    ALERT_AFTER_ATTEMPTS,
    CompleteWebhookDelivery,
    FailWebhookDelivery,
    RegisterWebhookDelivery,
)
from checkout.webhook.dispatcher import dispatch
from checkout.webhook.event import GatewayEvent
from checkout.webhook.result import HandlerResult

logger = structlog.get_logger(__name__)

REPLAY_WINDOW = timedelta(seconds=300)


class DeliveryOutcome(Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass
class ProcessedEvent:
    outcome: DeliveryOutcome
    result: HandlerResult | None = None
    tasks: list[PostTask] = field(default_factory=list)
    error: str | None = None
    attempts: int = 0


def is_replayed(event: GatewayEvent, now: datetime | None = None) -> bool:
    """True when the event was created longer ago than the replay window."""
    if event.created is None:
        return False
    return (now or datetime.now(UTC)) - event.created > REPLAY_WINDOW


def webhook_failure_alert(event: GatewayEvent, attempts: int, error: str) -> PostTask:
    return email_task(
        TaskKind.ADMIN_WEBHOOK_FAILURE_ALERT,
        admin_email(),
        event_id=event.id,
        event_type=event.type,
        attempts=attempts,
        error=error,
    )


def process_gateway_event(event: GatewayEvent) -> ProcessedEvent:
    add_context(event_id=event.id, event_type=event.type)
    try:
        return _process(event)
    finally:
        clear_context()


def _process(event: GatewayEvent) -> ProcessedEvent:
    record = current_domain.process(
        RegisterWebhookDelivery(event_id=event.id, event_type=event.type, gateway_created_at=event.created),
        asynchronous=False,
    )
    if record is None:
        return ProcessedEvent(outcome=DeliveryOutcome.DUPLICATE)

    try:
        result = dispatch(event)
    except Exception as exc:  # noqa: BLE001
        error = f"{type(exc).__name__}: {exc}"
        logger.exception("Gateway event handler failed", attempt=record.attempts)
        attempts = current_domain.process(FailWebhookDelivery(event_id=event.id, error=error), asynchronous=False)
        tasks = []
        if attempts >= ALERT_AFTER_ATTEMPTS:
            tasks.append(webhook_failure_alert(event, attempts, error))
        return ProcessedEvent(outcome=DeliveryOutcome.FAILED, tasks=tasks, error=error, attempts=attempts)

    skipped = result is not None and result.skipped
    current_domain.process(CompleteWebhookDelivery(event_id=event.id, skipped=skipped), asynchronous=False)

    tasks = list(result.tasks) if result is not None else []
    logger.info(
        "Gateway event processed",
        skipped=skipped,
        already_processed=bool(result and result.already_processed),
        tasks=len(tasks),
    )
    return ProcessedEvent(
        outcome=DeliveryOutcome.SKIPPED if skipped else DeliveryOutcome.PROCESSED,
        result=result,
        tasks=tasks,
        attempts=record.attempts,
    )
