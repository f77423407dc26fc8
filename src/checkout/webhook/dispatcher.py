"""Routes a gateway event to its handler."""

from typing import assert_never

import structlog

from checkout.webhook import checkout_events, dispute_events, payment_intent_events, refund_events
from checkout.webhook.event import EventKind, GatewayEvent
from checkout.webhook.result import HandlerResult

logger = structlog.get_logger(__name__)


def dispatch(event: GatewayEvent) -> HandlerResult | None:
    """Run the handler for ``event``. Handler exceptions propagate."""
    kind = event.kind
    logger.debug("Dispatching gateway event", event_id=event.id, event_type=event.type)

    match kind:
        case EventKind.CHECKOUT_COMPLETED | EventKind.CHECKOUT_ASYNC_PAYMENT_SUCCEEDED:
            return checkout_events.handle_checkout_completed(event)
        case EventKind.CHECKOUT_EXPIRED:
            return checkout_events.handle_checkout_expired(event)
        case EventKind.CHECKOUT_ASYNC_PAYMENT_FAILED:
            return checkout_events.handle_async_payment_failed(event)
        case EventKind.PAYMENT_INTENT_SUCCEEDED:
            return payment_intent_events.handle_payment_succeeded(event)
        case EventKind.PAYMENT_INTENT_FAILED:
            return payment_intent_events.handle_payment_failed(event)
        case EventKind.PAYMENT_INTENT_CANCELED:
            return payment_intent_events.handle_payment_canceled(event)
        case EventKind.CHARGE_REFUNDED:
            return refund_events.handle_charge_refunded(event)
        case EventKind.REFUND_CREATED | EventKind.REFUND_UPDATED:
            return refund_events.handle_refund_updated(event)
        case EventKind.REFUND_FAILED:
            return refund_events.handle_refund_failed(event)
        case EventKind.DISPUTE_CREATED:
            return dispute_events.handle_dispute_created(event)
        case EventKind.DISPUTE_UPDATED:
            return dispute_events.handle_dispute_updated(event)
        case EventKind.DISPUTE_CLOSED:
            return dispute_events.handle_dispute_closed(event)
        case EventKind.DISPUTE_FUNDS_WITHDRAWN | EventKind.DISPUTE_FUNDS_REINSTATED:
            return dispute_events.handle_dispute_funds_moved(event)
        case EventKind.UNSUPPORTED:
            logger.info("Unsupported gateway event skipped", event_id=event.id, event_type=event.type)
            return HandlerResult.skip(f"Unsupported event type: {event.type}")
        case _:
            assert_never(kind)
