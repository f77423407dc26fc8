"""Checkout session events.

completed / async_payment_succeeded confirm an order; expired /
async_payment_failed cancel one that was never paid.
"""

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout import cache_keys
from checkout.emails.context import order_context
from checkout.gateway import get_gateway
from checkout.order.cancellation import CancelPendingOrder
from checkout.order.fulfillment import CheckoutFulfillment, FulfillCheckout, RecordAwaitingPayment
from checkout.order.order import CancellationReason
from checkout.order.shipping import shipping_from_session
from checkout.tasks.task import PostTask, TaskKind, email_task, invalidate_cache
from checkout.urls import admin_email
from checkout.webhook.event import GatewayEvent
from checkout.webhook.result import HandlerResult

logger = structlog.get_logger(__name__)


def _order_id(session: dict) -> str:
    metadata = session.get("metadata") or {}
    order_id = metadata.get("order_id") or session.get("client_reference_id")
    if not order_id:
        raise ValidationError({"order_id": [f"Checkout session {session.get('id')} carries no order id"]})
    return order_id


def _customer_email(session: dict) -> str | None:
    details = session.get("customer_details") or {}
    return details.get("email") or session.get("customer_email")


def post_checkout_tasks(fulfillment: CheckoutFulfillment) -> list[PostTask]:
    order = fulfillment.order
    keys = [
        cache_keys.ORDERS_LIST,
        cache_keys.ADMIN_BADGES,
        cache_keys.order_detail(order.id),
        *(cache_keys.sku_stock(sku_id) for sku_id in fulfillment.sku_ids),
    ]
    if fulfillment.cleared_cart_key:
        keys.append(fulfillment.cleared_cart_key)
    if order.user_id:
        keys.append(cache_keys.user_orders(order.user_id))
    if fulfillment.email_mismatch:
        keys.append(cache_keys.order_notes(order.id))

    tasks = [invalidate_cache(*keys)]
    context = order_context(order)
    if order.customer_email:
        tasks.append(email_task(TaskKind.ORDER_CONFIRMATION_EMAIL, order.customer_email, **context))
    else:
        logger.warning("Paid order has no customer email, skipping confirmation", order_id=str(order.id))
    tasks.append(
        email_task(
            TaskKind.ADMIN_NEW_ORDER_EMAIL,
            admin_email(),
            customer_email=order.customer_email,
            **context,
        )
    )
    return tasks


def confirm_checkout_session(session: dict, order_id: str | None = None) -> HandlerResult:
    """Pay the order behind a settled checkout session and plan the follow-up tasks."""
    order_id = order_id or _order_id(session)
    full_session = get_gateway().retrieve_checkout_session(session["id"])
    shipping_cost, shipping_rate_id, rate = shipping_from_session(full_session)
    metadata = session.get("metadata") or {}

    fulfillment = current_domain.process(
        FulfillCheckout(
            order_id=order_id,
            checkout_session_id=session["id"],
            payment_intent_id=session.get("payment_intent"),
            gateway_customer_id=session.get("customer"),
            shipping_cost=shipping_cost,
            shipping_rate_id=shipping_rate_id,
            shipping_method=rate.method,
            shipping_carrier=rate.carrier,
            session_email=_customer_email(session),
            guest_session_id=metadata.get("guest_session_id"),
        ),
        asynchronous=False,
    )

    if fulfillment.already_processed:
        return HandlerResult(order_id=order_id, already_processed=True)
    return HandlerResult(order_id=order_id, tasks=post_checkout_tasks(fulfillment))


def handle_checkout_completed(event: GatewayEvent) -> HandlerResult | None:
    session = event.payload
    order_id = _order_id(session)

    if session.get("payment_status") == "unpaid":
        # Delayed payment methods: confirmed later by async_payment_succeeded or the sweep.
        current_domain.process(
            RecordAwaitingPayment(
                order_id=order_id,
                checkout_session_id=session["id"],
                payment_intent_id=session.get("payment_intent"),
            ),
            asynchronous=False,
        )
        logger.info("Checkout completed without payment yet", order_id=order_id, session_id=session.get("id"))
        return None

    return confirm_checkout_session(session, order_id)


def _cancel(event: GatewayEvent, reason: CancellationReason) -> HandlerResult:
    order_id = _order_id(event.payload)
    outcome = current_domain.process(CancelPendingOrder(order_id=order_id, reason=reason.value), asynchronous=False)
    if not outcome.cancelled:
        return HandlerResult.skip(f"Order is {outcome.order.payment_status}, not cancelled", order_id=order_id)

    order = outcome.order
    keys = [cache_keys.ORDERS_LIST, cache_keys.ADMIN_BADGES, cache_keys.order_detail(order.id)]
    if order.user_id:
        keys.append(cache_keys.user_orders(order.user_id))
    return HandlerResult(order_id=order_id, tasks=[invalidate_cache(*keys)])


def handle_checkout_expired(event: GatewayEvent) -> HandlerResult:
    return _cancel(event, CancellationReason.CHECKOUT_EXPIRED)


def handle_async_payment_failed(event: GatewayEvent) -> HandlerResult:
    return _cancel(event, CancellationReason.ASYNC_PAYMENT_FAILED)
