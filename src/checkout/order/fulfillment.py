"""Checkout fulfillment: command and handler.

Turns a paid checkout session into a PAID order inside one Unit of Work:
re-validate stock, take it, flip the order, take depleted SKUs off sale and
empty the cart. Redeliveries find the order already paid and change nothing.
A checkout settled by a delayed payment method only records its gateway
references until the money arrives.
"""

from dataclasses import dataclass, field

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout import cache_keys
from checkout.cart.cart import Cart, find_cart
from checkout.domain import checkout
from checkout.order.order import Order
from checkout.stock.sku import Sku
from checkout.stock.validation import aggregate_quantities, validate_stock

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Order")
class FulfillCheckout:
    """Confirm payment of an order from a completed checkout session."""

    order_id = Identifier(required=True)
    checkout_session_id = String(required=True, max_length=255)
    payment_intent_id = String(max_length=255)
    gateway_customer_id = String(max_length=255)
    shipping_cost = Integer(min_value=0)
    shipping_rate_id = String(max_length=255)
    shipping_method = String(max_length=50)
    shipping_carrier = String(max_length=50)
    session_email = String(max_length=254)
    guest_session_id = String(max_length=255)


@checkout.command(part_of="Order")
class RecordAwaitingPayment:
    """A checkout completed with a delayed payment method; the money has not arrived yet."""

    order_id = Identifier(required=True)
    checkout_session_id = String(required=True, max_length=255)
    payment_intent_id = String(max_length=255)


@dataclass
class CheckoutFulfillment:
    order: Order
    already_processed: bool = False
    sku_ids: list[str] = field(default_factory=list)
    depleted_sku_ids: list[str] = field(default_factory=list)
    cleared_cart_key: str | None = None
    email_mismatch: bool = False


def email_mismatch_note(session_email: str, order_email: str) -> str:
    return (
        f"[EMAIL ALERT] Payment was made with {session_email} but the order was placed "
        f"with {order_email}. Verify the customer before shipping."
    )


@checkout.command_handler(part_of=Order)
class CheckoutFulfillmentHandler:
    @handle(FulfillCheckout)
    def fulfill_checkout(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)

        if order.was_paid:
            logger.info(
                "Order already paid, nothing to fulfill",
                order_id=str(order.id),
                payment_status=order.payment_status,
            )
            return CheckoutFulfillment(order=order, already_processed=True)

        demand = aggregate_quantities(order.items)
        skus = validate_stock(demand)

        sku_repo = current_domain.repository_for(Sku)
        depleted = []
        for sku_id, quantity in demand.items():
            sku = skus[sku_id]
            sku.commit_stock(quantity)
            if sku.is_depleted:
                depleted.append(sku)

        order.mark_paid(
            checkout_session_id=command.checkout_session_id,
            payment_intent_id=command.payment_intent_id,
            gateway_customer_id=command.gateway_customer_id,
            shipping_cost=command.shipping_cost,
            shipping_method=command.shipping_method,
            shipping_carrier=command.shipping_carrier,
            shipping_rate_id=command.shipping_rate_id,
        )

        for sku in depleted:
            sku.take_off_sale()
        for sku in skus.values():
            sku_repo.add(sku)

        cleared_cart_key = self._clear_cart(order, command.guest_session_id)

        email_mismatch = bool(
            command.session_email
            and order.customer_email
            and command.session_email.strip().lower() != order.customer_email.strip().lower()
        )
        if email_mismatch:
            order.add_note(email_mismatch_note(command.session_email, order.customer_email))
            logger.warning(
                "Checkout email differs from order email",
                order_id=str(order.id),
                session_email=command.session_email,
                order_email=order.customer_email,
            )

        order_repo.add(order)

        logger.info(
            "Order paid and stock committed",
            order_id=str(order.id),
            skus=len(demand),
            depleted=[str(s.id) for s in depleted],
        )
        return CheckoutFulfillment(
            order=order,
            sku_ids=list(demand),
            depleted_sku_ids=[str(s.id) for s in depleted],
            cleared_cart_key=cleared_cart_key,
            email_mismatch=email_mismatch,
        )

    @handle(RecordAwaitingPayment)
    def record_awaiting_payment(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)
        if order.await_payment(command.checkout_session_id, command.payment_intent_id):
            order_repo.add(order)
            logger.info(
                "Order awaiting delayed payment",
                order_id=str(order.id),
                payment_intent_id=command.payment_intent_id,
            )
        return order

    @staticmethod
    def _clear_cart(order, guest_session_id):
        """Empty the cart the order came from. Returns its cache key, if any."""
        if order.user_id:
            cart = find_cart(user_id=order.user_id)
            key = cache_keys.user_cart(order.user_id)
        else:
            session_id = guest_session_id or order.guest_session_id
            cart = find_cart(session_id=session_id)
            key = cache_keys.guest_cart(session_id) if session_id else None

        if cart is None:
            return key
        cart.clear()
        current_domain.repository_for(Cart).add(cart)
        return key
