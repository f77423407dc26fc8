"""Order aggregate (CQRS): the customer's purchase and its payment state.

An order is created at checkout initiation (PENDING/PENDING) and from then on
is only moved by gateway notifications:

    payment:  PENDING → PAID → PARTIALLY_REFUNDED → REFUNDED
              PENDING → FAILED           (payment failed, checkout expired)
              FAILED  → PAID             (declined card, then paid in the same session)
              PAID    → FAILED           (late failure/cancellation, stock restored)
    status:   PENDING → PROCESSING → SHIPPED → DELIVERED
              PENDING/PROCESSING → CANCELLED

Amounts are integer minor units (cents). Orders are never deleted; the item
snapshot and notes are the audit trail of what was bought and what happened.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.order.events import (
    OrderCancelled,
    OrderNoteAdded,
    OrderPaid,
    OrderPaymentFailed,
    OrderRefundStatusChanged,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class CancellationReason(Enum):
    CHECKOUT_EXPIRED = "CHECKOUT_EXPIRED"
    ASYNC_PAYMENT_FAILED = "ASYNC_PAYMENT_FAILED"


# A declined attempt fails the payment, but the customer may still complete
# the same checkout session with another card.
_PAYABLE_STATES = {PaymentStatus.PENDING.value, PaymentStatus.FAILED.value}
_CONFIRMED_STATES = {
    PaymentStatus.PAID.value,
    PaymentStatus.PARTIALLY_REFUNDED.value,
    PaymentStatus.REFUNDED.value,
}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@checkout.value_object(part_of="Order")
class ShippingAddress:
    """Delivery address captured at checkout. Immutable once on the order."""

    first_name = String(max_length=100)
    last_name = String(max_length=100)
    address1 = String(required=True, max_length=255)
    address2 = String(max_length=255)
    postal_code = String(required=True, max_length=20)
    city = String(required=True, max_length=100)
    country = String(required=True, max_length=2)
    phone = String(max_length=30)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@checkout.entity(part_of="Order")
class OrderItem:
    """Snapshot of a purchased SKU.

    Title and attributes are copied at checkout so that later catalogue edits
    do not rewrite history. ``sku_id`` is kept only to re-validate and move
    stock.
    """

    sku_id = Identifier(required=True)
    product_title = String(required=True, max_length=255)
    sku_color = String(max_length=50)
    sku_material = String(max_length=50)
    sku_size = String(max_length=20)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)


@checkout.entity(part_of="Order")
class OrderNote:
    """System-authored note shown in the order's admin timeline."""

    content = Text(required=True)
    author = String(max_length=50, default="system")
    created_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@checkout.aggregate
class Order:
    order_number = String(required=True, max_length=30)
    user_id = Identifier()  # None for guest checkouts
    guest_session_id = String(max_length=255)
    customer_email = String(max_length=254)
    customer_name = String(max_length=200)

    subtotal = Integer(default=0, min_value=0)
    discount_amount = Integer(default=0, min_value=0)
    shipping_cost = Integer(default=0, min_value=0)
    tax_amount = Integer(default=0, min_value=0)
    total = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="eur")

    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)

    shipping_address = ValueObject(ShippingAddress)
    shipping_method = String(max_length=50)
    shipping_carrier = String(max_length=50)
    shipping_rate_id = String(max_length=255)

    checkout_session_id = String(max_length=255)
    payment_intent_id = String(max_length=255)
    gateway_customer_id = String(max_length=255)

    payment_failure_code = String(max_length=100)
    payment_decline_code = String(max_length=100)
    payment_failure_message = String(max_length=1000)
    manual_refund_required = Boolean(default=False)

    items = HasMany(OrderItem)
    notes = HasMany(OrderNote)

    paid_at = DateTime()
    cancelled_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def paid_order_must_have_items(self):
        if self.payment_status == PaymentStatus.PAID.value and not self.items:
            raise ValidationError({"items": ["A paid order must contain at least one item"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        items_data,
        total,
        customer_email=None,
        customer_name=None,
        user_id=None,
        guest_session_id=None,
        subtotal=None,
        discount_amount=0,
        shipping_cost=0,
        tax_amount=0,
        currency="eur",
        shipping_address=None,
    ):
        """Create a PENDING order at checkout initiation.

        ``items_data`` is a list of dicts with sku_id, product_title,
        quantity, unit_price and optional sku_color/sku_material/sku_size.
        """
        now = datetime.now(UTC)
        order = cls(
            order_number=f"ORD-{now:%Y%m%d}-{uuid4().hex[:6].upper()}",
            user_id=user_id,
            guest_session_id=guest_session_id,
            customer_email=customer_email,
            customer_name=customer_name,
            subtotal=subtotal if subtotal is not None else sum(i["unit_price"] * i["quantity"] for i in items_data),
            discount_amount=discount_amount,
            shipping_cost=shipping_cost,
            tax_amount=tax_amount,
            total=total,
            currency=currency,
            shipping_address=ShippingAddress(**shipping_address) if shipping_address else None,
            created_at=now,
            updated_at=now,
        )
        for item in items_data:
            order.add_items(OrderItem(**item))
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID.value

    @property
    def payment_confirmed(self) -> bool:
        """Paid at some point, including orders refunded since."""
        return self.payment_status in _CONFIRMED_STATES

    @property
    def was_paid(self) -> bool:
        """Paid at some point, even if the payment later failed or was refunded."""
        return self.payment_confirmed or self.paid_at is not None

    @property
    def stock_was_decremented(self) -> bool:
        """Stock is taken only in the transaction that flips the order to PAID."""
        return self.status == OrderStatus.PROCESSING.value or self.payment_status == PaymentStatus.PAID.value

    # -------------------------------------------------------------------
    # Payment lifecycle
    # -------------------------------------------------------------------
    def mark_paid(
        self,
        checkout_session_id,
        payment_intent_id=None,
        gateway_customer_id=None,
        shipping_cost=None,
        shipping_method=None,
        shipping_carrier=None,
        shipping_rate_id=None,
    ):
        if self.payment_status not in _PAYABLE_STATES:
            raise ValidationError({"payment_status": [f"Cannot mark a {self.payment_status} order as paid"]})

        now = datetime.now(UTC)
        self.status = OrderStatus.PROCESSING.value
        self.payment_status = PaymentStatus.PAID.value
        self.paid_at = now
        self.checkout_session_id = checkout_session_id
        self.payment_intent_id = payment_intent_id
        self.gateway_customer_id = gateway_customer_id
        if shipping_cost is not None:
            self.shipping_cost = shipping_cost
        self.shipping_method = shipping_method
        self.shipping_carrier = shipping_carrier
        self.shipping_rate_id = shipping_rate_id
        self.updated_at = now

        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                order_number=self.order_number,
                total=self.total,
                currency=self.currency,
                payment_intent_id=payment_intent_id,
                paid_at=now,
            )
        )

    def await_payment(self, checkout_session_id, payment_intent_id=None) -> bool:
        """Remember the gateway references of a checkout still settling. Returns False if not pending."""
        if self.payment_status != PaymentStatus.PENDING.value:
            return False
        if self.checkout_session_id == checkout_session_id and self.payment_intent_id == payment_intent_id:
            return False

        self.checkout_session_id = checkout_session_id
        self.payment_intent_id = payment_intent_id
        self.updated_at = datetime.now(UTC)
        return True

    def record_payment_failure(
        self,
        payment_intent_id=None,
        failure_code=None,
        decline_code=None,
        failure_message=None,
    ):
        """Fail the payment and cancel the order.

        Returns whether stock had been taken for this order, i.e. whether the
        caller must put it back.
        """
        if self.payment_status == PaymentStatus.FAILED.value:
            raise ValidationError({"payment_status": ["Payment failure was already recorded"]})

        should_restore_stock = self.stock_was_decremented
        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.FAILED.value
        self.status = OrderStatus.CANCELLED.value
        if payment_intent_id:
            self.payment_intent_id = payment_intent_id
        self.payment_failure_code = failure_code
        self.payment_decline_code = decline_code
        self.payment_failure_message = failure_message
        self.cancelled_at = now
        self.updated_at = now

        self.raise_(
            OrderPaymentFailed(
                order_id=str(self.id),
                payment_intent_id=payment_intent_id,
                failure_code=failure_code,
                failure_message=failure_message,
                stock_restored=should_restore_stock,
                failed_at=now,
            )
        )
        return should_restore_stock

    def cancel_unpaid(self, reason: CancellationReason):
        if self.payment_status != PaymentStatus.PENDING.value:
            raise ValidationError({"payment_status": ["Only orders awaiting payment can be cancelled"]})

        now = datetime.now(UTC)
        self.status = OrderStatus.CANCELLED.value
        self.payment_status = PaymentStatus.FAILED.value
        self.cancelled_at = now
        self.updated_at = now

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                reason=reason.value,
                cancelled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Refund derivation
    # -------------------------------------------------------------------
    def apply_refunds(self, total_refunded: int) -> bool:
        """Derive the payment status from the sum of completed refunds.

        REFUNDED is sticky: a later, smaller sum never downgrades it.
        Returns True when the payment status changed.
        """
        if total_refunded > self.total:
            raise ValidationError(
                {"refunds": [f"Completed refunds ({total_refunded}) exceed the order total ({self.total})"]}
            )
        if total_refunded <= 0 or self.payment_status == PaymentStatus.REFUNDED.value:
            return False

        if total_refunded >= self.total:
            new_status = PaymentStatus.REFUNDED
        else:
            new_status = PaymentStatus.PARTIALLY_REFUNDED

        return self._change_refund_status(new_status, total_refunded)

    def record_dispute_lost(self) -> bool:
        """A lost dispute means the money went back to the cardholder."""
        if self.payment_status == PaymentStatus.REFUNDED.value:
            return False
        return self._change_refund_status(PaymentStatus.REFUNDED, self.total)

    def _change_refund_status(self, new_status: PaymentStatus, total_refunded: int) -> bool:
        previous = self.payment_status
        if previous == new_status.value:
            return False

        now = datetime.now(UTC)
        self.payment_status = new_status.value
        self.updated_at = now
        self.raise_(
            OrderRefundStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=new_status.value,
                total_refunded=total_refunded,
                changed_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Notes and escalation
    # -------------------------------------------------------------------
    def add_note(self, content: str, author: str = "system") -> None:
        now = datetime.now(UTC)
        self.add_notes(OrderNote(content=content, author=author, created_at=now))
        self.updated_at = now
        self.raise_(OrderNoteAdded(order_id=str(self.id), content=content[:2000], added_at=now))

    def has_note(self, content: str) -> bool:
        return any(note.content == content for note in self.notes)

    def flag_manual_refund(self, reason: str) -> None:
        """Automatic refund could not be issued; an operator has to do it."""
        if self.manual_refund_required:
            return
        self.manual_refund_required = True
        self.add_note(f"[REFUND REQUIRED] Automatic refund failed: {reason}. Refund manually in the gateway.")


def find_order_by_payment_intent(payment_intent_id: str) -> Order | None:
    orders = (
        current_domain.repository_for(Order)._dao.query.filter(payment_intent_id=payment_intent_id).all().items
    )
    return orders[0] if orders else None
