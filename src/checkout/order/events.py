"""Domain events for the Order aggregate.

Raised from the Order's state transitions and dispatched when the owning
Unit of Work commits.
"""

from protean.fields import Boolean, DateTime, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="Order")
class OrderPaid:
    """Payment for the order was confirmed and stock was committed."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True)
    total = Integer(required=True)
    currency = String(required=True)
    payment_intent_id = String()
    paid_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderPaymentFailed:
    """The gateway reported a failed or cancelled payment for the order."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    payment_intent_id = String()
    failure_code = String()
    failure_message = String(max_length=1000)
    stock_restored = Boolean(default=False)
    failed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderCancelled:
    """An unpaid order was cancelled (checkout expired or async payment failed)."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderRefundStatusChanged:
    """Completed refunds moved the order's payment status."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    total_refunded = Integer(required=True)
    changed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderNoteAdded:
    """A system note was appended to the order."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    content = String(required=True, max_length=2000)
    added_at = DateTime(required=True)
