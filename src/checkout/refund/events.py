"""Domain events for the Refund aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="Refund")
class RefundStatusChanged:
    """A refund moved to a new status."""

    __version__ = "v1"

    refund_id = Identifier(required=True)
    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    amount = Integer(required=True)
    changed_at = DateTime(required=True)


@checkout.event(part_of="Refund")
class RefundFailed:
    """The gateway could not return the money; an operator must act."""

    __version__ = "v1"

    refund_id = Identifier(required=True)
    order_id = Identifier(required=True)
    gateway_refund_id = String()
    failure_reason = String(max_length=500)
    failed_at = DateTime(required=True)
