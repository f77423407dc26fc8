"""Domain events for the Dispute aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="Dispute")
class DisputeOpened:
    """A chargeback was filed against one of our orders."""

    __version__ = "v1"

    dispute_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True)
    reason = String(required=True)
    evidence_due_by = DateTime()
    opened_at = DateTime(required=True)


@checkout.event(part_of="Dispute")
class DisputeStatusChanged:
    """The gateway moved the dispute to another status."""

    __version__ = "v1"

    dispute_id = Identifier(required=True)
    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@checkout.event(part_of="Dispute")
class DisputeClosed:
    """The dispute reached its final outcome."""

    __version__ = "v1"

    dispute_id = Identifier(required=True)
    order_id = Identifier(required=True)
    outcome = String(required=True)
    resolved_at = DateTime(required=True)
