"""Dispute aggregate (CQRS): a chargeback raised by the cardholder's bank.

Identity is the gateway's dispute id, so every notification about the same
dispute lands on the same row no matter how often it is delivered. The
status mirrors the gateway's; we never drive it ourselves.

    NEEDS_RESPONSE ⇄ UNDER_REVIEW → WON | LOST | ACCEPTED | CHARGE_REFUNDED

Once an outcome is recorded, a late update carrying an open status is ignored.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String

from checkout.dispute.events import DisputeClosed, DisputeOpened, DisputeStatusChanged
from checkout.domain import checkout

EVIDENCE_WINDOW = timedelta(days=7)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class DisputeStatus(Enum):
    NEEDS_RESPONSE = "NEEDS_RESPONSE"
    UNDER_REVIEW = "UNDER_REVIEW"
    WON = "WON"
    LOST = "LOST"
    ACCEPTED = "ACCEPTED"
    CHARGE_REFUNDED = "CHARGE_REFUNDED"


class DisputeReason(Enum):
    DUPLICATE = "DUPLICATE"
    FRAUDULENT = "FRAUDULENT"
    SUBSCRIPTION_CANCELED = "SUBSCRIPTION_CANCELED"
    PRODUCT_UNACCEPTABLE = "PRODUCT_UNACCEPTABLE"
    PRODUCT_NOT_RECEIVED = "PRODUCT_NOT_RECEIVED"
    UNRECOGNIZED = "UNRECOGNIZED"
    CREDIT_NOT_PROCESSED = "CREDIT_NOT_PROCESSED"
    GENERAL = "GENERAL"


_OPEN_STATUSES = {DisputeStatus.NEEDS_RESPONSE, DisputeStatus.UNDER_REVIEW}

_GATEWAY_STATUS_MAP = {
    "needs_response": DisputeStatus.NEEDS_RESPONSE,
    "warning_needs_response": DisputeStatus.NEEDS_RESPONSE,
    "under_review": DisputeStatus.UNDER_REVIEW,
    "warning_under_review": DisputeStatus.UNDER_REVIEW,
    "won": DisputeStatus.WON,
    "warning_closed": DisputeStatus.WON,
    "lost": DisputeStatus.LOST,
    "accepted": DisputeStatus.ACCEPTED,
    "charge_refunded": DisputeStatus.CHARGE_REFUNDED,
}

REASON_LABELS = {
    DisputeReason.DUPLICATE: "Duplicate charge",
    DisputeReason.FRAUDULENT: "Fraudulent transaction",
    DisputeReason.SUBSCRIPTION_CANCELED: "Subscription cancelled",
    DisputeReason.PRODUCT_UNACCEPTABLE: "Product unacceptable",
    DisputeReason.PRODUCT_NOT_RECEIVED: "Product not received",
    DisputeReason.UNRECOGNIZED: "Unrecognized charge",
    DisputeReason.CREDIT_NOT_PROCESSED: "Credit not processed",
    DisputeReason.GENERAL: "General dispute",
}


def map_gateway_dispute_status(gateway_status: str | None) -> DisputeStatus:
    return _GATEWAY_STATUS_MAP.get((gateway_status or "").lower(), DisputeStatus.NEEDS_RESPONSE)


def map_gateway_dispute_reason(gateway_reason: str | None) -> DisputeReason:
    try:
        return DisputeReason((gateway_reason or "").upper())
    except ValueError:
        return DisputeReason.GENERAL


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@checkout.aggregate
class Dispute:
    dispute_id = Identifier(identifier=True, required=True)
    order_id = Identifier(required=True)
    payment_intent_id = String(required=True, max_length=255)
    charge_id = String(max_length=255)
    amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="eur")
    fee = Integer(default=0, min_value=0)
    reason = String(choices=DisputeReason, default=DisputeReason.GENERAL.value)
    status = String(choices=DisputeStatus, default=DisputeStatus.NEEDS_RESPONSE.value)
    evidence_due_by = DateTime()
    resolved_at = DateTime()
    opened_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def open(
        cls,
        dispute_id,
        order_id,
        payment_intent_id,
        amount,
        currency="eur",
        reason=DisputeReason.GENERAL,
        status=DisputeStatus.NEEDS_RESPONSE,
        evidence_due_by=None,
        charge_id=None,
        fee=0,
    ):
        now = datetime.now(UTC)
        dispute = cls(
            dispute_id=dispute_id,
            order_id=order_id,
            payment_intent_id=payment_intent_id,
            charge_id=charge_id,
            amount=amount,
            currency=currency,
            fee=fee,
            reason=reason.value,
            status=status.value,
            evidence_due_by=evidence_due_by or now + EVIDENCE_WINDOW,
            opened_at=now,
            updated_at=now,
        )
        dispute.raise_(
            DisputeOpened(
                dispute_id=dispute_id,
                order_id=str(order_id),
                amount=amount,
                reason=reason.value,
                evidence_due_by=dispute.evidence_due_by,
                opened_at=now,
            )
        )
        return dispute

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_open(self) -> bool:
        return DisputeStatus(self.status) in _OPEN_STATUSES

    def is_stale(self, status: DisputeStatus) -> bool:
        """True when ``status`` would reopen a dispute that already has an outcome."""
        return self.resolved_at is not None and status in _OPEN_STATUSES

    @property
    def reason_label(self) -> str:
        return REASON_LABELS[DisputeReason(self.reason)]

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def sync(self, status: DisputeStatus, reason: DisputeReason | None = None) -> bool:
        """Mirror the gateway's current view. Returns True when anything changed."""
        changed = False
        if reason is not None and self.reason != reason.value:
            self.reason = reason.value
            changed = True

        previous = self.status
        if previous != status.value and not self.is_stale(status):
            self.status = status.value
            changed = True
            self.raise_(
                DisputeStatusChanged(
                    dispute_id=self.dispute_id,
                    order_id=str(self.order_id),
                    previous_status=previous,
                    new_status=status.value,
                    changed_at=datetime.now(UTC),
                )
            )

        if changed:
            self.updated_at = datetime.now(UTC)
        return changed

    def close(self, final_status: DisputeStatus) -> bool:
        """Record the final outcome. Returns False if it was already recorded."""
        if final_status in _OPEN_STATUSES:
            raise ValidationError({"status": [f"{final_status.value} is not a final dispute status"]})
        if self.resolved_at is not None and self.status == final_status.value:
            return False

        now = datetime.now(UTC)
        self.status = final_status.value
        self.resolved_at = now
        self.updated_at = now
        self.raise_(
            DisputeClosed(
                dispute_id=self.dispute_id,
                order_id=str(self.order_id),
                outcome=final_status.value,
                resolved_at=now,
            )
        )
        return True
