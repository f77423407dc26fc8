"""Gateway event envelope and the closed set of event kinds we act on."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class EventKind(Enum):
    CHECKOUT_COMPLETED = "checkout.session.completed"
    CHECKOUT_EXPIRED = "checkout.session.expired"
    CHECKOUT_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
    CHECKOUT_ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
    PAYMENT_INTENT_CANCELED = "payment_intent.canceled"
    CHARGE_REFUNDED = "charge.refunded"
    REFUND_CREATED = "refund.created"
    REFUND_UPDATED = "refund.updated"
    REFUND_FAILED = "refund.failed"
    DISPUTE_CREATED = "charge.dispute.created"
    DISPUTE_UPDATED = "charge.dispute.updated"
    DISPUTE_CLOSED = "charge.dispute.closed"
    DISPUTE_FUNDS_WITHDRAWN = "charge.dispute.funds_withdrawn"
    DISPUTE_FUNDS_REINSTATED = "charge.dispute.funds_reinstated"
    UNSUPPORTED = "unsupported"

    @classmethod
    def from_type(cls, event_type: str) -> "EventKind":
        try:
            kind = cls(event_type)
        except ValueError:
            return cls.UNSUPPORTED
        return kind


@dataclass(frozen=True)
class GatewayEvent:
    id: str
    type: str
    payload: dict
    created: datetime | None = None
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def kind(self) -> EventKind:
        return EventKind.from_type(self.type)

    @classmethod
    def from_dict(cls, data: dict) -> "GatewayEvent":
        created = data.get("created")
        return cls(
            id=data["id"],
            type=data["type"],
            payload=(data.get("data") or {}).get("object") or {},
            created=datetime.fromtimestamp(created, UTC) if created is not None else None,
            raw=data,
        )
