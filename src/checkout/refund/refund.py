"""Refund aggregate (CQRS) with its append-only history.

Refunds are created either by an operator inside the application (they carry
our refund id in the gateway metadata), by the automatic refund issued when
a paid order's payment later fails, or directly in the gateway's console (we
learn about them only from notifications).

State Machine (mirrors the gateway):
    PENDING → APPROVED → COMPLETED
    PENDING/APPROVED → FAILED | CANCELLED

COMPLETED, FAILED and CANCELLED are final: a late notification carrying an
older pending status never moves a refund back.

Every status change appends a RefundHistory row; history is never edited.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text

from checkout.domain import checkout
from checkout.refund.events import RefundFailed, RefundStatusChanged


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class RefundStatus(Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class RefundOrigin(Enum):
    APP = "APP"
    GATEWAY_CONSOLE = "GATEWAY_CONSOLE"
    AUTOMATIC = "AUTOMATIC"


class RefundAction(Enum):
    CREATED = "CREATED"
    LINKED = "LINKED"
    APPROVED = "APPROVED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    RESET = "RESET"


_GATEWAY_STATUS_MAP = {
    "succeeded": RefundStatus.COMPLETED,
    "pending": RefundStatus.APPROVED,
    "failed": RefundStatus.FAILED,
    "canceled": RefundStatus.CANCELLED,
}

_FINAL_STATUSES = frozenset({RefundStatus.COMPLETED, RefundStatus.FAILED, RefundStatus.CANCELLED})

_ACTION_FOR_STATUS = {
    RefundStatus.PENDING: RefundAction.RESET,
    RefundStatus.APPROVED: RefundAction.APPROVED,
    RefundStatus.COMPLETED: RefundAction.COMPLETED,
    RefundStatus.FAILED: RefundAction.FAILED,
    RefundStatus.CANCELLED: RefundAction.CANCELLED,
}


def map_gateway_refund_status(gateway_status: str | None) -> RefundStatus:
    """Translate the gateway's refund status; anything unknown is PENDING."""
    return _GATEWAY_STATUS_MAP.get((gateway_status or "").lower(), RefundStatus.PENDING)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@checkout.entity(part_of="Refund")
class RefundHistory:
    """One audit row per refund status change."""

    action = String(required=True, choices=RefundAction)
    note = Text()
    created_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@checkout.aggregate
class Refund:
    order_id = Identifier(required=True)
    amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="eur")
    reason = String(max_length=100, default="OTHER")
    status = String(choices=RefundStatus, default=RefundStatus.PENDING.value)
    origin = String(choices=RefundOrigin, default=RefundOrigin.APP.value)
    gateway_refund_id = String(max_length=255)
    failure_reason = String(max_length=500)
    note = Text()
    history = HasMany(RefundHistory)
    processed_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_id,
        amount,
        currency="eur",
        reason="OTHER",
        origin=RefundOrigin.APP,
        gateway_refund_id=None,
        status=RefundStatus.PENDING,
        note=None,
    ):
        now = datetime.now(UTC)
        refund = cls(
            order_id=order_id,
            amount=amount,
            currency=currency,
            reason=reason,
            origin=origin.value,
            gateway_refund_id=gateway_refund_id,
            status=status.value,
            note=note,
            processed_at=now if gateway_refund_id else None,
            created_at=now,
            updated_at=now,
        )
        refund._append_history(RefundAction.CREATED, note)
        if status != RefundStatus.PENDING:
            refund._append_history(_ACTION_FOR_STATUS[status], f"Created with gateway status {status.value}")
        return refund

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_completed(self) -> bool:
        return self.status == RefundStatus.COMPLETED.value

    @property
    def is_failed(self) -> bool:
        return self.status == RefundStatus.FAILED.value

    @property
    def is_final(self) -> bool:
        return RefundStatus(self.status) in _FINAL_STATUSES

    def is_stale(self, status: RefundStatus) -> bool:
        """True when ``status`` would move a finished refund back to an open one."""
        return self.is_final and status not in _FINAL_STATUSES

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def link_gateway_refund(self, gateway_refund_id: str) -> None:
        if self.gateway_refund_id == gateway_refund_id:
            return
        if self.gateway_refund_id:
            raise ValidationError(
                {"gateway_refund_id": [f"Refund is already linked to {self.gateway_refund_id}"]}
            )
        self.gateway_refund_id = gateway_refund_id
        self.processed_at = datetime.now(UTC)
        self._append_history(RefundAction.LINKED, f"Linked to gateway refund {gateway_refund_id}")

    def transition_to(self, status: RefundStatus, note: str | None = None) -> bool:
        """Move to ``status`` and record it. Returns False when nothing changed."""
        if self.status == status.value or self.is_stale(status):
            return False

        previous = self.status
        now = datetime.now(UTC)
        self.status = status.value
        self.updated_at = now
        self._append_history(_ACTION_FOR_STATUS[status], note)
        self.raise_(
            RefundStatusChanged(
                refund_id=str(self.id),
                order_id=str(self.order_id),
                previous_status=previous,
                new_status=status.value,
                amount=self.amount,
                changed_at=now,
            )
        )
        return True

    def mark_failed(self, failure_reason: str) -> bool:
        if self.is_failed:
            return False

        self.failure_reason = failure_reason
        self.transition_to(RefundStatus.FAILED, f"Gateway reported failure: {failure_reason}")
        self.raise_(
            RefundFailed(
                refund_id=str(self.id),
                order_id=str(self.order_id),
                gateway_refund_id=self.gateway_refund_id,
                failure_reason=failure_reason,
                failed_at=self.updated_at,
            )
        )
        return True

    def _append_history(self, action: RefundAction, note: str | None) -> None:
        self.add_history(RefundHistory(action=action.value, note=note, created_at=datetime.now(UTC)))
