"""Dispute lifecycle: commands and handler.

Every dispute notification carries the full dispute object, so each command
carries the same fields and any of them can create the row if an earlier
notification was lost or arrives later.
"""

from dataclasses import dataclass

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Integer, String
from protean.utils.globals import current_domain

from checkout.dispute.dispute import (
    Dispute,
    DisputeStatus,
    map_gateway_dispute_reason,
    map_gateway_dispute_status,
)
from checkout.domain import checkout
from checkout.emails.money import format_amount
from checkout.order.order import Order, find_order_by_payment_intent

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Dispute")
class OpenDispute:
    dispute_id = String(required=True, max_length=255)
    payment_intent_id = String(required=True, max_length=255)
    charge_id = String(max_length=255)
    amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="eur")
    fee = Integer(default=0, min_value=0)
    reason = String(max_length=50)
    status = String(max_length=50)
    evidence_due_by = DateTime()


@checkout.command(part_of="Dispute")
class SyncDispute:
    dispute_id = String(required=True, max_length=255)
    payment_intent_id = String(required=True, max_length=255)
    charge_id = String(max_length=255)
    amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="eur")
    fee = Integer(default=0, min_value=0)
    reason = String(max_length=50)
    status = String(max_length=50)
    evidence_due_by = DateTime()


@checkout.command(part_of="Dispute")
class CloseDispute:
    dispute_id = String(required=True, max_length=255)
    payment_intent_id = String(required=True, max_length=255)
    charge_id = String(max_length=255)
    amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="eur")
    fee = Integer(default=0, min_value=0)
    reason = String(max_length=50)
    status = String(max_length=50)
    evidence_due_by = DateTime()


@dataclass
class DisputeOutcome:
    dispute: Dispute | None = None
    order: Order | None = None
    created: bool = False
    closed: bool = False
    skipped: bool = False


def opened_note(dispute: Dispute) -> str:
    return (
        f"[DISPUTE OPENED] {dispute.reason_label}: {format_amount(dispute.amount, dispute.currency)} disputed "
        f"(dispute {dispute.dispute_id}). Evidence due by {dispute.evidence_due_by:%Y-%m-%d}."
    )


def closed_note(dispute: Dispute) -> str:
    return f"[DISPUTE CLOSED] Dispute {dispute.dispute_id} closed with outcome {dispute.status}."


@checkout.command_handler(part_of=Dispute)
class DisputeHandler:
    @handle(OpenDispute)
    def open_dispute(self, command):
        order = self._order_for(command)
        if order is None:
            return DisputeOutcome(skipped=True)
        return self._upsert(command, order)

    @handle(SyncDispute)
    def sync_dispute(self, command):
        order = self._order_for(command)
        if order is None:
            return DisputeOutcome(skipped=True)
        return self._upsert(command, order)

    @handle(CloseDispute)
    def close_dispute(self, command):
        order = self._order_for(command)
        if order is None:
            return DisputeOutcome(skipped=True)

        outcome = self._upsert(command, order, mirror_status=False)
        dispute = outcome.dispute
        final_status = map_gateway_dispute_status(command.status)
        if final_status in (DisputeStatus.NEEDS_RESPONSE, DisputeStatus.UNDER_REVIEW):
            logger.warning(
                "Dispute closed with a non-final status, keeping it open",
                dispute_id=command.dispute_id,
                status=command.status,
            )
            return outcome

        if not dispute.close(final_status):
            logger.info("Dispute outcome already recorded", dispute_id=dispute.dispute_id)
            return outcome

        order.add_note(closed_note(dispute))
        if final_status == DisputeStatus.LOST:
            order.record_dispute_lost()
        current_domain.repository_for(Dispute).add(dispute)
        current_domain.repository_for(Order).add(order)

        logger.info(
            "Dispute closed",
            dispute_id=dispute.dispute_id,
            order_id=str(order.id),
            outcome=dispute.status,
        )
        outcome.closed = True
        return outcome

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @staticmethod
    def _order_for(command):
        order = find_order_by_payment_intent(command.payment_intent_id)
        if order is None:
            logger.error(
                "No order for disputed payment, dispute not recorded",
                dispute_id=command.dispute_id,
                payment_intent_id=command.payment_intent_id,
            )
        return order

    @staticmethod
    def _upsert(command, order, mirror_status=True) -> DisputeOutcome:
        """Create the dispute, or mirror the gateway's status onto the existing row."""
        repo = current_domain.repository_for(Dispute)
        status = map_gateway_dispute_status(command.status)
        reason = map_gateway_dispute_reason(command.reason)

        try:
            dispute = repo.get(command.dispute_id)
        except ObjectNotFoundError:
            dispute = None

        if dispute is not None:
            if mirror_status and dispute.is_stale(status):
                logger.info(
                    "Ignoring stale dispute status",
                    dispute_id=dispute.dispute_id,
                    status=dispute.status,
                    gateway_status=command.status,
                )
            if mirror_status and dispute.sync(status, reason):
                repo.add(dispute)
                logger.info("Dispute updated", dispute_id=dispute.dispute_id, status=dispute.status)
            return DisputeOutcome(dispute=dispute, order=order)

        others = repo._dao.query.filter(order_id=str(order.id)).all().items
        if any(other.is_open for other in others):
            raise ValidationError(
                {"dispute": [f"Order {order.id} already has an open dispute, cannot open {command.dispute_id}"]}
            )

        dispute = Dispute.open(
            dispute_id=command.dispute_id,
            order_id=str(order.id),
            payment_intent_id=command.payment_intent_id,
            charge_id=command.charge_id,
            amount=command.amount,
            currency=command.currency,
            fee=command.fee or 0,
            reason=reason,
            status=status if mirror_status else DisputeStatus.NEEDS_RESPONSE,
            evidence_due_by=command.evidence_due_by,
        )
        repo.add(dispute)

        note = opened_note(dispute)
        if not order.has_note(note):
            order.add_note(note)
            current_domain.repository_for(Order).add(order)

        logger.warning(
            "Dispute opened",
            dispute_id=dispute.dispute_id,
            order_id=str(order.id),
            amount=dispute.amount,
            reason=dispute.reason,
        )
        return DisputeOutcome(dispute=dispute, order=order, created=True)
