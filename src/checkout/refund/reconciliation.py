"""Refund reconciliation: keeps local refunds in step with the gateway.

Three entry points, one command each:

* ``ReconcileChargeRefunds``: a charge reports its full list of refunds.
  Each gateway refund is matched to a local one (by gateway id, then by the
  local refund id we put in its metadata) or recorded as a refund made from
  the gateway console. The order's payment status is then derived from the
  sum of completed refunds.
* ``SyncRefund``: a single refund was created or changed status.
* ``MarkRefundFailed``: the gateway gave up on a refund. Never retried.

All steps for one charge are planned first, then applied one after the other
in the same Unit of Work, so either every refund of the charge is reconciled
or none is. They are not run concurrently: they share one transaction and the
order total is derived once all of them are applied.
"""

import json
from dataclasses import dataclass, field
from enum import Enum

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.order.order import Order, find_order_by_payment_intent
from checkout.refund.refund import (
    Refund,
    RefundOrigin,
    RefundStatus,
    map_gateway_refund_status,
)

logger = structlog.get_logger(__name__)

GATEWAY_CONSOLE_NOTE = "Refund made from the gateway dashboard"
AUTOMATIC_NOTE = "Automatic refund of a payment that failed after capture"


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class GatewayRefund:
    """The parts of a gateway refund object we reconcile on."""

    id: str
    amount: int
    currency: str = "eur"
    status: str | None = None
    reason: str | None = None
    refund_id: str | None = None  # our id, from metadata
    failure_reason: str | None = None
    automatic: bool = False  # issued by us after a failed payment

    @classmethod
    def from_payload(cls, payload: dict) -> "GatewayRefund":
        metadata = payload.get("metadata") or {}
        return cls(
            id=payload["id"],
            amount=payload.get("amount") or 0,
            currency=payload.get("currency") or "eur",
            status=payload.get("status"),
            reason=payload.get("reason"),
            refund_id=metadata.get("refund_id"),
            failure_reason=payload.get("failure_reason"),
            automatic=bool(metadata.get("auto_refund")),
        )


class StepKind(Enum):
    COMPLETE_LINKED = "COMPLETE_LINKED"
    LINK_LOCAL = "LINK_LOCAL"
    CREATE_EXTERNAL = "CREATE_EXTERNAL"


@dataclass(frozen=True)
class ReconciliationStep:
    kind: StepKind
    gateway_refund: GatewayRefund
    refund_id: str | None = None


def plan_charge_refunds(gateway_refunds: list[GatewayRefund], local_refunds: list[Refund]) -> list[ReconciliationStep]:
    """Decide what to do with each gateway refund, without touching anything."""
    by_gateway_id = {r.gateway_refund_id: r for r in local_refunds if r.gateway_refund_id}
    by_id = {str(r.id): r for r in local_refunds}

    steps = []
    for gateway_refund in gateway_refunds:
        linked = by_gateway_id.get(gateway_refund.id)
        if linked is not None:
            mapped = map_gateway_refund_status(gateway_refund.status)
            if mapped == RefundStatus.COMPLETED and not linked.is_completed:
                steps.append(ReconciliationStep(StepKind.COMPLETE_LINKED, gateway_refund, str(linked.id)))
            continue

        local = by_id.get(gateway_refund.refund_id) if gateway_refund.refund_id else None
        if local is not None and not local.gateway_refund_id:
            steps.append(ReconciliationStep(StepKind.LINK_LOCAL, gateway_refund, str(local.id)))
            continue

        if gateway_refund.refund_id:
            logger.warning(
                "Refund metadata points to an unknown local refund",
                gateway_refund_id=gateway_refund.id,
                refund_id=gateway_refund.refund_id,
            )
        steps.append(ReconciliationStep(StepKind.CREATE_EXTERNAL, gateway_refund))
    return steps


def completed_total(refunds: list[Refund]) -> int:
    return sum(r.amount for r in refunds if r.is_completed)


def _refund_reason(gateway_reason: str | None) -> str:
    return (gateway_reason or "OTHER").upper()


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass
class ChargeReconciliation:
    order: Order
    steps: list[ReconciliationStep] = field(default_factory=list)
    newly_completed: list[Refund] = field(default_factory=list)
    total_refunded: int = 0
    order_status_changed: bool = False
    latest_reason: str | None = None


@dataclass
class RefundSync:
    refund: Refund
    order: Order | None = None
    changed: bool = False
    completed_now: bool = False
    total_refunded: int = 0


@dataclass
class RefundFailure:
    refund: Refund
    already_processed: bool = False


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@checkout.command(part_of="Refund")
class ReconcileChargeRefunds:
    payment_intent_id = String(required=True, max_length=255)
    charge_id = String(max_length=255)
    amount_refunded = Integer(min_value=0)
    refunds = Text(required=True)  # JSON list of gateway refund objects


@checkout.command(part_of="Refund")
class SyncRefund:
    gateway_refund_id = String(required=True, max_length=255)
    refund_id = Identifier()  # our id, from the gateway metadata
    status = String(max_length=50)


@checkout.command(part_of="Refund")
class MarkRefundFailed:
    gateway_refund_id = String(required=True, max_length=255)
    refund_id = Identifier()
    failure_reason = String(max_length=500, default="Unknown failure")


def find_refund(gateway_refund_id: str | None, refund_id: str | None) -> Refund | None:
    """Find by gateway id first, then by our id from metadata (linking it)."""
    repo = current_domain.repository_for(Refund)
    if gateway_refund_id:
        rows = repo._dao.query.filter(gateway_refund_id=gateway_refund_id).all().items
        if rows:
            return rows[0]

    if not refund_id:
        return None
    try:
        refund = repo.get(refund_id)
    except ObjectNotFoundError:
        return None
    if gateway_refund_id and not refund.gateway_refund_id:
        refund.link_gateway_refund(gateway_refund_id)
    return refund


def _order_refunds(order_id) -> list[Refund]:
    return current_domain.repository_for(Refund)._dao.query.filter(order_id=str(order_id)).all().items


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------
@checkout.command_handler(part_of=Refund)
class RefundReconciliationHandler:
    @handle(ReconcileChargeRefunds)
    def reconcile_charge_refunds(self, command):
        order = find_order_by_payment_intent(command.payment_intent_id)
        if order is None:
            logger.warning(
                "No order for refunded charge",
                payment_intent_id=command.payment_intent_id,
                charge_id=command.charge_id,
            )
            return None

        refund_repo = current_domain.repository_for(Refund)
        local_refunds = _order_refunds(order.id)
        gateway_refunds = [GatewayRefund.from_payload(p) for p in json.loads(command.refunds)]
        steps = plan_charge_refunds(gateway_refunds, local_refunds)

        by_id = {str(r.id): r for r in local_refunds}
        touched: list[Refund] = []
        newly_completed: list[Refund] = []
        for step in steps:
            gateway_refund = step.gateway_refund
            mapped = map_gateway_refund_status(gateway_refund.status)

            if step.kind == StepKind.COMPLETE_LINKED:
                refund = by_id[step.refund_id]
                changed = refund.transition_to(RefundStatus.COMPLETED, "Confirmed by refunded charge")
            elif step.kind == StepKind.LINK_LOCAL:
                refund = by_id[step.refund_id]
                refund.link_gateway_refund(gateway_refund.id)
                changed = refund.transition_to(mapped, f"Gateway status: {gateway_refund.status}")
            else:
                refund = Refund.create(
                    order_id=str(order.id),
                    amount=gateway_refund.amount,
                    currency=gateway_refund.currency,
                    reason=_refund_reason(gateway_refund.reason),
                    origin=RefundOrigin.AUTOMATIC if gateway_refund.automatic else RefundOrigin.GATEWAY_CONSOLE,
                    gateway_refund_id=gateway_refund.id,
                    status=mapped,
                    note=AUTOMATIC_NOTE if gateway_refund.automatic else GATEWAY_CONSOLE_NOTE,
                )
                local_refunds.append(refund)
                changed = True

            touched.append(refund)
            if changed and refund.is_completed:
                newly_completed.append(refund)

        total_refunded = completed_total(local_refunds)
        order_status_changed = order.apply_refunds(total_refunded)

        for refund in touched:
            refund_repo.add(refund)
        if order_status_changed:
            current_domain.repository_for(Order).add(order)

        logger.info(
            "Charge refunds reconciled",
            order_id=str(order.id),
            steps=[s.kind.value for s in steps],
            total_refunded=total_refunded,
            payment_status=order.payment_status,
        )
        latest = gateway_refunds[0] if gateway_refunds else None
        return ChargeReconciliation(
            order=order,
            steps=steps,
            newly_completed=newly_completed,
            total_refunded=total_refunded,
            order_status_changed=order_status_changed,
            latest_reason=latest.reason if latest else None,
        )

    @handle(SyncRefund)
    def sync_refund(self, command):
        refund = find_refund(command.gateway_refund_id, command.refund_id)
        if refund is None:
            logger.info(
                "Refund not found locally, it may have been made from the gateway dashboard",
                gateway_refund_id=command.gateway_refund_id,
            )
            return None

        refund_repo = current_domain.repository_for(Refund)
        mapped = map_gateway_refund_status(command.status)
        if refund.is_stale(mapped):
            logger.info(
                "Ignoring stale refund status",
                refund_id=str(refund.id),
                gateway_refund_id=command.gateway_refund_id,
                status=refund.status,
                gateway_status=command.status,
            )
            refund_repo.add(refund)
            return RefundSync(refund=refund, changed=False)

        changed = refund.transition_to(mapped, f"Gateway status: {command.status}")
        refund_repo.add(refund)

        result = RefundSync(refund=refund, changed=changed)
        if changed and mapped == RefundStatus.COMPLETED:
            order_repo = current_domain.repository_for(Order)
            order = order_repo.get(refund.order_id)
            others = [r for r in _order_refunds(order.id) if str(r.id) != str(refund.id)]
            result.order = order
            result.completed_now = True
            result.total_refunded = completed_total([*others, refund])
            if order.apply_refunds(result.total_refunded):
                order_repo.add(order)

        logger.info(
            "Refund synchronised",
            refund_id=str(refund.id),
            gateway_refund_id=command.gateway_refund_id,
            status=refund.status,
            changed=changed,
        )
        return result

    @handle(MarkRefundFailed)
    def mark_refund_failed(self, command):
        refund = find_refund(command.gateway_refund_id, command.refund_id)
        if refund is None:
            logger.warning(
                "Failed refund not found locally",
                gateway_refund_id=command.gateway_refund_id,
            )
            return None

        if refund.is_failed:
            logger.info("Refund failure already recorded", refund_id=str(refund.id))
            return RefundFailure(refund=refund, already_processed=True)

        refund.mark_failed(command.failure_reason or "Unknown failure")
        current_domain.repository_for(Refund).add(refund)

        logger.error(
            "Refund failed at the gateway",
            refund_id=str(refund.id),
            order_id=str(refund.order_id),
            failure_reason=command.failure_reason,
        )
        return RefundFailure(refund=refund)
