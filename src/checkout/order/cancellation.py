"""Cancellation of unpaid orders: command and handler.

Used when a checkout session expires and when an asynchronous payment method
(bank debit, voucher) finally fails. Only an order still awaiting payment is
cancelled; its discount usages are released in the same Unit of Work so a
code is never released for an order that was paid in the meantime.
"""

from dataclasses import dataclass, field

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.discount.discount import release_discount_usages
from checkout.domain import checkout
from checkout.order.order import CancellationReason, Order, PaymentStatus

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Order")
class CancelPendingOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, choices=CancellationReason)


@dataclass
class CancellationOutcome:
    order: Order
    cancelled: bool = False
    released_discount_ids: list[str] = field(default_factory=list)


@checkout.command_handler(part_of=Order)
class CancelPendingOrderHandler:
    @handle(CancelPendingOrder)
    def cancel_pending_order(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)

        if order.payment_status != PaymentStatus.PENDING.value:
            logger.info(
                "Order no longer awaiting payment, not cancelling",
                order_id=str(order.id),
                payment_status=order.payment_status,
                reason=command.reason,
            )
            return CancellationOutcome(order=order)

        order.cancel_unpaid(CancellationReason(command.reason))
        released = release_discount_usages(order.id)
        order_repo.add(order)

        logger.info(
            "Unpaid order cancelled",
            order_id=str(order.id),
            reason=command.reason,
            released_discounts=len(released),
        )
        return CancellationOutcome(order=order, cancelled=True, released_discount_ids=released)
