"""Payment failure and cancellation: commands and handler.

A failed or cancelled payment intent fails the order's payment and cancels
the order. Stock goes back on the shelf only if this order had taken it,
i.e. the order had already reached PAID/PROCESSING.
"""

from dataclasses import dataclass, field

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.order.order import Order, PaymentStatus
from checkout.stock.sku import Sku
from checkout.stock.validation import aggregate_quantities

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Order")
class RecordPaymentFailure:
    order_id = Identifier(required=True)
    payment_intent_id = String(max_length=255)
    failure_code = String(max_length=100)
    decline_code = String(max_length=100)
    failure_message = String(max_length=1000)


@checkout.command(part_of="Order")
class FlagManualRefund:
    """The automatic refund for a failed payment could not be issued."""

    order_id = Identifier(required=True)
    reason = Text(required=True)


@dataclass
class PaymentFailureOutcome:
    order: Order
    already_processed: bool = False
    stock_restored: bool = False
    restored_sku_ids: list[str] = field(default_factory=list)


@checkout.command_handler(part_of=Order)
class PaymentFailureHandler:
    @handle(RecordPaymentFailure)
    def record_payment_failure(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)

        if order.payment_status == PaymentStatus.FAILED.value:
            logger.info("Payment failure already recorded", order_id=str(order.id))
            return PaymentFailureOutcome(order=order, already_processed=True)

        should_restore_stock = order.record_payment_failure(
            payment_intent_id=command.payment_intent_id,
            failure_code=command.failure_code,
            decline_code=command.decline_code,
            failure_message=command.failure_message,
        )

        restored = []
        if should_restore_stock:
            sku_repo = current_domain.repository_for(Sku)
            for sku_id, quantity in aggregate_quantities(order.items).items():
                sku = sku_repo.get(sku_id)
                sku.restore_stock(quantity)
                sku_repo.add(sku)
                restored.append(sku_id)

        order_repo.add(order)

        logger.info(
            "Payment failure recorded",
            order_id=str(order.id),
            failure_code=command.failure_code,
            stock_restored=should_restore_stock,
        )
        return PaymentFailureOutcome(
            order=order,
            stock_restored=should_restore_stock,
            restored_sku_ids=restored,
        )

    @handle(FlagManualRefund)
    def flag_manual_refund(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)
        order.flag_manual_refund(command.reason)
        order_repo.add(order)
        logger.error(
            "Automatic refund failed, manual refund required",
            order_id=str(order.id),
            reason=command.reason,
        )
