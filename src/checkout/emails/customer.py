"""Customer-facing email templates."""

from checkout.emails.money import format_amount
from checkout.tasks.task import TaskKind


class OrderConfirmationTemplate:
    kind = TaskKind.ORDER_CONFIRMATION_EMAIL

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        lines = "\n".join(
            f"  {item['quantity']} x {item['product_title']} "
            f"({format_amount(item['unit_price'], context.get('currency'))})"
            for item in context.get("items", [])
        )
        return {
            "subject": f"Order {order_number} confirmed",
            "body": (
                f"Hi {context.get('customer_name') or 'there'},\n\n"
                f"Thank you for your order {order_number}. Payment was received.\n\n"
                f"{lines}\n\n"
                f"Shipping ({context.get('shipping_method') or 'standard'}): "
                f"{format_amount(context.get('shipping_cost'), context.get('currency'))}\n"
                f"Total: {format_amount(context.get('total'), context.get('currency'))}\n\n"
                "We'll let you know as soon as it ships.\n"
                f"Order details: {context.get('order_details_url', '')}"
            ),
        }


class RefundConfirmationTemplate:
    kind = TaskKind.REFUND_CONFIRMATION_EMAIL

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        refunded = format_amount(context.get("refund_amount"), context.get("currency"))
        original = format_amount(context.get("original_order_total"), context.get("currency"))
        scope = "A partial refund" if context.get("is_partial_refund") else "A full refund"
        return {
            "subject": f"Refund processed for order {order_number}",
            "body": (
                f"{scope} of {refunded} (order total {original}) has been issued "
                f"for order {order_number}.\n\n"
                f"Reason: {context.get('reason') or 'as requested'}\n\n"
                "The refund should appear in your account within 5-10 business days, "
                "depending on your bank.\n"
                f"Order details: {context.get('order_details_url', '')}"
            ),
        }


class PaymentFailedTemplate:
    kind = TaskKind.PAYMENT_FAILED_EMAIL

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        return {
            "subject": f"Payment for order {order_number} did not go through",
            "body": (
                f"We could not confirm the payment for order {order_number} "
                f"({format_amount(context.get('total'), context.get('currency'))}).\n\n"
                f"Reason: {context.get('failure_reason') or 'the payment was declined'}\n\n"
                "Your order has been cancelled and nothing was charged. "
                f"You can try again here: {context.get('retry_url', '')}"
            ),
        }
