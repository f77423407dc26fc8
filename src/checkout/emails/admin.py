"""Operator alert templates."""

from checkout.emails.money import format_amount
from checkout.tasks.task import TaskKind


class AdminNewOrderTemplate:
    kind = TaskKind.ADMIN_NEW_ORDER_EMAIL

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        return {
            "subject": f"New order {order_number}: {format_amount(context.get('total'), context.get('currency'))}",
            "body": (
                f"Order {order_number} was paid by {context.get('customer_email') or 'unknown customer'}.\n"
                f"Items: {sum(item['quantity'] for item in context.get('items', []))}\n"
                f"Shipping: {context.get('shipping_method') or 'standard'}\n\n"
                f"Dashboard: {context.get('dashboard_url', '')}"
            ),
        }


class AdminRefundFailedTemplate:
    kind = TaskKind.ADMIN_REFUND_FAILED_ALERT

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        return {
            "subject": f"ACTION REQUIRED: refund failed for order {order_number}",
            "body": (
                f"A refund of {format_amount(context.get('amount'), context.get('currency'))} "
                f"for order {order_number} could not be completed.\n\n"
                f"Reason: {context.get('reason', 'unknown')}\n"
                f"Gateway reference: {context.get('gateway_reference') or 'n/a'}\n\n"
                "The refund will not be retried automatically. Issue it manually in the gateway.\n"
                f"Dashboard: {context.get('dashboard_url', '')}"
            ),
        }


class AdminDisputeAlertTemplate:
    kind = TaskKind.ADMIN_DISPUTE_ALERT

    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        stage = context.get("stage", "opened")
        amount = format_amount(context.get("amount"), context.get("currency"))
        if stage == "opened":
            subject = f"URGENT: dispute opened on order {order_number} ({amount})"
            detail = (
                f"Reason: {context.get('reason_label', 'General dispute')}\n"
                f"Evidence due by: {context.get('evidence_due_by', 'unknown')}\n"
                "Submit evidence before the deadline or the dispute is lost by default."
            )
        else:
            subject = f"Dispute on order {order_number} closed: {context.get('outcome', 'UNKNOWN')}"
            detail = f"Outcome: {context.get('outcome', 'UNKNOWN')}"
        return {
            "subject": subject,
            "body": (
                f"Dispute {context.get('dispute_id', 'N/A')} for {amount} on order {order_number}.\n"
                f"{detail}\n\n"
                f"Order: {context.get('dashboard_url', '')}\n"
                f"Gateway: {context.get('gateway_url', '')}"
            ),
        }


class AdminWebhookFailureTemplate:
    kind = TaskKind.ADMIN_WEBHOOK_FAILURE_ALERT

    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": f"Webhook {context.get('event_type', 'unknown')} keeps failing",
            "body": (
                f"Event {context.get('event_id', 'N/A')} ({context.get('event_type', 'unknown')}) "
                f"failed {context.get('attempts', '?')} times.\n\n"
                f"Last error: {context.get('error', 'unknown')}"
            ),
        }


class AdminEmailFailureTemplate:
    kind = TaskKind.ADMIN_EMAIL_FAILURE_ALERT

    @staticmethod
    def render(context: dict) -> dict:
        failures = context.get("failures", [])
        lines = "\n".join(f"  - {f['kind']} to {f.get('to') or 'unknown'}: {f['error']}" for f in failures)
        return {
            "subject": f"{len(failures)} customer email(s) about payments were not delivered",
            "body": (
                "The following customer emails failed after their transaction committed. "
                "The customers have no written record of these payments; contact them manually.\n\n"
                f"{lines}"
            ),
        }
