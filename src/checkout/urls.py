"""Links embedded in customer emails and admin alerts."""

import os


def base_url() -> str:
    return os.environ.get("BASE_URL", "http://localhost:3000").rstrip("/")


def admin_email() -> str:
    return os.environ.get("ADMIN_EMAIL", "orders@localhost")


def order_details_url(order_id) -> str:
    return f"{base_url()}/orders/{order_id}"


def checkout_retry_url(order_id) -> str:
    return f"{base_url()}/checkout?retry={order_id}"


def dashboard_order_url(order_id) -> str:
    return f"{base_url()}/dashboard/orders/{order_id}"


def gateway_dispute_url(dispute_id) -> str:
    return f"https://dashboard.stripe.com/disputes/{dispute_id}"


def gateway_payment_url(payment_intent_id) -> str:
    return f"https://dashboard.stripe.com/payments/{payment_intent_id}"
