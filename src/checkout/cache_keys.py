"""Cache tags invalidated after a transaction commits.

Tags, not exact keys: the storefront's read-through cache groups entries
under these names.
"""

ORDERS_LIST = "orders-list"
ADMIN_BADGES = "admin-badges"
DISPUTES_LIST = "disputes-list"
REFUNDS_LIST = "refunds-list"


def user_cart(user_id) -> str:
    return f"cart-{user_id}"


def guest_cart(session_id) -> str:
    return f"guest-cart-{session_id}"


def user_orders(user_id) -> str:
    return f"user-orders-{user_id}"


def order_detail(order_id) -> str:
    return f"order-{order_id}"


def order_notes(order_id) -> str:
    return f"order-notes-{order_id}"


def sku_stock(sku_id) -> str:
    return f"sku-stock-{sku_id}"
