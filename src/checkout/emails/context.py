"""Template context built from aggregates."""

from checkout.urls import dashboard_order_url, order_details_url


def order_context(order) -> dict:
    return {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "items": [
            {
                "product_title": item.product_title,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
            }
            for item in order.items
        ],
        "total": order.total,
        "currency": order.currency,
        "shipping_cost": order.shipping_cost,
        "shipping_method": order.shipping_method,
        "order_details_url": order_details_url(order.id),
        "dashboard_url": dashboard_order_url(order.id),
    }
