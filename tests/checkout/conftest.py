import os
from datetime import UTC, datetime

import pytest


@pytest.fixture(scope="session")
def _checkout_domain(request):
    """Initialize the checkout domain once per session."""
    os.environ["PROTEAN_ENV"] = request.config.option.env

    from checkout.domain import checkout

    checkout.init()
    return checkout


@pytest.fixture(scope="session", autouse=True)
def setup_db(_checkout_domain):
    from checkout.utils.db import drop_db, setup_db

    setup_db(_checkout_domain)

    yield

    drop_db(_checkout_domain)


@pytest.fixture(autouse=True)
def run_around_tests(_checkout_domain):
    """Push domain context before each test, cleanup after."""
    ctx = _checkout_domain.domain_context()
    ctx.push()

    yield

    from checkout.channel import reset_channels
    from checkout.gateway import reset_gateway
    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    for _, broker in current_domain.brokers.items():
        broker._data_reset()

    current_domain.event_store.store._data_reset()
    reset_gateway()
    reset_channels()
    ctx.pop()


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------
@pytest.fixture()
def gateway():
    from checkout.gateway import set_gateway
    from checkout.gateway.fake_adapter import FakeGateway

    fake = FakeGateway()
    set_gateway(fake)
    return fake


@pytest.fixture()
def email_channel():
    from checkout.channel import get_email_channel

    return get_email_channel()


@pytest.fixture()
def cache():
    from checkout.channel import get_cache

    return get_cache()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
@pytest.fixture()
def make_sku():
    from checkout.stock.sku import Sku
    from protean import current_domain

    def _make(inventory=10, price=2500, sku="BRC-001", title="Silver bracelet", is_active=True):
        record = Sku(sku=sku, product_title=title, price=price, inventory=inventory, is_active=is_active)
        current_domain.repository_for(Sku).add(record)
        return current_domain.repository_for(Sku).get(record.id)

    return _make


@pytest.fixture()
def make_order():
    """Persist a PENDING order; ``lines`` is a list of (sku, quantity)."""
    from checkout.order.order import Order
    from protean import current_domain

    def _make(lines, customer_email="ada@example.com", user_id=None, guest_session_id=None, shipping_cost=0):
        items = [
            {
                "sku_id": str(sku.id),
                "product_title": sku.product_title,
                "quantity": quantity,
                "unit_price": sku.price,
            }
            for sku, quantity in lines
        ]
        subtotal = sum(i["unit_price"] * i["quantity"] for i in items)
        order = Order.place(
            items_data=items,
            total=subtotal + shipping_cost,
            customer_email=customer_email,
            customer_name="Ada Lovelace",
            user_id=user_id,
            guest_session_id=guest_session_id,
            shipping_cost=shipping_cost,
        )
        current_domain.repository_for(Order).add(order)
        return current_domain.repository_for(Order).get(order.id)

    return _make


@pytest.fixture()
def gateway_event():
    """Build a gateway event envelope around ``payload``."""

    def _make(event_type, payload, event_id=None, created=None):
        from uuid import uuid4

        return {
            "id": event_id or f"evt_{uuid4().hex[:16]}",
            "type": event_type,
            "created": int((created or datetime.now(UTC)).timestamp()),
            "data": {"object": payload},
        }

    return _make


@pytest.fixture()
def checkout_session(gateway):
    """Seed a paid checkout session for ``order`` in the fake gateway and return its payload."""

    def _make(order, session_id="cs_test_001", payment_intent="pi_test_001", email=None, shipping=0, **extra):
        session = {
            "id": session_id,
            "object": "checkout.session",
            "payment_status": "paid",
            "payment_intent": payment_intent,
            "customer": "cus_test_001",
            "client_reference_id": str(order.id),
            "metadata": {"order_id": str(order.id)},
            "customer_details": {"email": email or order.customer_email},
            "total_details": {"amount_shipping": shipping},
            "shipping_cost": {
                "amount_total": shipping,
                "shipping_rate": {"id": "shr_standard", "display_name": "Standard delivery"},
            },
            **extra,
        }
        gateway.add_session(session)
        return session

    return _make
