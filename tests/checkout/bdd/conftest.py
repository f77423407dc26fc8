"""Shared BDD fixtures and step definitions for the checkout pipeline."""

import pytest
from checkout.cart.cart import Cart
from checkout.order.order import Order
from checkout.stock.sku import Sku
from checkout.webhook.dispatcher import dispatch
from checkout.webhook.event import GatewayEvent
from protean import current_domain
from pytest_bdd import given, parsers, then


@pytest.fixture()
def world():
    """Mutable scenario state: the SKUs by code, the order, the last handler result."""
    return {"skus": {}, "order": None, "cart": None, "result": None}


@pytest.fixture()
def deliver(world, gateway_event):
    """Dispatch a gateway notification and keep its result on the scenario."""

    def _deliver(event_type, payload):
        world["result"] = dispatch(GatewayEvent.from_dict(gateway_event(event_type, payload)))
        return world["result"]

    return _deliver


def _order(world) -> Order:
    return current_domain.repository_for(Order).get(world["order"].id)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a SKU "{code}" priced {price:d} with {inventory:d} in stock'))
def _(world, make_sku, code, price, inventory):
    world["skus"][code] = make_sku(sku=code, price=price, inventory=inventory)


@given(parsers.cfparse('a pending order for {quantity:d} x "{code}"'))
def _(world, make_order, code, quantity):
    sku = world["skus"][code]
    cart = Cart.create(user_id="user-1")
    cart.add_item(str(sku.id), quantity)
    current_domain.repository_for(Cart).add(cart)
    world["cart"] = cart
    world["order"] = make_order([(sku, quantity)], user_id="user-1")


@given("the gateway reported the checkout as completed")
def _(world, checkout_session, deliver):
    deliver("checkout.session.completed", checkout_session(world["order"]))


@given(parsers.cfparse('the gateway refuses refunds with "{reason}"'))
def _(gateway, reason):
    gateway.configure(should_succeed=False, failure_reason=reason, raise_on_failure=True)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('"{code}" has {inventory:d} in stock'))
def _(world, code, inventory):
    assert current_domain.repository_for(Sku).get(world["skus"][code].id).inventory == inventory


@then(parsers.cfparse('"{code}" is on sale'))
def _(world, code):
    assert current_domain.repository_for(Sku).get(world["skus"][code].id).is_active is True


@then(parsers.cfparse('the order payment status is "{status}"'))
def _(world, status):
    assert _order(world).payment_status == status


@then(parsers.cfparse('the order status is "{status}"'))
def _(world, status):
    assert _order(world).status == status


@then("the customer's cart is empty")
def _(world):
    assert current_domain.repository_for(Cart).get(world["cart"].id).items == []


@then(parsers.cfparse("{count:d} emails are queued"))
def _(world, count):
    assert len([t for t in world["result"].tasks if t.is_email]) == count


@then(parsers.cfparse("{count:d} refund was requested from the gateway"))
def _(gateway, count):
    assert len([c for c in gateway.calls if c["method"] == "create_refund"]) == count


@then(parsers.cfparse('an operator alert "{kind}" is queued'))
def _(world, kind):
    assert kind in [t.kind.value for t in world["result"].tasks]
