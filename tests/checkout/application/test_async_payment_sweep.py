"""Application tests for settling delayed payments the gateway never reported."""

from datetime import UTC, datetime, timedelta

import pytest
from checkout.order.order import Order, OrderStatus, PaymentStatus
from checkout.order.sweep import SWEEP_BATCH_SIZE, sync_async_payments
from checkout.stock.sku import Sku
from checkout.tasks.task import TaskKind
from checkout.webhook.dispatcher import dispatch
from checkout.webhook.event import GatewayEvent
from protean import current_domain


def _deliver(gateway_event, event_type, payload):
    return dispatch(GatewayEvent.from_dict(gateway_event(event_type, payload)))


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _sku(sku_id):
    return current_domain.repository_for(Sku).get(sku_id)


def _age(order_id, hours=2):
    order = _order(order_id)
    order.created_at = datetime.now(UTC) - timedelta(hours=hours)
    current_domain.repository_for(Order).add(order)


def _intent(order, status, payment_intent_id="pi_test_001", amount_received=0):
    return {
        "id": payment_intent_id,
        "object": "payment_intent",
        "status": status,
        "amount": order.total,
        "amount_received": amount_received,
        "metadata": {"order_id": str(order.id)},
        "last_payment_error": {"code": "payment_method_not_available", "message": "The debit was returned."},
    }


@pytest.fixture()
def awaiting_order(make_sku, make_order, checkout_session, gateway_event):
    """An order for 2 x SKU (inventory 3) whose checkout completed with a bank debit still settling."""
    sku = make_sku(inventory=3, price=2500)
    order = make_order([(sku, 2)])
    _deliver(gateway_event, "checkout.session.completed", checkout_session(order, payment_status="unpaid"))
    _age(order.id)
    return _order(order.id), sku


class TestAwaitingPayment:
    def test_unpaid_checkout_records_gateway_references(self, awaiting_order):
        order, sku = awaiting_order

        assert order.payment_status == PaymentStatus.PENDING.value
        assert order.payment_intent_id == "pi_test_001"
        assert order.checkout_session_id == "cs_test_001"
        assert _sku(sku.id).inventory == 3


class TestSettledPayments:
    def test_succeeded_intent_pays_the_order(self, awaiting_order, gateway):
        order, sku = awaiting_order
        gateway.add_payment_intent(_intent(order, "succeeded", amount_received=order.total))

        report = sync_async_payments()

        assert report.as_dict() == {"checked": 1, "updated": 1, "errors": 0, "has_more": False}
        paid = _order(order.id)
        assert paid.payment_status == PaymentStatus.PAID.value
        assert paid.status == OrderStatus.PROCESSING.value
        assert _sku(sku.id).inventory == 1
        assert TaskKind.ORDER_CONFIRMATION_EMAIL in [t.kind for t in report.tasks]

    def test_canceled_intent_fails_the_order(self, awaiting_order, gateway):
        order, sku = awaiting_order
        gateway.add_payment_intent(_intent(order, "canceled"))

        report = sync_async_payments()

        assert report.updated == 1
        failed = _order(order.id)
        assert failed.payment_status == PaymentStatus.FAILED.value
        assert failed.status == OrderStatus.CANCELLED.value
        assert _sku(sku.id).inventory == 3
        assert TaskKind.PAYMENT_FAILED_EMAIL in [t.kind for t in report.tasks]

    def test_declined_intent_fails_the_order(self, awaiting_order, gateway):
        order, _ = awaiting_order
        gateway.add_payment_intent(_intent(order, "requires_payment_method"))

        sync_async_payments()

        failed = _order(order.id)
        assert failed.payment_status == PaymentStatus.FAILED.value
        assert failed.payment_failure_code == "payment_method_not_available"

    def test_processing_intent_is_left_alone(self, awaiting_order, gateway):
        order, _ = awaiting_order
        gateway.add_payment_intent(_intent(order, "processing"))

        report = sync_async_payments()

        assert report.as_dict() == {"checked": 1, "updated": 0, "errors": 0, "has_more": False}
        assert _order(order.id).payment_status == PaymentStatus.PENDING.value

    def test_late_webhook_after_sweep_is_already_processed(self, awaiting_order, gateway, gateway_event):
        order, sku = awaiting_order
        gateway.add_payment_intent(_intent(order, "succeeded", amount_received=order.total))
        sync_async_payments()
        session = {**gateway.sessions["cs_test_001"], "payment_status": "paid"}

        result = _deliver(gateway_event, "checkout.session.async_payment_succeeded", session)

        assert result.already_processed is True
        assert _sku(sku.id).inventory == 1


class TestSelection:
    def test_recent_orders_are_not_checked(self, make_sku, make_order, checkout_session, gateway_event, gateway):
        order = make_order([(make_sku(), 1)])
        _deliver(gateway_event, "checkout.session.completed", checkout_session(order, payment_status="unpaid"))

        assert sync_async_payments().checked == 0

    def test_week_old_orders_are_not_checked(self, awaiting_order, gateway):
        order, _ = awaiting_order
        _age(order.id, hours=24 * 8)

        assert sync_async_payments().checked == 0

    def test_orders_without_payment_intent_are_not_checked(self, make_sku, make_order, gateway):
        order = make_order([(make_sku(), 1)])
        _age(order.id)

        assert sync_async_payments().checked == 0

    def test_batches_with_has_more(self, make_sku, make_order, gateway):
        sku = make_sku(inventory=100)
        for i in range(SWEEP_BATCH_SIZE + 1):
            order = make_order([(sku, 1)])
            order.await_payment(f"cs_{i}", f"pi_{i}")
            order.created_at = datetime.now(UTC) - timedelta(hours=2)
            current_domain.repository_for(Order).add(order)
            gateway.add_payment_intent(_intent(order, "processing", payment_intent_id=f"pi_{i}"))

        report = sync_async_payments()

        assert report.checked == SWEEP_BATCH_SIZE
        assert report.has_more is True


class TestErrors:
    def test_unknown_intent_counts_as_error(self, awaiting_order, gateway):
        report = sync_async_payments()

        assert report.as_dict() == {"checked": 1, "updated": 0, "errors": 1, "has_more": False}

    def test_stock_gone_counts_as_error_and_keeps_order_pending(self, awaiting_order, gateway):
        order, sku = awaiting_order
        drained = _sku(sku.id)
        drained.inventory = 1
        current_domain.repository_for(Sku).add(drained)
        gateway.add_payment_intent(_intent(order, "succeeded", amount_received=order.total))

        report = sync_async_payments()

        assert report.errors == 1
        assert report.updated == 0
        assert _order(order.id).payment_status == PaymentStatus.PENDING.value

    def test_one_failure_does_not_stop_the_batch(self, awaiting_order, make_sku, make_order, gateway):
        first, _ = awaiting_order
        other = make_order([(make_sku(sku="BRC-002", inventory=5), 1)])
        other.await_payment("cs_other", "pi_other")
        other.created_at = datetime.now(UTC) - timedelta(hours=3)
        current_domain.repository_for(Order).add(other)
        gateway.add_payment_intent(_intent(first, "canceled"))

        report = sync_async_payments()

        assert report.as_dict() == {"checked": 2, "updated": 1, "errors": 1, "has_more": False}
        assert _order(first.id).payment_status == PaymentStatus.FAILED.value
