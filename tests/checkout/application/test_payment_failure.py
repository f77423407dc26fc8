"""Application tests for failed and cancelled payment intents."""

import pytest
from checkout.order.order import Order, OrderStatus, PaymentStatus
from checkout.stock.sku import Sku
from checkout.tasks.task import TaskKind
from checkout.webhook.dispatcher import dispatch
from checkout.webhook.event import GatewayEvent
from checkout.webhook.payment_intent_events import refund_idempotency_key
from protean import current_domain
from protean.exceptions import ValidationError


def _intent(order, amount_received=0, status="requires_payment_method", **extra):
    return {
        "id": "pi_test_001",
        "object": "payment_intent",
        "status": status,
        "amount": order.total,
        "amount_received": amount_received,
        "metadata": {"order_id": str(order.id)},
        "last_payment_error": {
            "code": "card_declined",
            "decline_code": "insufficient_funds",
            "message": "Your card has insufficient funds.",
        },
        **extra,
    }


def _deliver(gateway_event, event_type, payload):
    return dispatch(GatewayEvent.from_dict(gateway_event(event_type, payload)))


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _sku(sku_id):
    return current_domain.repository_for(Sku).get(sku_id)


@pytest.fixture()
def paid_order(make_sku, make_order, checkout_session, gateway_event):
    """An order for 2 x SKU (inventory 3 before checkout) that went through checkout."""
    sku = make_sku(inventory=3, price=2500)
    order = make_order([(sku, 2)])
    _deliver(gateway_event, "checkout.session.completed", checkout_session(order))
    return _order(order.id), _sku(sku.id)


class TestPaymentFailed:
    def test_fails_unpaid_order_without_touching_stock(self, make_sku, make_order, gateway_event, gateway):
        sku = make_sku(inventory=3)
        order = make_order([(sku, 2)])

        result = _deliver(gateway_event, "payment_intent.payment_failed", _intent(order))

        failed = _order(order.id)
        assert failed.payment_status == PaymentStatus.FAILED.value
        assert failed.status == OrderStatus.CANCELLED.value
        assert failed.payment_decline_code == "insufficient_funds"
        assert _sku(sku.id).inventory == 3
        assert result.success is True

    def test_restores_stock_taken_by_a_paid_order(self, paid_order, gateway_event):
        order, sku = paid_order
        assert sku.inventory == 1

        _deliver(gateway_event, "payment_intent.payment_failed", _intent(order, amount_received=2000))

        restored = _sku(sku.id)
        assert restored.inventory == 3
        assert restored.is_active is True
        failed = _order(order.id)
        assert failed.payment_status == PaymentStatus.FAILED.value
        assert failed.status == OrderStatus.CANCELLED.value

    def test_depleted_sku_goes_back_on_sale(self, make_sku, make_order, checkout_session, gateway_event):
        sku = make_sku(inventory=1)
        order = make_order([(sku, 1)])
        _deliver(gateway_event, "checkout.session.completed", checkout_session(order))
        assert _sku(sku.id).is_active is False

        _deliver(gateway_event, "payment_intent.payment_failed", _intent(order))

        assert _sku(sku.id).is_active is True
        assert _sku(sku.id).inventory == 1

    def test_queues_customer_email_and_cache_invalidation(self, paid_order, gateway_event):
        order, sku = paid_order

        result = _deliver(gateway_event, "payment_intent.payment_failed", _intent(order))

        kinds = [t.kind for t in result.tasks]
        assert TaskKind.PAYMENT_FAILED_EMAIL in kinds
        keys = next(t for t in result.tasks if t.kind == TaskKind.INVALIDATE_CACHE).data["keys"]
        assert f"sku-stock-{sku.id}" in keys

    def test_redelivery_changes_nothing(self, paid_order, gateway_event, gateway):
        order, sku = paid_order
        payload = _intent(order, amount_received=2000)
        _deliver(gateway_event, "payment_intent.payment_failed", payload)

        result = _deliver(gateway_event, "payment_intent.payment_failed", payload)

        assert result.already_processed is True
        assert result.tasks == []
        assert _sku(sku.id).inventory == 3
        assert len([c for c in gateway.calls if c["method"] == "create_refund"]) == 1

    def test_late_checkout_redelivery_does_not_take_stock_again(self, paid_order, checkout_session, gateway_event):
        order, sku = paid_order
        _deliver(gateway_event, "payment_intent.payment_failed", _intent(order))

        result = _deliver(gateway_event, "checkout.session.completed", checkout_session(order))

        assert result.already_processed is True
        assert _sku(sku.id).inventory == 3
        assert _order(order.id).payment_status == PaymentStatus.FAILED.value

    def test_missing_order_id_raises(self, make_sku, make_order, gateway_event):
        order = make_order([(make_sku(), 1)])
        with pytest.raises(ValidationError):
            _deliver(gateway_event, "payment_intent.payment_failed", _intent(order, metadata={}))


class TestAutomaticRefund:
    def test_captured_money_is_refunded(self, paid_order, gateway_event, gateway):
        order, _ = paid_order

        _deliver(gateway_event, "payment_intent.payment_failed", _intent(order, amount_received=2000))

        refunds = [c for c in gateway.calls if c["method"] == "create_refund"]
        assert len(refunds) == 1
        assert refunds[0]["idempotency_key"] == "auto-refund-payment-failed-pi_test_001"
        assert refunds[0]["metadata"]["order_id"] == str(order.id)

    def test_nothing_captured_nothing_refunded(self, paid_order, gateway_event, gateway):
        order, _ = paid_order

        _deliver(gateway_event, "payment_intent.payment_failed", _intent(order, amount_received=0))

        assert not [c for c in gateway.calls if c["method"] == "create_refund"]

    def test_gateway_exception_escalates_instead_of_retrying(self, paid_order, gateway_event, gateway):
        order, _ = paid_order
        gateway.configure(should_succeed=False, failure_reason="Gateway timeout", raise_on_failure=True)

        result = _deliver(gateway_event, "payment_intent.payment_failed", _intent(order, amount_received=2000))

        assert len([c for c in gateway.calls if c["method"] == "create_refund"]) == 1
        alerts = [t for t in result.tasks if t.kind == TaskKind.ADMIN_REFUND_FAILED_ALERT]
        assert len(alerts) == 1
        assert "Gateway timeout" in alerts[0].data["reason"]
        flagged = _order(order.id)
        assert flagged.manual_refund_required is True
        assert flagged.notes[-1].content.startswith("[REFUND REQUIRED]")

    def test_declined_refund_escalates(self, paid_order, gateway_event, gateway):
        order, _ = paid_order
        gateway.configure(should_succeed=False, failure_reason="Charge already refunded")

        result = _deliver(gateway_event, "payment_intent.payment_failed", _intent(order, amount_received=2000))

        assert any(t.kind == TaskKind.ADMIN_REFUND_FAILED_ALERT for t in result.tasks)
        assert _order(order.id).manual_refund_required is True

    def test_idempotency_key_slug(self):
        assert refund_idempotency_key("Payment canceled", "pi_1") == "auto-refund-payment-canceled-pi_1"


class TestPaymentCanceled:
    def test_cancelled_intent_with_captured_money_is_refunded(self, paid_order, gateway_event, gateway):
        order, sku = paid_order

        _deliver(gateway_event, "payment_intent.canceled", _intent(order, amount_received=5000, status="canceled"))

        refunds = [c for c in gateway.calls if c["method"] == "create_refund"]
        assert refunds[0]["idempotency_key"] == "auto-refund-payment-canceled-pi_test_001"
        assert _sku(sku.id).inventory == 3

    def test_no_refund_unless_intent_is_canceled(self, paid_order, gateway_event, gateway):
        order, _ = paid_order

        _deliver(gateway_event, "payment_intent.canceled", _intent(order, amount_received=5000))

        assert not [c for c in gateway.calls if c["method"] == "create_refund"]
        assert _order(order.id).payment_status == PaymentStatus.FAILED.value


class TestPaymentSucceeded:
    def test_is_informational(self, make_sku, make_order, gateway_event):
        order = make_order([(make_sku(), 1)])

        assert _deliver(gateway_event, "payment_intent.succeeded", _intent(order, status="succeeded")) is None
        assert _order(order.id).payment_status == PaymentStatus.PENDING.value
