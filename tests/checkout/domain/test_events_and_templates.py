"""Tests for the event envelope, shipping extraction, tasks and email templates."""

import pytest
from checkout.emails import TEMPLATE_REGISTRY, get_template
from checkout.emails.money import format_amount
from checkout.order.shipping import EXPRESS, STANDARD, shipping_from_session, shipping_rate_for
from checkout.tasks.task import CUSTOMER_FINANCIAL_EMAILS, TaskKind, email_task, invalidate_cache
from checkout.webhook.event import EventKind, GatewayEvent


class TestEventKind:
    def test_known_type(self):
        assert EventKind.from_type("charge.refunded") == EventKind.CHARGE_REFUNDED

    def test_unknown_type_is_unsupported(self):
        assert EventKind.from_type("invoice.paid") == EventKind.UNSUPPORTED

    def test_envelope(self):
        event = GatewayEvent.from_dict(
            {"id": "evt_1", "type": "refund.failed", "created": 1700000000, "data": {"object": {"id": "re_1"}}}
        )
        assert event.kind == EventKind.REFUND_FAILED
        assert event.payload == {"id": "re_1"}
        assert event.created.timestamp() == 1700000000


class TestShipping:
    def test_amount_from_total_details(self):
        amount, rate_id, rate = shipping_from_session(
            {
                "total_details": {"amount_shipping": 690},
                "shipping_cost": {"amount_total": 0, "shipping_rate": {"id": "shr_1", "display_name": "Express"}},
            }
        )
        assert (amount, rate_id, rate) == (690, "shr_1", EXPRESS)

    def test_amount_falls_back_on_shipping_cost(self):
        amount, rate_id, rate = shipping_from_session({"shipping_cost": {"amount_total": 490, "shipping_rate": "shr_2"}})
        assert (amount, rate_id, rate) == (490, "shr_2", STANDARD)

    def test_configured_rate_ids(self, monkeypatch):
        monkeypatch.setenv("SHIPPING_RATES", '{"shr_fast": "express"}')
        assert shipping_rate_for("shr_fast") == EXPRESS


class TestTasks:
    def test_cache_keys_are_deduplicated(self):
        task = invalidate_cache("b", "a", "b")
        assert task.data == {"keys": ["a", "b"]}
        assert not task.is_email

    def test_email_task_carries_recipient(self):
        task = email_task(TaskKind.PAYMENT_FAILED_EMAIL, "ada@example.com", order_number="ORD-1")
        assert task.data["to"] == "ada@example.com"
        assert task.kind in CUSTOMER_FINANCIAL_EMAILS


class TestTemplates:
    def test_every_email_kind_has_a_template(self):
        email_kinds = {kind for kind in TaskKind if kind != TaskKind.INVALIDATE_CACHE}
        assert set(TEMPLATE_REGISTRY) == email_kinds

    def test_cache_invalidation_has_no_template(self):
        with pytest.raises(ValueError):
            get_template(TaskKind.INVALIDATE_CACHE)

    def test_format_amount(self):
        assert format_amount(12345, "eur") == "123.45 EUR"

    def test_order_confirmation(self):
        content = get_template(TaskKind.ORDER_CONFIRMATION_EMAIL).render(
            {
                "order_number": "ORD-1",
                "customer_name": "Ada",
                "items": [{"quantity": 2, "product_title": "Ring", "unit_price": 2500}],
                "shipping_cost": 490,
                "total": 5490,
                "currency": "eur",
            }
        )
        assert content["subject"] == "Order ORD-1 confirmed"
        assert "2 x Ring (25.00 EUR)" in content["body"]
        assert "Total: 54.90 EUR" in content["body"]

    def test_partial_refund_wording(self):
        content = get_template(TaskKind.REFUND_CONFIRMATION_EMAIL).render(
            {"order_number": "ORD-1", "refund_amount": 1000, "original_order_total": 5000, "is_partial_refund": True}
        )
        assert content["body"].startswith("A partial refund of 10.00 EUR")

    def test_dispute_closed_alert(self):
        content = get_template(TaskKind.ADMIN_DISPUTE_ALERT).render(
            {"order_number": "ORD-1", "stage": "closed", "outcome": "LOST", "amount": 5000}
        )
        assert content["subject"] == "Dispute on order ORD-1 closed: LOST"
