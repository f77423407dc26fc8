"""Delivery log, failure accounting, retry sweep and retention."""

from datetime import UTC, datetime, timedelta

import pytest
from checkout.tasks.task import TaskKind
from checkout.webhook.cleanup import purge_webhook_events
from checkout.webhook.delivery import MAX_DELIVERY_ATTEMPTS, DeliveryStatus, WebhookEvent
from checkout.webhook.event import GatewayEvent
from checkout.webhook.processing import DeliveryOutcome, is_replayed, process_gateway_event
from checkout.webhook.retry import fail_orphaned_deliveries, retry_failed_webhooks
from protean import current_domain


def _record(event_id):
    return current_domain.repository_for(WebhookEvent).get(event_id)


def _seed_record(event_id, status, received_at, attempts=1, event_type="refund.updated"):
    record = WebhookEvent(
        event_id=event_id,
        event_type=event_type,
        status=status.value,
        attempts=attempts,
        received_at=received_at,
    )
    current_domain.repository_for(WebhookEvent).add(record)
    return record


@pytest.fixture()
def broken_dispute(gateway_event):
    """A dispute event whose payload has no payment intent, so its handler raises."""
    return gateway_event(
        "charge.dispute.created",
        {"id": "dp_1", "amount": 1000, "status": "needs_response"},
        event_id="evt_broken",
    )


class TestProcessGatewayEvent:
    def test_records_skipped_delivery(self, gateway_event):
        envelope = gateway_event("customer.created", {"id": "cus_1"}, event_id="evt_1")

        processed = process_gateway_event(GatewayEvent.from_dict(envelope))

        assert processed.outcome == DeliveryOutcome.SKIPPED
        record = _record("evt_1")
        assert record.status == DeliveryStatus.SKIPPED.value
        assert record.attempts == 1

    def test_finished_event_is_a_duplicate(self, make_sku, make_order, checkout_session, gateway_event):
        order = make_order([(make_sku(inventory=3), 1)])
        event = GatewayEvent.from_dict(
            gateway_event("checkout.session.completed", checkout_session(order), event_id="evt_1")
        )
        first = process_gateway_event(event)

        second = process_gateway_event(event)

        assert first.outcome == DeliveryOutcome.PROCESSED
        assert len(first.tasks) == 3
        assert second.outcome == DeliveryOutcome.DUPLICATE
        assert second.tasks == []
        assert _record("evt_1").attempts == 1

    def test_handler_failure_is_recorded(self, broken_dispute):
        processed = process_gateway_event(GatewayEvent.from_dict(broken_dispute))

        assert processed.outcome == DeliveryOutcome.FAILED
        assert processed.error.startswith("ValidationError")
        assert processed.tasks == []
        record = _record("evt_broken")
        assert record.status == DeliveryStatus.FAILED.value
        assert record.error_message == processed.error

    def test_third_failure_alerts_operators(self, broken_dispute):
        event = GatewayEvent.from_dict(broken_dispute)
        process_gateway_event(event)
        process_gateway_event(event)

        processed = process_gateway_event(event)

        assert processed.attempts == 3
        assert [t.kind for t in processed.tasks] == [TaskKind.ADMIN_WEBHOOK_FAILURE_ALERT]
        assert processed.tasks[0].data["event_id"] == "evt_broken"

    def test_failed_event_is_processed_again(self, broken_dispute, gateway_event):
        process_gateway_event(GatewayEvent.from_dict(broken_dispute))
        fixed = gateway_event(
            "charge.dispute.created",
            {"id": "dp_1", "amount": 1000, "status": "needs_response", "payment_intent": "pi_unknown"},
            event_id="evt_broken",
        )

        processed = process_gateway_event(GatewayEvent.from_dict(fixed))

        assert processed.outcome == DeliveryOutcome.SKIPPED
        assert _record("evt_broken").attempts == 2


class TestReplayWindow:
    def test_recent_event_is_accepted(self, gateway_event):
        assert not is_replayed(GatewayEvent.from_dict(gateway_event("refund.updated", {})))

    def test_old_event_is_rejected(self, gateway_event):
        old = datetime.now(UTC) - timedelta(minutes=6)
        assert is_replayed(GatewayEvent.from_dict(gateway_event("refund.updated", {}, created=old)))


class TestRetrySweep:
    def test_failed_delivery_is_retried_from_the_gateway(self, broken_dispute, gateway_event, gateway):
        process_gateway_event(GatewayEvent.from_dict(broken_dispute))
        gateway.add_event(
            gateway_event(
                "charge.dispute.created",
                {"id": "dp_1", "amount": 1000, "status": "needs_response", "payment_intent": "pi_unknown"},
                event_id="evt_broken",
            )
        )

        report = retry_failed_webhooks()

        assert (report.retried, report.succeeded, report.failed) == (1, 1, 0)
        assert _record("evt_broken").status == DeliveryStatus.SKIPPED.value

    def test_still_failing_counts_as_failed(self, broken_dispute, gateway):
        process_gateway_event(GatewayEvent.from_dict(broken_dispute))
        gateway.add_event(broken_dispute)

        report = retry_failed_webhooks()

        assert report.failed == 1
        assert _record("evt_broken").attempts == 2

    def test_exhausted_deliveries_are_left_alone(self, gateway):
        _seed_record("evt_done", DeliveryStatus.FAILED, datetime.now(UTC), attempts=MAX_DELIVERY_ATTEMPTS)

        report = retry_failed_webhooks()

        assert report.retried == 0
        assert gateway.calls == []

    def test_event_gone_from_gateway_is_skipped(self, gateway):
        _seed_record("evt_gone", DeliveryStatus.FAILED, datetime.now(UTC))

        report = retry_failed_webhooks()

        assert report.skipped == 1
        assert _record("evt_gone").status == DeliveryStatus.SKIPPED.value

    def test_orphaned_processing_is_failed_first(self, gateway):
        _seed_record("evt_stuck", DeliveryStatus.PROCESSING, datetime.now(UTC) - timedelta(minutes=30))
        _seed_record("evt_running", DeliveryStatus.PROCESSING, datetime.now(UTC))

        assert fail_orphaned_deliveries() == 1
        stuck = _record("evt_stuck")
        assert stuck.status == DeliveryStatus.FAILED.value
        assert stuck.error_message == "Processing interrupted"
        assert _record("evt_running").status == DeliveryStatus.PROCESSING.value


class TestRetention:
    def test_purges_by_status_and_age(self):
        now = datetime.now(UTC)
        _seed_record("evt_old_done", DeliveryStatus.COMPLETED, now - timedelta(days=100))
        _seed_record("evt_new_done", DeliveryStatus.COMPLETED, now - timedelta(days=10))
        _seed_record("evt_old_failed", DeliveryStatus.FAILED, now - timedelta(days=100))
        _seed_record("evt_ancient_failed", DeliveryStatus.FAILED, now - timedelta(days=200))

        deleted = purge_webhook_events()

        assert deleted[DeliveryStatus.COMPLETED.value] == 1
        assert deleted[DeliveryStatus.FAILED.value] == 1
        remaining = {r.event_id for r in current_domain.repository_for(WebhookEvent)._dao.query.all().items}
        assert remaining == {"evt_new_done", "evt_old_failed"}
