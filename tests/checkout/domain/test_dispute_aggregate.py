"""Tests for the Dispute aggregate."""

from datetime import UTC, datetime, timedelta

import pytest
from checkout.dispute.dispute import (
    EVIDENCE_WINDOW,
    Dispute,
    DisputeReason,
    DisputeStatus,
    map_gateway_dispute_reason,
    map_gateway_dispute_status,
)
from checkout.dispute.events import DisputeClosed, DisputeOpened, DisputeStatusChanged
from protean.exceptions import ValidationError


def _dispute(**overrides):
    fields = {
        "dispute_id": "dp_1",
        "order_id": "ord-1",
        "payment_intent_id": "pi_1",
        "amount": 5000,
        "reason": DisputeReason.FRAUDULENT,
    }
    fields.update(overrides)
    return Dispute.open(**fields)


class TestMapping:
    def test_status_mapping(self):
        assert map_gateway_dispute_status("warning_under_review") == DisputeStatus.UNDER_REVIEW
        assert map_gateway_dispute_status("lost") == DisputeStatus.LOST
        assert map_gateway_dispute_status(None) == DisputeStatus.NEEDS_RESPONSE

    def test_reason_mapping(self):
        assert map_gateway_dispute_reason("product_not_received") == DisputeReason.PRODUCT_NOT_RECEIVED
        assert map_gateway_dispute_reason("bank_cannot_process") == DisputeReason.GENERAL


class TestOpen:
    def test_default_evidence_deadline_is_seven_days(self):
        before = datetime.now(UTC)
        dispute = _dispute()
        assert before + EVIDENCE_WINDOW <= dispute.evidence_due_by <= datetime.now(UTC) + EVIDENCE_WINDOW

    def test_gateway_deadline_is_kept(self):
        due_by = datetime.now(UTC) + timedelta(days=3)
        assert _dispute(evidence_due_by=due_by).evidence_due_by == due_by

    def test_open_raises_event(self):
        dispute = _dispute()
        assert dispute.is_open
        assert isinstance(dispute._events[-1], DisputeOpened)
        assert dispute.reason_label == "Fraudulent transaction"


class TestSyncAndClose:
    def test_sync_changes_status(self):
        dispute = _dispute()
        dispute._events.clear()
        assert dispute.sync(DisputeStatus.UNDER_REVIEW) is True
        assert isinstance(dispute._events[-1], DisputeStatusChanged)

    def test_sync_without_change(self):
        dispute = _dispute()
        assert dispute.sync(DisputeStatus.NEEDS_RESPONSE, DisputeReason.FRAUDULENT) is False

    def test_close_sets_resolved_at(self):
        dispute = _dispute()
        assert dispute.close(DisputeStatus.WON) is True
        assert dispute.resolved_at is not None
        assert not dispute.is_open
        assert isinstance(dispute._events[-1], DisputeClosed)

    def test_closing_twice_with_same_outcome_is_a_no_op(self):
        dispute = _dispute()
        dispute.close(DisputeStatus.LOST)
        assert dispute.close(DisputeStatus.LOST) is False

    def test_cannot_close_with_open_status(self):
        with pytest.raises(ValidationError):
            _dispute().close(DisputeStatus.UNDER_REVIEW)

    def test_sync_does_not_reopen_a_closed_dispute(self):
        dispute = _dispute()
        dispute.close(DisputeStatus.WON)
        dispute._events.clear()

        assert dispute.sync(DisputeStatus.UNDER_REVIEW) is False
        assert dispute.status == DisputeStatus.WON.value
        assert dispute._events == []

    def test_sync_on_closed_dispute_still_updates_reason(self):
        dispute = _dispute()
        dispute.close(DisputeStatus.LOST)

        assert dispute.sync(DisputeStatus.NEEDS_RESPONSE, DisputeReason.PRODUCT_NOT_RECEIVED) is True
        assert dispute.status == DisputeStatus.LOST.value
        assert dispute.reason == DisputeReason.PRODUCT_NOT_RECEIVED.value
