"""
Tests for refund webhook normalization.

Tests cover:
- Shape classification (event types, bare objects, status updates)
- Field extraction from nested and flat payloads
- Minor-unit amount conversion
- Malformed refund events
"""

from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import pytest

from refunds.exceptions import MalformedWebhookError
from refunds.state_machines import RefundStatus
from refunds.webhooks.normalizer import (
    EventKind,
    classify_payload,
    normalize_refund_event,
    parse_amount,
)


# =============================================================================
# Amount Conversion
# =============================================================================


class TestParseAmount:
    @pytest.mark.parametrize(
        "value,currency,expected",
        [
            (10000, "USD", Decimal("100")),
            (1500, "KWD", Decimal("1.5")),
            (500, "JPY", Decimal("500")),
            (12.5, "USD", Decimal("12.5")),
            ("40.000", "KWD", Decimal("40.000")),
        ],
    )
    def test_conversion(self, value, currency, expected):
        assert parse_amount(value, currency) == expected

    @pytest.mark.parametrize("value", [None, True, "abc", "NaN", "Infinity"])
    def test_unparseable(self, value):
        assert parse_amount(value, "USD") is None


# =============================================================================
# Classification
# =============================================================================


class TestClassifyPayload:
    @pytest.mark.parametrize(
        "payload,kind",
        [
            ({"event_type": "refund.created", "data": {"id": "re_1"}}, EventKind.CREATED),
            ({"event": "REFUND.UPDATED", "data": {"id": "re_1"}}, EventKind.UPDATED),
            ({"type": "refund.succeeded", "data": {"object": {"id": "re_1"}}}, EventKind.SUCCEEDED),
            ({"event_type": "refund.failed", "id": "re_1"}, EventKind.FAILED),
            ({"id": "re_1", "object": "refund", "status": "PENDING"}, EventKind.NOTIFICATION),
            ({"id": "re_1", "status": "REFUNDED"}, EventKind.STATUS_UPDATE),
        ],
    )
    def test_refund_shapes(self, payload, kind):
        assert classify_payload(payload)[0] is kind

    @pytest.mark.parametrize(
        "payload",
        [
            {"id": "chg_1", "object": "charge", "status": "CAPTURED"},
            {"event_type": "charge.captured", "data": {"id": "chg_1"}},
            {"event_type": "refund.created", "data": {"id": "chg_1", "object": "charge"}},
            {"hello": "world"},
            ["not", "a", "dict"],
            None,
        ],
    )
    def test_non_refund_payloads(self, payload):
        assert classify_payload(payload) is None
        assert normalize_refund_event(payload) is None


# =============================================================================
# Normalization
# =============================================================================


class TestNormalizeRefundEvent:
    def test_created_event_nested_under_data(self, created_payload):
        event = normalize_refund_event(created_payload)

        assert event.kind is EventKind.CREATED
        assert event.refund_id == "re_webhook_001"
        assert event.charge_id == "chg_test_main"
        assert event.amount == Decimal("40")
        assert event.currency == "USD"
        assert event.status == "PENDING"
        assert event.target_status == RefundStatus.PENDING
        assert event.reference == "dash_77"
        assert event.metadata == {"ticket": "T-1"}
        assert event.description == "Created from dashboard"
        assert event.raw_payload is created_payload
        assert event.observed_at == datetime.fromtimestamp(1700000000, tz=dt_timezone.utc)

    def test_minor_units_example(self):
        event = normalize_refund_event(
            {
                "event_type": "refund.created",
                "data": {"id": "re_1", "charge_id": "chg_1", "amount": 10000, "currency": "usd"},
            }
        )

        assert event.amount == Decimal("100.00")
        assert event.currency == "USD"

    def test_notification_flat_charge_id(self, notification_payload):
        event = normalize_refund_event(notification_payload)

        assert event.kind is EventKind.NOTIFICATION
        assert event.charge_id == "chg_test_main"
        assert event.amount == Decimal("25.5")
        assert event.target_status == RefundStatus.REFUNDED

    def test_charge_as_plain_string(self):
        event = normalize_refund_event({"id": "re_1", "object": "refund", "charge": "chg_str"})

        assert event.charge_id == "chg_str"

    def test_status_update_has_no_charge(self, status_update_payload):
        event = normalize_refund_event(status_update_payload)

        assert event.kind is EventKind.STATUS_UPDATE
        assert event.charge_id is None
        assert event.amount is None

    def test_succeeded_event_defaults_status(self):
        event = normalize_refund_event({"event_type": "refund.succeeded", "data": {"id": "re_1"}})

        assert event.target_status == RefundStatus.REFUNDED

    def test_failed_event_carries_failure_reason(self):
        event = normalize_refund_event(
            {
                "event_type": "refund.failed",
                "data": {"id": "re_1", "failure_reason": "insufficient_funds"},
            }
        )

        assert event.target_status == RefundStatus.FAILED
        assert event.failure_reason == "insufficient_funds"

    def test_unknown_status_is_kept_raw(self):
        event = normalize_refund_event({"id": "re_1", "status": "ON_HOLD"})

        assert event.status == "ON_HOLD"
        assert event.target_status is None

    def test_millisecond_timestamp(self):
        event = normalize_refund_event({"id": "re_1", "status": "PENDING", "created": 1700000000000})

        assert event.observed_at == datetime.fromtimestamp(1700000000, tz=dt_timezone.utc)

    def test_missing_refund_id_is_malformed(self):
        with pytest.raises(MalformedWebhookError):
            normalize_refund_event({"event_type": "refund.updated", "data": {"status": "REFUNDED"}})

    def test_created_without_charge_is_malformed(self):
        with pytest.raises(MalformedWebhookError):
            normalize_refund_event(
                {"event_type": "refund.created", "data": {"id": "re_1", "amount": 100}}
            )
