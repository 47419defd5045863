"""
Tests for refund models and managers.

Tests cover:
- Refund id immutability
- Amount constraints
- Refund totals per charge
- Payment rollup status
- Payment upsert from gateway charges
- WebhookEvent processing marks
"""

from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction

from core.exceptions import ConflictError
from refunds.models import Payment, Refund
from refunds.state_machines import PaymentStatus, RefundStatus, WebhookEventStatus
from refunds.tests.factories import PaymentFactory, RefundFactory, WebhookEventFactory

pytestmark = pytest.mark.django_db


# =============================================================================
# Refund
# =============================================================================


class TestRefundIdentity:
    def test_refund_id_cannot_change_once_stored(self, pending_refund):
        refund = Refund.objects.get(pk=pending_refund.pk)
        refund.refund_id = "re_other"

        with pytest.raises(ConflictError) as exc_info:
            refund.save()

        assert exc_info.value.error_code == "REFUND_ID_IMMUTABLE"
        assert Refund.objects.filter(refund_id="re_test_main").exists()

    def test_refund_id_can_be_assigned_when_empty(self, payment):
        refund = RefundFactory(refund_id=None, charge_id=payment.charge_id)
        refund = Refund.objects.get(pk=refund.pk)

        refund.refund_id = "re_assigned"
        refund.save()

        refund.refresh_from_db()
        assert refund.refund_id == "re_assigned"

    def test_refund_id_is_unique(self, pending_refund):
        with pytest.raises(IntegrityError), transaction.atomic():
            RefundFactory(refund_id=pending_refund.refund_id)

    def test_amount_must_be_positive(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            RefundFactory(amount=Decimal("0"))


class TestRefundQuerySet:
    def test_total_refunded_counts_only_succeeded(self, payment):
        RefundFactory(charge_id=payment.charge_id, amount=Decimal("10.000"), status=RefundStatus.REFUNDED)
        RefundFactory(charge_id=payment.charge_id, amount=Decimal("15.500"), status=RefundStatus.REFUNDED)
        RefundFactory(charge_id=payment.charge_id, amount=Decimal("30.000"), status=RefundStatus.FAILED)
        RefundFactory(charge_id=payment.charge_id, amount=Decimal("5.000"), status=RefundStatus.PENDING)
        RefundFactory(charge_id="chg_other", amount=Decimal("99.000"), status=RefundStatus.REFUNDED)

        assert Refund.objects.total_refunded(payment.charge_id) == Decimal("25.500")

    def test_total_refunded_without_refunds(self):
        assert Refund.objects.total_refunded("chg_none") == Decimal("0")

    def test_in_flight(self, payment):
        pending = RefundFactory(charge_id=payment.charge_id)
        accepted = RefundFactory(charge_id=payment.charge_id, status=RefundStatus.ACCEPTED)
        declined = RefundFactory(charge_id=payment.charge_id, status=RefundStatus.DECLINED)

        charge_refunds = Refund.objects.for_charge(payment.charge_id)
        assert set(charge_refunds.in_flight()) == {pending, accepted}
        assert declined not in charge_refunds.in_flight()


# =============================================================================
# Payment
# =============================================================================


class TestPaymentRollup:
    def test_partial_total(self, payment):
        assert payment.apply_refund_rollup(Decimal("40.000")) is True
        assert payment.status == PaymentStatus.PARTIALLY_REFUNDED

    def test_full_total(self, payment):
        assert payment.apply_refund_rollup(Decimal("100.000")) is True
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.is_fully_refunded

    def test_zero_total_changes_nothing(self, payment):
        assert payment.apply_refund_rollup(Decimal("0")) is False
        assert payment.status == PaymentStatus.SUCCEEDED

    def test_never_moves_back_from_refunded(self):
        payment = PaymentFactory(status=PaymentStatus.REFUNDED)

        assert payment.apply_refund_rollup(Decimal("10.000")) is False
        assert payment.status == PaymentStatus.REFUNDED

    def test_over_refund_still_marks_refunded(self, payment, caplog):
        assert payment.apply_refund_rollup(Decimal("150.000")) is True
        assert payment.status == PaymentStatus.REFUNDED
        assert "Refunded total exceeds payment amount" in caplog.text


class TestPaymentManager:
    def test_for_charge(self, payment):
        assert Payment.objects.for_charge(payment.charge_id) == payment
        assert Payment.objects.for_charge("chg_missing") is None
        assert Payment.objects.for_charge(None) is None

    def test_upsert_creates_payment(self):
        payment, created = Payment.objects.upsert_from_gateway(
            {
                "id": "chg_gw_1",
                "amount": 75.5,
                "currency": "kwd",
                "status": "CAPTURED",
                "source": {"payment_method": "KNET"},
                "customer": {"email": "buyer@example.com"},
            }
        )

        assert created is True
        assert payment.amount == Decimal("75.5")
        assert payment.currency == "KWD"
        assert payment.status == PaymentStatus.SUCCEEDED
        assert payment.payment_method == "KNET"
        assert payment.customer_email == "buyer@example.com"

    def test_upsert_refresh_keeps_rollup_status(self):
        PaymentFactory(charge_id="chg_gw_2", status=PaymentStatus.PARTIALLY_REFUNDED)

        payment, created = Payment.objects.upsert_from_gateway(
            {"id": "chg_gw_2", "amount": 100, "currency": "USD", "status": "CAPTURED"}
        )

        assert created is False
        assert payment.status == PaymentStatus.PARTIALLY_REFUNDED
        assert payment.gateway_response["status"] == "CAPTURED"


# =============================================================================
# WebhookEvent
# =============================================================================


class TestWebhookEventMarks:
    def test_processing_increments_retry_count(self):
        event = WebhookEventFactory()

        event.mark_processing()

        assert event.status == WebhookEventStatus.PROCESSING
        assert event.retry_count == 1

    def test_processed_clears_error(self):
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, error_message="boom")

        event.mark_processed()

        assert event.is_processed
        assert event.processed_at is not None
        assert event.error_message is None

    def test_failed(self):
        event = WebhookEventFactory()

        event.mark_failed("boom")

        assert event.is_failed
        assert event.error_message == "boom"
