"""
Tests for refund Celery tasks.

Tests cover:
- Queued webhook processing and its idempotency
- Malformed events (not retried)
- Failed and stuck webhook maintenance
- Refund status notification e-mails
"""

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.utils import timezone
from freezegun import freeze_time

from refunds.models import Refund
from refunds.state_machines import RefundStatus, WebhookEventStatus
from refunds.tasks import (
    MAX_WEBHOOK_RETRIES,
    cleanup_stuck_webhooks,
    process_webhook_event,
    retry_failed_webhooks,
    send_refund_status_notification,
)
from refunds.tests.factories import RefundFactory, WebhookEventFactory

pytestmark = pytest.mark.django_db


# =============================================================================
# process_webhook_event
# =============================================================================


class TestProcessWebhookEvent:
    def test_processes_status_update(self, pending_refund):
        event = WebhookEventFactory(payload={"id": pending_refund.refund_id, "status": "ACCEPTED"})

        result = process_webhook_event(str(event.id))

        assert result["status"] == "processed"
        assert result["action"] == "updated"
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.retry_count == 1
        pending_refund.refresh_from_db()
        assert pending_refund.status == RefundStatus.ACCEPTED

    def test_not_found(self):
        assert process_webhook_event(str(uuid4()))["status"] == "not_found"

    def test_already_processed_is_skipped(self, pending_refund):
        event = WebhookEventFactory(
            payload={"id": pending_refund.refund_id, "status": "REFUNDED"},
            status=WebhookEventStatus.PROCESSED,
        )

        assert process_webhook_event(str(event.id))["status"] == "already_processed"
        pending_refund.refresh_from_db()
        assert pending_refund.status == RefundStatus.PENDING

    def test_non_refund_payload_is_ignored(self):
        event = WebhookEventFactory(payload={"id": "chg_1", "object": "charge"})

        assert process_webhook_event(str(event.id))["status"] == "ignored"
        event.refresh_from_db()
        assert event.is_processed

    def test_malformed_payload_is_not_retried(self):
        event = WebhookEventFactory(payload={"event_type": "refund.updated", "data": {"status": "X"}})

        result = process_webhook_event(str(event.id))

        assert result["status"] == "malformed"
        event.refresh_from_db()
        assert event.is_failed
        assert event.retry_count == MAX_WEBHOOK_RETRIES

    def test_unexpected_error_marks_failed_and_raises(self, pending_refund):
        event = WebhookEventFactory(payload={"id": pending_refund.refund_id, "status": "ACCEPTED"})

        with patch(
            "refunds.services.RefundReconciler.reconcile",
            side_effect=RuntimeError("db down"),
        ):
            with pytest.raises(RuntimeError):
                process_webhook_event.run(str(event.id))

        event.refresh_from_db()
        assert event.is_failed
        assert "RuntimeError: db down" in event.error_message

    def test_reprocessing_is_idempotent(self, pending_refund):
        payload = {"id": pending_refund.refund_id, "status": "REFUNDED"}
        first = WebhookEventFactory(payload=payload)
        second = WebhookEventFactory(payload=payload)

        process_webhook_event(str(first.id))
        result = process_webhook_event(str(second.id))

        assert result["action"] == "unchanged"
        assert Refund.objects.get(refund_id=pending_refund.refund_id).status == RefundStatus.REFUNDED


# =============================================================================
# Maintenance Tasks
# =============================================================================


class TestRetryFailedWebhooks:
    def test_requeues_failed_events_under_retry_limit(self):
        retryable = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=1)
        WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=MAX_WEBHOOK_RETRIES)
        WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        with patch("refunds.tasks.process_webhook_event.delay") as mock_delay:
            result = retry_failed_webhooks()

        assert result == {"queued_count": 1}
        mock_delay.assert_called_once_with(str(retryable.id))


class TestCleanupStuckWebhooks:
    def test_resets_old_processing_events(self):
        with freeze_time(timezone.now() - timedelta(hours=1)):
            stuck = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        fresh = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)

        result = cleanup_stuck_webhooks()

        assert result == {"reset_count": 1}
        stuck.refresh_from_db()
        fresh.refresh_from_db()
        assert stuck.is_failed
        assert fresh.status == WebhookEventStatus.PROCESSING


# =============================================================================
# send_refund_status_notification
# =============================================================================


class TestSendRefundStatusNotification:
    def test_success_email(self, payment, refunded_refund, mailoutbox):
        result = send_refund_status_notification(str(refunded_refund.pk), RefundStatus.PENDING)

        assert result["status"] == "sent"
        assert len(mailoutbox) == 1
        message = mailoutbox[0]
        assert message.subject == "Refund Processed Successfully"
        assert message.to == [payment.customer_email]
        assert "40.00 USD" in message.body
        assert refunded_refund.refund_id in message.body

    def test_delay_runs_inline_without_a_result_broker(self, celery_eager, payment, refunded_refund, mailoutbox):
        result = send_refund_status_notification.delay(str(refunded_refund.pk), RefundStatus.PENDING)

        assert result.get(timeout=1)["status"] == "sent"
        assert len(mailoutbox) == 1
        assert celery_eager.conf.result_backend == "cache+memory://"

    def test_failure_email_includes_reason(self, payment, mailoutbox):
        refund = RefundFactory(charge_id=payment.charge_id)
        refund.apply_status(RefundStatus.DECLINED)
        refund.save()

        send_refund_status_notification(str(refund.pk))

        assert mailoutbox[0].subject == "Refund Processing Failed"
        assert "requested_by_customer" in mailoutbox[0].body

    def test_skipped_without_customer_email(self, mailoutbox):
        refund = RefundFactory(charge_id="chg_no_payment", status=RefundStatus.REFUNDED)

        assert send_refund_status_notification(str(refund.pk))["status"] == "skipped"
        assert mailoutbox == []

    def test_missing_refund(self, mailoutbox):
        assert send_refund_status_notification(str(uuid4()))["status"] == "not_found"
