"""
Celery tasks for refund processing.

This module provides async tasks for:
- Processing queued refund webhook events
- Retrying failed webhook events
- Resetting webhook events stuck in processing
- Sending refund status notification e-mails

Usage:
    from refunds.tasks import process_webhook_event

    # Queue a webhook for async processing
    process_webhook_event.delay(str(webhook_event.id))

    # Periodic tasks run via settings.CELERY_BEAT_SCHEDULE
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone

from refunds.exceptions import MalformedWebhookError
from refunds.models import Payment, Refund, WebhookEvent
from refunds.notifications import build_refund_status_message
from refunds.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = settings.REFUND_WEBHOOK_MAX_RETRIES
MAX_NOTIFICATION_RETRIES = 3
STUCK_PROCESSING_THRESHOLD_MINUTES = 30


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Normalize and reconcile a stored refund webhook.

    The whole handler is re-run on retry; reconciliation is idempotent, so
    a partially processed event is safe to process again.

    Args:
        webhook_event_id: UUID of the WebhookEvent to process

    Returns:
        Dict with processing result status

    Raises:
        Exception: Re-raised to trigger Celery retry mechanism
    """
    # Import here to avoid circular imports
    from refunds.services import RefundReconciler
    from refunds.webhooks.normalizer import normalize_refund_event

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    log_context = {"webhook_event_id": str(webhook_event_id)}

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error("WebhookEvent not found", extra=log_context)
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        logger.info("WebhookEvent already processed, skipping", extra=log_context)
        return {"status": "already_processed", "webhook_event_id": str(webhook_event_id)}

    webhook_event.mark_processing()
    webhook_event.save()

    log_context.update(
        event_type=webhook_event.event_type,
        retry_count=webhook_event.retry_count,
    )
    logger.info("Processing refund webhook event", extra=log_context)

    try:
        event = normalize_refund_event(webhook_event.payload)
        if event is None:
            webhook_event.mark_processed()
            webhook_event.save()
            logger.info("Webhook is not a refund event, nothing to do", extra=log_context)
            return {"status": "ignored", "webhook_event_id": str(webhook_event_id)}

        with transaction.atomic():
            result = RefundReconciler.reconcile(event)

    except MalformedWebhookError as e:
        # Retrying cannot fix a broken payload
        webhook_event.mark_failed(str(e))
        webhook_event.retry_count = MAX_WEBHOOK_RETRIES
        webhook_event.save()
        logger.warning(
            "Malformed refund webhook",
            extra={**log_context, "error": e.message},
        )
        return {
            "status": "malformed",
            "webhook_event_id": str(webhook_event_id),
            "error": e.message,
        }

    except Exception as e:
        error_msg = f"{type(e).__name__}: {str(e)}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.exception(
            "Webhook processing failed with exception",
            extra={**log_context, "error": error_msg},
        )
        raise

    webhook_event.mark_processed()
    webhook_event.save()

    outcome = result.data
    logger.info(
        "Webhook processed successfully",
        extra={**log_context, "refund_id": event.refund_id, "action": outcome.action.value},
    )
    return {
        "status": "processed",
        "webhook_event_id": str(webhook_event_id),
        "refund_id": event.refund_id,
        "action": outcome.action.value,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Re-queues failed events that have not exhausted their retries.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:100]

    queued_count = 0
    for webhook in failed_webhooks:
        try:
            process_webhook_event.delay(str(webhook.id))
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook.id)},
            )
            continue
        queued_count += 1
        logger.info(
            "Queued failed webhook for retry",
            extra={"webhook_event_id": str(webhook.id), "retry_count": webhook.retry_count},
        )

    logger.info(
        f"Queued {queued_count} failed webhooks for retry",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task to reset webhooks stuck in PROCESSING.

    Handles workers that died mid-task: the event is marked FAILED so
    retry_failed_webhooks picks it up again.

    Returns:
        Dict with count of webhooks reset
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)
    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "stuck_since": webhook.updated_at.isoformat(),
            },
        )

    return {"reset_count": reset_count}


# =============================================================================
# Notification Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": MAX_NOTIFICATION_RETRIES},
)
def send_refund_status_notification(self, refund_pk: str, previous_status: str | None = None) -> dict:
    """
    E-mail the customer about a refund status change.

    The recipient is the customer e-mail of the refund's payment. Refunds
    whose payment or e-mail is unknown are skipped.

    Args:
        refund_pk: Internal UUID of the refund
        previous_status: Status before the transition (for logging)

    Returns:
        Dict with delivery status
    """
    try:
        refund = Refund.objects.get(pk=refund_pk)
    except Refund.DoesNotExist:
        logger.error("Refund not found for notification", extra={"refund_pk": refund_pk})
        return {"status": "not_found", "refund_pk": refund_pk}

    log_context = {
        "refund_id": refund.refund_id,
        "charge_id": refund.charge_id,
        "old_status": previous_status,
        "new_status": refund.status,
    }

    payment = Payment.objects.for_charge(refund.charge_id)
    if payment is None or not payment.customer_email:
        logger.warning(
            "Cannot send refund notification - missing payment or email",
            extra=log_context,
        )
        return {"status": "skipped", "refund_id": refund.refund_id}

    message = build_refund_status_message(refund)
    send_mail(
        subject=message.subject,
        message=message.body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[payment.customer_email],
    )

    logger.info("Refund notification sent", extra=log_context)
    return {"status": "sent", "refund_id": refund.refund_id}
