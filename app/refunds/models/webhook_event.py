"""
WebhookEvent model for queued refund webhook processing.

Stores every signed refund webhook received on the queued endpoint so it can
be processed by a Celery task, retried on failure and audited later.

Gateway refund webhooks carry no delivery id, so deliveries are keyed by the
SHA-256 digest of the raw body: a re-delivery of the exact same body maps onto
the same row.

Usage:
    from refunds.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        payload_digest=hashlib.sha256(raw_body).hexdigest(),
        defaults={"event_type": "refund.updated", "payload": payload},
    )

    if not created and event.is_processed:
        return HttpResponse(status=200)
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from refunds.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks refund webhook deliveries for retryable processing.

    Processing Flow:
        1. Webhook arrives, verify signature
        2. Insert/get WebhookEvent by payload digest
        3. If exists and PROCESSED -> return 200 (duplicate)
        4. Queue process_webhook_event
        5. Task sets PROCESSING, normalizes and reconciles
        6. Task sets PROCESSED or FAILED (and re-raises for retry)

    Fields:
        payload_digest: SHA-256 hex digest of the raw body (unique)
        event_type: Event type as sent by the gateway (may be empty)
        payload: Decoded JSON body
        status: Processing status
        processed_at: When event was successfully processed
        error_message: Error details if processing failed
        retry_count: Number of processing attempts
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    payload_digest = models.CharField(
        max_length=64,
        unique=True,
        help_text="SHA-256 hex digest of the raw webhook body",
    )

    event_type = models.CharField(
        max_length=100,
        blank=True,
        default="",
        db_index=True,
        help_text="Gateway event type (e.g., 'refund.updated')",
    )

    # ==========================================================================
    # Payload
    # ==========================================================================

    payload = models.JSONField(
        help_text="Decoded webhook body",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    # ==========================================================================
    # Error Handling
    # ==========================================================================

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.payload_digest[:12]}, {self.event_type or '-'})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    def mark_processing(self) -> None:
        """
        Mark event as being processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        """
        Mark event as successfully processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        """
        Mark event as failed with error message.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message
