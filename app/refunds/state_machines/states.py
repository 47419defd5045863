"""
State enums for refund models.

This module defines the enums used by the Payment, Refund and WebhookEvent
models. They are Django TextChoices for database storage and admin
integration.

State Machines Overview:

Refund Status:
    pending -> accepted -> refunded
    pending -> accepted -> declined / failed / restricted / rejected
    pending -> any terminal status (gateways sometimes skip accepted)

Payment Status (rollup only):
    succeeded -> partially_refunded -> refunded
    succeeded -> refunded
"""

from django.db import models


class RefundStatus(models.TextChoices):
    """
    States for the Refund model lifecycle.

    Terminal success: REFUNDED
    Terminal failure: DECLINED, FAILED, RESTRICTED, REJECTED

    All terminal states are absorbing.
    """

    PENDING = "pending", "Pending"
    ACCEPTED = "accepted", "Accepted"
    REFUNDED = "refunded", "Refunded"
    DECLINED = "declined", "Declined"
    FAILED = "failed", "Failed"
    RESTRICTED = "restricted", "Restricted"
    REJECTED = "rejected", "Rejected"


class PaymentStatus(models.TextChoices):
    """
    Status of the original charge as mirrored from the gateway.

    REFUNDED and PARTIALLY_REFUNDED are derived from the terminal
    outcomes of the payment's refunds.
    """

    PENDING = "pending", "Pending"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"


class RefundType(models.TextChoices):
    """Whether a refund returns the whole charge or part of it."""

    FULL = "full", "Full"
    PARTIAL = "partial", "Partial"


class RefundReason(models.TextChoices):
    """Reason codes accepted by the gateway."""

    DUPLICATE = "duplicate", "Duplicate"
    FRAUDULENT = "fraudulent", "Fraudulent"
    REQUESTED_BY_CUSTOMER = "requested_by_customer", "Requested by customer"
    OTHER = "other", "Other"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING -> PROCESSING -> PROCESSED
        PENDING -> PROCESSING -> FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


__all__ = [
    "PaymentStatus",
    "RefundReason",
    "RefundStatus",
    "RefundType",
    "WebhookEventStatus",
]
