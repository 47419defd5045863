"""
Customer notification for refund status changes.

The reconciler calls queue_refund_status_notification() once per real
transition into a terminal status. The mail itself is sent by a Celery task
registered to run after the surrounding transaction commits, so a rolled-back
transition never notifies.

Usage:
    from refunds.notifications import queue_refund_status_notification

    with transaction.atomic():
        refund.apply_status(RefundStatus.REFUNDED)
        refund.save()
        queue_refund_status_notification(refund, previous_status="pending")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from django.db import transaction

from refunds.state_machines import RefundStatus, is_terminal_failure

if TYPE_CHECKING:
    from refunds.models import Refund

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundStatusMessage:
    subject: str
    body: str


def build_refund_status_message(refund: Refund) -> RefundStatusMessage:
    """Render the subject and plain-text body for a refund's current status."""
    amount = f"{refund.amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,} {refund.currency.upper()}"

    if refund.status == RefundStatus.REFUNDED:
        return RefundStatusMessage(
            subject="Refund Processed Successfully",
            body="\n".join(
                [
                    "Good news!",
                    "",
                    "Your refund has been processed successfully.",
                    f"Refund ID: {refund.refund_id}",
                    f"Amount: {amount}",
                    "The refunded amount will appear in your account within 3-5 business days.",
                    "If you have any questions, please contact our support team.",
                ]
            ),
        )

    if is_terminal_failure(refund.status):
        return RefundStatusMessage(
            subject="Refund Processing Failed",
            body="\n".join(
                [
                    "Refund Update",
                    "",
                    "Unfortunately, your refund could not be processed.",
                    f"Refund ID: {refund.refund_id}",
                    f"Amount: {amount}",
                    f"Reason: {refund.reason or 'Please contact support for more details'}",
                    "Please contact our support team for assistance.",
                ]
            ),
        )

    return RefundStatusMessage(
        subject="Refund Status Updated",
        body="\n".join(
            [
                "Refund Update",
                "",
                "Your refund status has been updated.",
                f"Refund ID: {refund.refund_id}",
                f"Status: {refund.get_status_display()}",
                f"Amount: {amount}",
                "If you have any questions, please contact our support team.",
            ]
        ),
    )


def queue_refund_status_notification(refund: Refund, previous_status: str | None) -> None:
    """
    Send the status notification once the current transaction commits.

    Queueing failures are logged and never propagate into reconciliation.
    """
    refund_pk = str(refund.pk)
    new_status = refund.status

    def _enqueue() -> None:
        from refunds.tasks import send_refund_status_notification

        try:
            send_refund_status_notification.delay(refund_pk, previous_status)
        except Exception:
            logger.exception(
                "Failed to queue refund notification",
                extra={"refund_id": refund.refund_id, "new_status": new_status},
            )
            return
        logger.info(
            "Refund notification queued",
            extra={
                "refund_id": refund.refund_id,
                "old_status": previous_status,
                "new_status": new_status,
            },
        )

    transaction.on_commit(_enqueue)
