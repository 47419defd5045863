"""
Payment model mirroring an original gateway charge.

A Payment is created the first time a charge is observed (either from a
gateway `get_charge` lookup or supplied by the checkout flow) and is only
mutated afterwards by the refund status rollup.

Refunds reference their Payment by `charge_id` rather than a foreign key:
the two records arrive on independent paths (refund initiation, webhooks,
charge lookups) and are correlated by business key.

Usage:
    from refunds.models import Payment

    payment = Payment.objects.for_charge("chg_123")
    payment.apply_refund_rollup(refunded_total=Decimal("40.00"))
"""

from __future__ import annotations

import logging
from decimal import Decimal

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from refunds.managers import PaymentManager
from refunds.state_machines import PaymentStatus

logger = logging.getLogger(__name__)


class Payment(UUIDPrimaryKeyMixin, BaseModel):
    """
    Represents an original charge at the gateway.

    Status Flow (refund rollup):
        SUCCEEDED -> PARTIALLY_REFUNDED -> REFUNDED
        SUCCEEDED -> REFUNDED

    Fields:
        charge_id: Gateway charge identifier (unique business key)
        amount: Charge amount in major units (2 decimal places)
        currency: ISO 4217 currency code (uppercase)
        status: Charge status, refund states derived from refunds
        payment_method: Payment method tag reported by the gateway
        customer_email: Where refund notifications are sent
        gateway_response: Last raw charge payload from the gateway

    Note:
        The sum of succeeded refund amounts must never exceed `amount`.
        Refund initiation enforces this before calling the gateway; the
        rollup logs an anomaly if the gateway ever reports more.
    """

    # ==========================================================================
    # Gateway Identification
    # ==========================================================================

    charge_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway charge ID (chg_xxx)",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Charge amount in major currency units",
    )

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (uppercase)",
    )

    # ==========================================================================
    # Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
        help_text="Charge status; refund states are rolled up from refunds",
    )

    payment_method = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Payment method tag (e.g., 'VISA', 'KNET')",
    )

    customer_email = models.EmailField(
        null=True,
        blank=True,
        help_text="Customer e-mail for refund notifications",
    )

    # ==========================================================================
    # Gateway Snapshot
    # ==========================================================================

    gateway_response = models.JSONField(
        default=dict,
        blank=True,
        help_text="Last raw charge payload received from the gateway",
    )

    objects = PaymentManager()

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="payment_amount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.charge_id}, {self.status}, {self.amount} {self.currency})"

    def apply_refund_rollup(self, refunded_total: Decimal) -> bool:
        """
        Derive the refund status from the total of succeeded refunds.

        REFUNDED once the total covers the charge amount, otherwise
        PARTIALLY_REFUNDED. A payment never moves back from REFUNDED.

        Args:
            refunded_total: Sum of succeeded refund amounts for this charge

        Returns:
            True if the status changed (caller must save)
        """
        if refunded_total <= 0:
            return False

        if refunded_total > self.amount:
            logger.warning(
                "Refunded total exceeds payment amount",
                extra={
                    "charge_id": self.charge_id,
                    "payment_amount": str(self.amount),
                    "refunded_total": str(refunded_total),
                },
            )

        if refunded_total >= self.amount:
            new_status = PaymentStatus.REFUNDED
        else:
            new_status = PaymentStatus.PARTIALLY_REFUNDED

        if self.status == PaymentStatus.REFUNDED or self.status == new_status:
            return False

        self.status = new_status
        return True

    @property
    def is_fully_refunded(self) -> bool:
        return self.status == PaymentStatus.REFUNDED
