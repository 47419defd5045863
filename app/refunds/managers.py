"""
QuerySets and managers for refund models.

Refunds are related to payments by charge id, so per-charge lookups live
here instead of on a reverse foreign-key accessor.

Usage:
    from refunds.models import Payment, Refund

    Refund.objects.for_charge("chg_123").succeeded()
    Refund.objects.total_refunded("chg_123")  # Decimal("40.000")

    payment, created = Payment.objects.upsert_from_gateway(charge_data)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import models
from django.db.models import Sum

from refunds.state_machines import PaymentStatus
from refunds.state_machines.policy import (
    NON_TERMINAL_STATUSES,
    TERMINAL_SUCCESS_STATUSES,
)

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class RefundQuerySet(models.QuerySet):
    """Chainable refund filters."""

    def for_charge(self, charge_id: str) -> RefundQuerySet:
        return self.filter(charge_id=charge_id)

    def succeeded(self) -> RefundQuerySet:
        return self.filter(status__in=TERMINAL_SUCCESS_STATUSES)

    def in_flight(self) -> RefundQuerySet:
        return self.filter(status__in=NON_TERMINAL_STATUSES)


class RefundManager(models.Manager.from_queryset(RefundQuerySet)):
    """Manager exposing RefundQuerySet plus per-charge aggregates."""

    def total_refunded(self, charge_id: str) -> Decimal:
        """
        Sum of succeeded refund amounts for a charge.

        Returns Decimal("0") when the charge has no succeeded refunds.
        """
        total = self.for_charge(charge_id).succeeded().aggregate(total=Sum("amount"))["total"]
        return total if total is not None else Decimal("0")


class PaymentManager(models.Manager):
    """Manager for Payment lookups keyed by gateway charge id."""

    def for_charge(self, charge_id: str | None):
        """Return the payment for a charge id, or None if not yet observed."""
        if not charge_id:
            return None
        return self.filter(charge_id=charge_id).first()

    def upsert_from_gateway(self, charge: dict[str, Any]):
        """
        Create or refresh a Payment from a gateway charge object.

        Only the mirrored gateway fields are written. The refund rollup
        status is never downgraded by a charge lookup.

        Args:
            charge: Charge object as returned by GatewayClient.get_charge()

        Returns:
            Tuple of (payment, created)
        """
        charge_id = charge["id"]
        gateway_status = str(charge.get("status") or "").lower()
        source = charge.get("source") or {}

        defaults: dict[str, Any] = {
            "amount": Decimal(str(charge.get("amount", 0))),
            "currency": str(charge.get("currency") or "").upper(),
            "payment_method": str(source.get("payment_method") or "")[:50],
            "gateway_response": charge,
        }
        customer = charge.get("customer") or {}
        if customer.get("email"):
            defaults["customer_email"] = customer["email"]

        payment, created = self.get_or_create(
            charge_id=charge_id,
            defaults={
                **defaults,
                "status": (
                    PaymentStatus.SUCCEEDED
                    if gateway_status in ("captured", "succeeded")
                    else PaymentStatus.PENDING
                ),
            },
        )
        if not created:
            for field_name, value in defaults.items():
                setattr(payment, field_name, value)
            payment.save(update_fields=[*defaults.keys(), "updated_at"])

        logger.info(
            "Payment %s from gateway charge",
            "created" if created else "refreshed",
            extra={"charge_id": charge_id},
        )
        return payment, created
