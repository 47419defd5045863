"""
Refund model for tracking refund attempts against a gateway charge.

A Refund is created either by the synchronous initiation path (refund id
taken from the gateway's immediate response) or by webhook reconciliation
(for refunds created outside this service, e.g. from the gateway dashboard).
It is never deleted and is only mutated through reconciliation.

Usage:
    from refunds.models import Refund
    from refunds.state_machines import RefundStatus

    refund = Refund.objects.create(
        refund_id="re_123",
        charge_id="chg_123",
        amount=Decimal("40.000"),
        currency="USD",
    )

    # State transitions using django-fsm
    refund.apply_status(RefundStatus.REFUNDED)  # pending -> refunded
    refund.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, TransitionNotAllowed, transition

from core.exceptions import ConflictError
from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from refunds.exceptions import InvalidStatusTransitionError
from refunds.managers import RefundManager
from refunds.state_machines import (
    RefundReason,
    RefundStatus,
    RefundType,
    is_terminal,
    is_terminal_success,
)

NON_TERMINAL_SOURCES = [RefundStatus.PENDING, RefundStatus.ACCEPTED]


class Refund(UUIDPrimaryKeyMixin, BaseModel):
    """
    Represents one refund attempt against a Payment.

    State Flow:
        PENDING -> ACCEPTED -> REFUNDED
        PENDING -> ACCEPTED -> DECLINED / FAILED / RESTRICTED / REJECTED
        PENDING -> any terminal status

    Fields:
        refund_id: Gateway refund ID (unique, immutable once assigned)
        charge_id: Gateway charge ID of the parent Payment (business key)
        amount: Refund amount in major units (3 decimal places)
        currency: ISO 4217 currency code (uppercase)
        type: Full or partial refund
        status: Current FSM status
        reason: Reason code, or the gateway failure reason
        description: Free-text description sent to the gateway
        reference: Merchant reference sent to the gateway
        metadata: String-to-string mapping sent to the gateway
        gateway_response: Last raw payload seen for this refund
        refunded_at: When the refund reached REFUNDED (set once)

    Note:
        The status field is only moved forward. Reconciliation decides
        whether an incoming status may be applied before calling
        apply_status().
    """

    # ==========================================================================
    # Gateway Identification
    # ==========================================================================

    refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Gateway refund ID (re_xxx), immutable once set",
    )

    charge_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Gateway charge ID of the refunded payment",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=15,
        decimal_places=3,
        help_text="Refund amount in major currency units",
    )

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (uppercase)",
    )

    type = models.CharField(
        max_length=10,
        choices=RefundType.choices,
        default=RefundType.PARTIAL,
        help_text="Full or partial refund",
    )

    # ==========================================================================
    # Status
    # ==========================================================================

    status = FSMField(
        max_length=50,
        default=RefundStatus.PENDING,
        choices=RefundStatus.choices,
        db_index=True,
        help_text="Current status of the refund (managed by FSM)",
    )

    # ==========================================================================
    # Refund Details
    # ==========================================================================

    reason = models.CharField(
        max_length=255,
        blank=True,
        default=RefundReason.REQUESTED_BY_CUSTOMER,
        help_text="Reason code, replaced by the gateway failure reason on failure",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Description sent to the gateway",
    )

    reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Merchant reference sent to the gateway",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="String-to-string metadata sent to the gateway",
    )

    # ==========================================================================
    # Gateway Snapshot
    # ==========================================================================

    gateway_response = models.JSONField(
        default=dict,
        blank=True,
        help_text="Last raw payload seen for this refund (last write wins)",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the refund succeeded",
    )

    objects = RefundManager()

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(fields=["charge_id", "status"], name="refund_charge_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="refund_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund({self.refund_id or self.id}, {self.status}, {self.amount} {self.currency})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_refund_id = instance.__dict__.get("refund_id")
        return instance

    def save(self, *args, **kwargs):
        """Save, refusing to change a refund id that was already assigned."""
        loaded_refund_id = getattr(self, "_loaded_refund_id", None)
        if loaded_refund_id and self.refund_id != loaded_refund_id:
            raise ConflictError(
                "Refund id is immutable once assigned",
                error_code="REFUND_ID_IMMUTABLE",
                details={"refund_id": loaded_refund_id, "new_refund_id": self.refund_id},
            )
        super().save(*args, **kwargs)
        self._loaded_refund_id = self.refund_id

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=RefundStatus.PENDING, target=RefundStatus.ACCEPTED)
    def accept(self):
        """
        Gateway accepted the refund for processing.

        Transition: PENDING -> ACCEPTED
        """

    @transition(field=status, source=NON_TERMINAL_SOURCES, target=RefundStatus.REFUNDED)
    def complete(self):
        """
        Mark refund as refunded.

        Transition: PENDING/ACCEPTED -> REFUNDED

        The completion time is stamped only once.
        """
        if self.refunded_at is None:
            self.refunded_at = timezone.now()

    @transition(field=status, source=NON_TERMINAL_SOURCES, target=RefundStatus.DECLINED)
    def decline(self):
        """Transition: PENDING/ACCEPTED -> DECLINED"""

    @transition(field=status, source=NON_TERMINAL_SOURCES, target=RefundStatus.FAILED)
    def fail(self, reason: str | None = None):
        """
        Mark refund as failed.

        Transition: PENDING/ACCEPTED -> FAILED

        Args:
            reason: Gateway failure reason, replaces the stored reason
        """
        if reason:
            self.reason = reason[:255]

    @transition(field=status, source=NON_TERMINAL_SOURCES, target=RefundStatus.RESTRICTED)
    def restrict(self):
        """Transition: PENDING/ACCEPTED -> RESTRICTED"""

    @transition(field=status, source=NON_TERMINAL_SOURCES, target=RefundStatus.REJECTED)
    def reject(self):
        """Transition: PENDING/ACCEPTED -> REJECTED"""

    def apply_status(self, target: str, reason: str | None = None) -> None:
        """
        Run the transition that leads to `target`.

        Does not save - caller must save after calling.

        Raises:
            InvalidStatusTransitionError: If no transition from the current
                status leads to `target`
        """
        current = self.status
        try:
            if target == RefundStatus.ACCEPTED:
                self.accept()
            elif target == RefundStatus.REFUNDED:
                self.complete()
            elif target == RefundStatus.DECLINED:
                self.decline()
            elif target == RefundStatus.FAILED:
                self.fail(reason=reason)
            elif target == RefundStatus.RESTRICTED:
                self.restrict()
            elif target == RefundStatus.REJECTED:
                self.reject()
            else:
                raise TransitionNotAllowed(f"No transition leads to '{target}'")
        except TransitionNotAllowed as e:
            raise InvalidStatusTransitionError(
                f"Cannot move refund from '{current}' to '{target}'",
                details={
                    "refund_id": self.refund_id,
                    "current_status": current,
                    "target_status": target,
                },
            ) from e

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    @property
    def is_succeeded(self) -> bool:
        return is_terminal_success(self.status)
