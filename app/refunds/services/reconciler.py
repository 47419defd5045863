"""
Reconciliation of gateway refund events with local refund state.

Webhooks are delivered at least once and in any order, and the same refund
may also be refreshed from the synchronous status lookup. Every path funnels
through RefundReconciler.reconcile(), which:

1. Locks the refund row by gateway refund id (select_for_update)
2. Creates the refund if it is unknown and the event may create records
3. Drops status-only updates for unknown refunds (logged, never retried)
4. Overwrites the raw gateway snapshot on every event (last payload wins)
5. Moves the status forward only (see state_machines.policy)
6. On a real transition into a terminal status, queues one customer
   notification; on terminal success, rolls up the parent Payment status

Usage:
    from refunds.services import RefundReconciler

    result = RefundReconciler.reconcile(event)
    if result.success:
        outcome = result.data
        print(outcome.action, outcome.previous_status, outcome.new_status)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.services import BaseService, ServiceResult

from refunds.exceptions import MalformedWebhookError
from refunds.models import Payment, Refund
from refunds.notifications import queue_refund_status_notification
from refunds.state_machines import (
    RefundReason,
    RefundStatus,
    RefundType,
    TransitionDecision,
    decide_transition,
    is_terminal,
    is_terminal_success,
)

if TYPE_CHECKING:
    from refunds.webhooks.normalizer import RefundEvent


logger = logging.getLogger(__name__)


class ReconcileAction(str, enum.Enum):
    """What reconciliation did with an event."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    IGNORED_STALE = "ignored_stale"
    IGNORED_CONFLICT = "ignored_conflict"
    DROPPED_UNKNOWN = "dropped_unknown"


@dataclass
class ReconcileOutcome:
    """
    Result of reconciling one event.

    Attributes:
        action: What happened
        refund: The refund record (None when the event was dropped)
        previous_status: Status before the event (None for new records)
        new_status: Status after the event
    """

    action: ReconcileAction
    refund: Refund | None = None
    previous_status: str | None = None
    new_status: str | None = None

    @property
    def transitioned(self) -> bool:
        return self.new_status is not None and self.new_status != self.previous_status

    @property
    def reached_terminal(self) -> bool:
        return self.transitioned and is_terminal(self.new_status)


class RefundReconciler(BaseService):
    """
    Applies normalized refund events to the refund state store.

    All methods are classmethods; the service holds no state.
    """

    @classmethod
    def reconcile(cls, event: RefundEvent) -> ServiceResult[ReconcileOutcome]:
        """
        Apply one refund event.

        Args:
            event: Normalized refund event

        Returns:
            ServiceResult with a ReconcileOutcome. Dropped, stale and
            conflicting events are successful outcomes: the sender must
            not retry them.

        Raises:
            MalformedWebhookError: If a creation event lacks the amount or
                currency needed to create the record
        """
        log = cls.get_logger()

        with cls.atomic():
            refund = Refund.objects.select_for_update().filter(refund_id=event.refund_id).first()

            if refund is None:
                outcome = cls._create_or_drop(event)
            else:
                outcome = cls._apply_to_existing(refund, event)

            if outcome.reached_terminal:
                cls.apply_terminal_side_effects(outcome.refund, outcome.previous_status)

        log.info(
            f"Reconciled refund event: {outcome.action.value}",
            extra={
                "refund_id": event.refund_id,
                "charge_id": event.charge_id,
                "event_kind": event.kind.value,
                "old_status": outcome.previous_status,
                "new_status": outcome.new_status,
            },
        )
        return ServiceResult.success(outcome)

    # ==========================================================================
    # Creation
    # ==========================================================================

    @classmethod
    def _create_or_drop(cls, event: RefundEvent) -> ReconcileOutcome:
        if not event.kind.may_create or not event.charge_id:
            cls.get_logger().warning(
                "Dropping update for unknown refund",
                extra={
                    "refund_id": event.refund_id,
                    "charge_id": event.charge_id,
                    "event_kind": event.kind.value,
                },
            )
            return ReconcileOutcome(action=ReconcileAction.DROPPED_UNKNOWN)

        payment = Payment.objects.for_charge(event.charge_id)
        currency = event.currency or (payment.currency if payment else None)

        if event.amount is None or event.amount <= 0 or not currency:
            raise MalformedWebhookError(
                "Refund creation event is missing a positive amount or currency",
                details={"refund_id": event.refund_id, "charge_id": event.charge_id},
            )

        refund = Refund(
            refund_id=event.refund_id,
            charge_id=event.charge_id,
            amount=event.amount,
            currency=currency,
            type=cls.infer_refund_type(event.amount, payment),
            reason=event.reason or RefundReason.REQUESTED_BY_CUSTOMER,
            description=event.description or "",
            reference=event.reference,
            metadata=event.metadata,
            gateway_response=event.raw_payload,
        )

        target = event.target_status
        if target is None:
            cls._log_unrecognised_status(event)
        elif target != RefundStatus.PENDING:
            refund.apply_status(target, reason=event.failure_reason)

        try:
            # Savepoint so a lost creation race leaves the outer transaction usable
            with transaction.atomic():
                refund.save(force_insert=True)
        except IntegrityError:
            existing = Refund.objects.select_for_update().get(refund_id=event.refund_id)
            cls.get_logger().info(
                "Refund created concurrently, applying event to existing record",
                extra={"refund_id": event.refund_id},
            )
            return cls._apply_to_existing(existing, event)

        return ReconcileOutcome(
            action=ReconcileAction.CREATED,
            refund=refund,
            previous_status=None,
            new_status=refund.status,
        )

    @staticmethod
    def infer_refund_type(amount, payment: Payment | None) -> str:
        """
        Full when the amount covers the whole payment, partial otherwise.

        Partial when the payment is unknown: never claim full without evidence.
        """
        if payment is not None and amount >= payment.amount:
            return RefundType.FULL
        return RefundType.PARTIAL

    # ==========================================================================
    # Updates
    # ==========================================================================

    @classmethod
    def _apply_to_existing(cls, refund: Refund, event: RefundEvent) -> ReconcileOutcome:
        log = cls.get_logger()
        previous = refund.status
        log_context = {
            "refund_id": refund.refund_id,
            "charge_id": refund.charge_id,
            "old_status": previous,
            "incoming_status": event.status,
        }

        # Snapshot is last-write-wins, independent of the status decision
        refund.gateway_response = event.raw_payload
        action = ReconcileAction.UNCHANGED

        target = event.target_status
        if target is None:
            cls._log_unrecognised_status(event)
        else:
            decision = decide_transition(previous, target)
            if decision is TransitionDecision.APPLY:
                refund.apply_status(target, reason=event.failure_reason)
                action = ReconcileAction.UPDATED
            elif decision is TransitionDecision.STALE:
                log.warning("Ignoring out-of-order refund status", extra=log_context)
                action = ReconcileAction.IGNORED_STALE
            elif decision is TransitionDecision.CONFLICT:
                log.warning(
                    "Conflicting terminal status for refund, keeping stored status",
                    extra=log_context,
                )
                action = ReconcileAction.IGNORED_CONFLICT

        refund.save()

        return ReconcileOutcome(
            action=action,
            refund=refund,
            previous_status=previous,
            new_status=refund.status,
        )

    # ==========================================================================
    # Side Effects
    # ==========================================================================

    @classmethod
    def apply_terminal_side_effects(cls, refund: Refund, previous_status: str | None) -> None:
        """
        Run the side effects of a transition into a terminal status.

        Must be called once per real transition, inside the transaction that
        persisted it. The notification is queued on commit.
        """
        queue_refund_status_notification(refund, previous_status)
        if is_terminal_success(refund.status):
            cls.rollup_payment(refund.charge_id)

    @classmethod
    def rollup_payment(cls, charge_id: str) -> Payment | None:
        """
        Recompute the parent payment's refund status.

        Best-effort: a missing payment is logged and skipped.

        Returns:
            The payment, or None if it is not known locally
        """
        log = cls.get_logger()
        payment = Payment.objects.select_for_update().filter(charge_id=charge_id).first()
        if payment is None:
            log.warning(
                "Payment not found for refund rollup",
                extra={"charge_id": charge_id},
            )
            return None

        refunded_total = Refund.objects.total_refunded(charge_id)
        previous_status = payment.status
        if payment.apply_refund_rollup(refunded_total):
            payment.save(update_fields=["status", "updated_at"])
            log.info(
                "Payment refund status rolled up",
                extra={
                    "charge_id": charge_id,
                    "old_status": previous_status,
                    "new_status": payment.status,
                    "refunded_total": str(refunded_total),
                },
            )
        return payment

    @classmethod
    def _log_unrecognised_status(cls, event: RefundEvent) -> None:
        if event.status:
            cls.get_logger().warning(
                "Unrecognised gateway refund status, leaving status untouched",
                extra={"refund_id": event.refund_id, "incoming_status": event.status},
            )
