"""
Refund service for initiating refunds and reading refund state.

This module provides the RefundService class, the synchronous path of the
refund flow:

1. Business-rule validation (no double full refund, partial refunds within
   the remaining balance)
2. Gateway create-refund call
3. Local persistence of the new refund, only after the gateway accepted it

Known gap: if the gateway call succeeds and local persistence then fails,
the gateway holds a refund that has no local row. The operation is reported
as failed (REFUND_PERSISTENCE_ERROR) and logged; the refund is picked up
later by the gateway's own webhook (a bare refund notification carries the
charge id and creates the missing record).

Usage:
    from refunds.services import RefundService, RefundRequestOptions

    result = RefundService.initiate_partial(
        charge_id="chg_123",
        amount=Decimal("40.00"),
        currency="USD",
        options=RefundRequestOptions(reason="requested_by_customer"),
    )

    if result.success:
        print(f"Refund created: {result.data.refund_id}")
    else:
        print(f"Refund failed: {result.error} ({result.error_code})")
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError

from core.services import BaseService, ServiceResult

from refunds.adapters import CreateRefundParams, GatewayClient
from refunds.exceptions import MalformedWebhookError
from refunds.models import Payment, Refund
from refunds.services.reconciler import RefundReconciler
from refunds.state_machines import (
    RefundReason,
    RefundStatus,
    RefundType,
    parse_gateway_status,
)
from refunds.webhooks.normalizer import normalize_refund_event

if TYPE_CHECKING:
    from django.db.models import QuerySet


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_DESCRIPTION = "Refund request"

# Gateway charge status that allows refunds
REFUNDABLE_CHARGE_STATUS = "CAPTURED"

# Refund amounts are stored with three decimal places
REFUND_AMOUNT_QUANTUM = Decimal("0.001")


class RefundErrorCode:
    """Machine-readable error codes returned in ServiceResult failures."""

    ALREADY_REFUNDED = "ALREADY_REFUNDED"
    AMOUNT_EXCEEDS_REMAINING = "AMOUNT_EXCEEDS_REMAINING"
    ORIGINAL_AMOUNT_UNRESOLVABLE = "ORIGINAL_AMOUNT_UNRESOLVABLE"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    REFUND_PERSISTENCE_ERROR = "REFUND_PERSISTENCE_ERROR"
    NOT_FOUND = "NOT_FOUND"


# =============================================================================
# Request & Result Types
# =============================================================================


@dataclass
class RefundRequestOptions:
    """
    Optional fields of a refund request.

    Attributes:
        description: Description sent to the gateway
        reason: Reason code (see RefundReason)
        merchant_reference: Merchant reference (generated when omitted)
        metadata: String-to-string metadata
        callback_url: Webhook URL for status updates
        original_amount: Charge amount, when the caller already knows it
    """

    description: str | None = None
    reason: str | None = None
    merchant_reference: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    callback_url: str | None = None
    original_amount: Decimal | None = None


@dataclass
class RefundSummary:
    """
    Refund totals for one charge.

    `original_amount` and `remaining` are None when the charge amount
    could not be resolved. `can_refund` is None unless the gateway was
    asked.
    """

    charge_id: str
    refunded_total: Decimal
    original_amount: Decimal | None = None
    remaining: Decimal | None = None
    refund_count: int = 0
    in_flight_count: int = 0
    can_refund: bool | None = None


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(BaseService):
    """
    Service for initiating refunds and reading refund state.

    Gateway-first pattern:
        1. Validate business rules against local state
        2. Call the gateway (no local writes before this point)
        3. On gateway success, persist the refund in one transaction
        4. On gateway failure, surface the gateway's error; nothing is written
    """

    # Gateway client - can be injected for testing
    _gateway_client: GatewayClient | None = None

    @classmethod
    def get_gateway_client(cls) -> GatewayClient:
        """Get the gateway client (built from settings on first use)."""
        if cls._gateway_client is None:
            cls._gateway_client = GatewayClient.from_settings()
        return cls._gateway_client

    @classmethod
    def set_gateway_client(cls, client: GatewayClient | None) -> None:
        """Set the gateway client (for testing)."""
        cls._gateway_client = client

    # =========================================================================
    # Initiation
    # =========================================================================

    @classmethod
    def initiate_full(
        cls,
        charge_id: str,
        amount: Decimal,
        currency: str,
        options: RefundRequestOptions | None = None,
    ) -> ServiceResult[Refund]:
        """
        Refund a charge in full.

        Fails with ALREADY_REFUNDED if any refund of the charge has already
        succeeded.

        Args:
            charge_id: Gateway charge ID
            amount: Amount to refund in major units
            currency: ISO 4217 currency code
            options: Optional request fields

        Returns:
            ServiceResult containing the new Refund on success
        """
        options = options or RefundRequestOptions()
        cls.get_logger().info(
            "Starting full refund",
            extra={"charge_id": charge_id, "amount": str(amount), "currency": currency},
        )

        if Refund.objects.for_charge(charge_id).succeeded().exists():
            cls.get_logger().warning(
                "Full refund rejected: charge already refunded",
                extra={"charge_id": charge_id},
            )
            return ServiceResult.failure(
                "This charge has already been refunded",
                error_code=RefundErrorCode.ALREADY_REFUNDED,
            )

        return cls._create_refund(charge_id, amount, currency, RefundType.FULL, options)

    @classmethod
    def initiate_partial(
        cls,
        charge_id: str,
        amount: Decimal,
        currency: str,
        options: RefundRequestOptions | None = None,
    ) -> ServiceResult[Refund]:
        """
        Refund part of a charge.

        The original charge amount comes from options.original_amount, then
        the local Payment, then the gateway charge. Fails with
        ORIGINAL_AMOUNT_UNRESOLVABLE if none yields a value, and with
        AMOUNT_EXCEEDS_REMAINING (before any gateway refund call) if
        already-refunded + amount > original.

        Returns:
            ServiceResult containing the new Refund on success
        """
        options = options or RefundRequestOptions()
        cls.get_logger().info(
            "Starting partial refund",
            extra={"charge_id": charge_id, "amount": str(amount), "currency": currency},
        )

        original_amount = cls.resolve_original_amount(charge_id, options.original_amount)
        if original_amount is None:
            return ServiceResult.failure(
                "Unable to determine the original charge amount",
                error_code=RefundErrorCode.ORIGINAL_AMOUNT_UNRESOLVABLE,
            )

        refunded_total = Refund.objects.total_refunded(charge_id)
        if refunded_total + amount > original_amount:
            remaining = max(original_amount - refunded_total, Decimal("0")).quantize(REFUND_AMOUNT_QUANTUM)
            cls.get_logger().warning(
                "Partial refund rejected: amount exceeds remaining balance",
                extra={
                    "charge_id": charge_id,
                    "amount": str(amount),
                    "refunded_total": str(refunded_total),
                    "original_amount": str(original_amount),
                },
            )
            return ServiceResult.failure(
                f"Refund amount exceeds remaining refundable amount ({remaining} {currency.upper()})",
                error_code=RefundErrorCode.AMOUNT_EXCEEDS_REMAINING,
            )

        return cls._create_refund(charge_id, amount, currency, RefundType.PARTIAL, options)

    @classmethod
    def _create_refund(
        cls,
        charge_id: str,
        amount: Decimal,
        currency: str,
        refund_type: str,
        options: RefundRequestOptions,
    ) -> ServiceResult[Refund]:
        log = cls.get_logger()
        params = CreateRefundParams(
            charge_id=charge_id,
            amount=amount,
            currency=currency.upper(),
            merchant_reference=options.merchant_reference or f"refund_{int(time.time())}",
            description=options.description or DEFAULT_DESCRIPTION,
            reason=options.reason or RefundReason.REQUESTED_BY_CUSTOMER,
            metadata=options.metadata,
            callback_url=options.callback_url or settings.REFUND_WEBHOOK_CALLBACK_URL or None,
        )

        # Phase 1: gateway call, outside any transaction
        response = cls.get_gateway_client().create_refund(params)
        if not response.success:
            log.error(
                "Gateway rejected refund",
                extra={
                    "charge_id": charge_id,
                    "status_code": response.status_code,
                    "error": response.error,
                },
            )
            return ServiceResult.failure(
                response.error or "Service unavailable",
                error_code=RefundErrorCode.GATEWAY_ERROR,
            )

        data = response.data or {}
        refund_id = data.get("id")
        if not refund_id:
            log.error(
                "Gateway refund response has no refund id",
                extra={"charge_id": charge_id},
            )
            return ServiceResult.failure(
                "Invalid response from payment gateway",
                error_code=RefundErrorCode.GATEWAY_ERROR,
            )

        # Phase 2: local write, all or nothing
        try:
            with cls.atomic():
                refund = Refund(
                    refund_id=refund_id,
                    charge_id=charge_id,
                    amount=amount,
                    currency=params.currency,
                    type=refund_type,
                    reason=params.reason,
                    description=params.description,
                    reference=params.merchant_reference,
                    metadata=params.metadata,
                    gateway_response=data,
                )
                initial_status = parse_gateway_status(data.get("status")) or RefundStatus.PENDING
                if initial_status != RefundStatus.PENDING:
                    refund.apply_status(initial_status)
                refund.save(force_insert=True)

                if refund.is_terminal:
                    RefundReconciler.apply_terminal_side_effects(refund, None)

        except IntegrityError:
            # A webhook for this refund may have been reconciled first
            existing = Refund.objects.filter(refund_id=refund_id).first()
            if existing is not None:
                log.info(
                    "Refund already recorded from webhook",
                    extra={"refund_id": refund_id, "charge_id": charge_id},
                )
                return ServiceResult.success(existing)
            return cls._persistence_failure(refund_id, charge_id)

        except Exception:
            return cls._persistence_failure(refund_id, charge_id)

        log.info(
            "Refund created",
            extra={
                "refund_id": refund.refund_id,
                "charge_id": charge_id,
                "new_status": refund.status,
                "type": refund_type,
            },
        )
        return ServiceResult.success(refund)

    @classmethod
    def _persistence_failure(cls, refund_id: str, charge_id: str) -> ServiceResult[Refund]:
        cls.get_logger().exception(
            "Refund created at gateway but could not be stored locally",
            extra={"refund_id": refund_id, "charge_id": charge_id},
        )
        return ServiceResult.failure(
            "Refund was created at the gateway but could not be recorded",
            error_code=RefundErrorCode.REFUND_PERSISTENCE_ERROR,
        )

    # =========================================================================
    # Original Amount Resolution
    # =========================================================================

    @classmethod
    def resolve_original_amount(
        cls,
        charge_id: str,
        supplied: Decimal | None = None,
    ) -> Decimal | None:
        """
        Find the amount of the original charge.

        Order: caller-supplied value, local Payment, gateway charge (which
        also records the Payment locally).

        Returns:
            The charge amount, or None if no source yields one
        """
        if supplied is not None:
            return Decimal(supplied)

        payment = Payment.objects.for_charge(charge_id)
        if payment is not None:
            return payment.amount

        payment = cls.fetch_payment(charge_id)
        return payment.amount if payment is not None else None

    @classmethod
    def fetch_payment(cls, charge_id: str) -> Payment | None:
        """
        Load a charge from the gateway and upsert the local Payment.

        Returns:
            The Payment, or None if the gateway lookup failed
        """
        response = cls.get_gateway_client().get_charge(charge_id)
        if not response.success or not response.data or response.data.get("amount") is None:
            cls.get_logger().warning(
                "Could not load charge from gateway",
                extra={
                    "charge_id": charge_id,
                    "status_code": response.status_code,
                    "error": response.error,
                },
            )
            return None

        payment, _ = Payment.objects.upsert_from_gateway({"id": charge_id, **response.data})
        return payment

    # =========================================================================
    # Status Lookup
    # =========================================================================

    @classmethod
    def get_refund_status(cls, refund_id: str) -> ServiceResult[Refund]:
        """
        Return a refund, refreshed from the gateway while non-terminal.

        The gateway result goes through the reconciler, so the refresh obeys
        the same forward-only rules as webhooks. A failed refresh is logged
        and the stored record is returned.

        Returns:
            ServiceResult containing the Refund, or NOT_FOUND
        """
        refund = Refund.objects.filter(refund_id=refund_id).first()
        if refund is None:
            return ServiceResult.failure(
                f"Refund {refund_id} not found",
                error_code=RefundErrorCode.NOT_FOUND,
            )

        if refund.is_terminal:
            return ServiceResult.success(refund)

        response = cls.get_gateway_client().get_refund(refund_id)
        if not response.success:
            cls.get_logger().warning(
                "Refund status refresh failed, returning stored status",
                extra={"refund_id": refund_id, "error": response.error},
            )
            return ServiceResult.success(refund)

        try:
            event = normalize_refund_event(response.data)
        except MalformedWebhookError as e:
            cls.get_logger().warning(
                "Gateway refund object could not be normalized",
                extra={"refund_id": refund_id, "error": e.message},
            )
            event = None

        if event is not None and event.refund_id == refund_id:
            RefundReconciler.reconcile(event)
            refund.refresh_from_db()

        return ServiceResult.success(refund)

    # =========================================================================
    # Query Methods
    # =========================================================================

    @classmethod
    def list_refunds(cls, charge_id: str | None = None) -> QuerySet[Refund]:
        """All refunds, newest first, optionally for one charge."""
        queryset = Refund.objects.all()
        if charge_id:
            queryset = queryset.for_charge(charge_id)
        return queryset.order_by("-created_at")

    @classmethod
    def get_total_refunded(cls, charge_id: str) -> Decimal:
        """Sum of succeeded refund amounts for a charge."""
        return Refund.objects.total_refunded(charge_id)

    @classmethod
    def get_remaining_refundable(
        cls,
        charge_id: str,
        original_amount: Decimal | None = None,
    ) -> Decimal | None:
        """Charge amount minus succeeded refunds, None if unresolvable."""
        original = cls.resolve_original_amount(charge_id, original_amount)
        if original is None:
            return None
        return max(original - cls.get_total_refunded(charge_id), Decimal("0"))

    @classmethod
    def get_refund_summary(cls, charge_id: str, check_gateway: bool = False) -> RefundSummary:
        """
        Totals for a charge. With `check_gateway`, also asks the gateway
        whether the charge can still be refunded.
        """
        original = cls.resolve_original_amount(charge_id)
        charge_refunds = Refund.objects.for_charge(charge_id)
        return RefundSummary(
            charge_id=charge_id,
            refunded_total=cls.get_total_refunded(charge_id),
            original_amount=original,
            remaining=cls.get_remaining_refundable(charge_id, original) if original is not None else None,
            refund_count=charge_refunds.count(),
            in_flight_count=charge_refunds.in_flight().count(),
            can_refund=cls.can_refund(charge_id) if check_gateway else None,
        )

    @classmethod
    def can_refund(cls, charge_id: str) -> bool:
        """
        Whether the gateway still allows refunding a charge.

        The charge must be CAPTURED at the gateway and have a remaining
        refundable balance.
        """
        response = cls.get_gateway_client().get_charge(charge_id)
        if not response.success or not response.data:
            return False

        if str(response.data.get("status") or "").upper() != REFUNDABLE_CHARGE_STATUS:
            return False

        if response.data.get("amount") is None:
            return False

        payment, _ = Payment.objects.upsert_from_gateway({"id": charge_id, **response.data})
        return payment.amount > cls.get_total_refunded(charge_id)


__all__ = [
    "RefundErrorCode",
    "RefundRequestOptions",
    "RefundService",
    "RefundSummary",
]
