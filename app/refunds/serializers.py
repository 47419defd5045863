"""
DRF serializers for the refunds app.

This module provides serializers for:
- Refund initiation requests (full and partial)
- Refund responses
- Per-charge refund summaries

Related files:
    - models/: Payment, Refund
    - views.py: Refund API views

Usage:
    serializer = PartialRefundRequestSerializer(data=request.data)
    if serializer.is_valid():
        options = serializer.to_options()
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from drf_spectacular.utils import OpenApiExample, extend_schema_serializer

from refunds.models import Refund
from refunds.services import RefundRequestOptions
from refunds.state_machines import RefundReason

MIN_REFUND_AMOUNT = Decimal("0.001")


@extend_schema_serializer(
    examples=[
        OpenApiExample(
            "Partial refund",
            value={
                "charge_id": "chg_TS02A5720231433Qs1w0809820",
                "amount": "40.000",
                "currency": "USD",
                "reason": "requested_by_customer",
                "description": "Damaged item",
                "metadata": {"order_id": "ord_77"},
            },
            request_only=True,
        ),
    ]
)
class RefundRequestSerializer(serializers.Serializer):
    """
    Validates a refund initiation request.

    Validation runs before any gateway call. Currency is normalized to
    uppercase.
    """

    charge_id = serializers.CharField(
        max_length=255,
        help_text="Gateway charge ID to refund",
    )
    amount = serializers.DecimalField(
        max_digits=15,
        decimal_places=3,
        min_value=MIN_REFUND_AMOUNT,
        help_text="Refund amount in major currency units",
    )
    currency = serializers.CharField(
        min_length=3,
        max_length=3,
        help_text="ISO 4217 currency code",
    )
    reason = serializers.ChoiceField(
        choices=RefundReason.choices,
        required=False,
        help_text="Reason code",
    )
    description = serializers.CharField(
        max_length=500,
        required=False,
        allow_blank=True,
        help_text="Description sent to the gateway",
    )
    merchant_reference = serializers.CharField(
        max_length=255,
        required=False,
        allow_blank=True,
        help_text="Merchant reference (generated when omitted)",
    )
    metadata = serializers.DictField(
        child=serializers.CharField(max_length=255, allow_blank=True),
        required=False,
        help_text="String-to-string metadata",
    )

    def validate_currency(self, value: str) -> str:
        if not value.isalpha():
            raise serializers.ValidationError("Currency must be a 3-letter ISO 4217 code.")
        return value.upper()

    def to_options(self, callback_url: str | None = None) -> RefundRequestOptions:
        """Build service options from validated data."""
        data = self.validated_data
        return RefundRequestOptions(
            description=data.get("description") or None,
            reason=data.get("reason") or None,
            merchant_reference=data.get("merchant_reference") or None,
            metadata=data.get("metadata") or {},
            callback_url=callback_url,
            original_amount=data.get("original_amount"),
        )


class PartialRefundRequestSerializer(RefundRequestSerializer):
    """Partial refund request, optionally carrying the original charge amount."""

    original_amount = serializers.DecimalField(
        max_digits=15,
        decimal_places=3,
        min_value=MIN_REFUND_AMOUNT,
        required=False,
        help_text="Original charge amount; looked up when omitted",
    )


class RefundSerializer(serializers.ModelSerializer):
    """Read-only serializer for Refund API responses."""

    is_terminal = serializers.BooleanField(read_only=True)

    class Meta:
        model = Refund
        fields = [
            "id",
            "refund_id",
            "charge_id",
            "amount",
            "currency",
            "type",
            "status",
            "is_terminal",
            "reason",
            "description",
            "reference",
            "metadata",
            "refunded_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class RefundSummarySerializer(serializers.Serializer):
    """Refund totals for one charge."""

    charge_id = serializers.CharField()
    original_amount = serializers.DecimalField(max_digits=15, decimal_places=3, allow_null=True)
    refunded_total = serializers.DecimalField(max_digits=15, decimal_places=3)
    remaining = serializers.DecimalField(max_digits=15, decimal_places=3, allow_null=True)
    refund_count = serializers.IntegerField()
    in_flight_count = serializers.IntegerField()
    can_refund = serializers.BooleanField(allow_null=True)
