"""
DRF views for the refunds app.

Endpoints:
    GET  /api/v1/refunds/ - List refunds (paginated, ?charge_id= filter)
    POST /api/v1/refunds/full/ - Initiate a full refund
    POST /api/v1/refunds/partial/ - Initiate a partial refund
    GET  /api/v1/refunds/{refund_id}/ - Refund status (refreshed while in flight)
    GET  /api/v1/refunds/charges/{charge_id}/summary/ - Refund totals for a charge
         (?check_gateway=true also reports whether the gateway allows a refund)

Security:
    - All endpoints require a staff user (IsAdminUser)
    - Webhook endpoints live in refunds.webhooks.views

Related files:
    - services/refund_service.py: RefundService
    - serializers.py: Request/response serializers
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.urls import reverse
from rest_framework import generics, status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
)

from refunds.serializers import (
    PartialRefundRequestSerializer,
    RefundRequestSerializer,
    RefundSerializer,
    RefundSummarySerializer,
)
from refunds.services import RefundErrorCode, RefundService

logger = logging.getLogger(__name__)


def validation_failed_response(errors) -> Response:
    return Response(
        {"success": False, "error": "Validation failed", "errors": errors},
        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
    )


def internal_error_response() -> Response:
    return Response(
        {"success": False, "error": "An unexpected error occurred"},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def callback_url_for(request) -> str:
    """Configured webhook callback, or the absolute URL of the webhook route."""
    if settings.REFUND_WEBHOOK_CALLBACK_URL:
        return settings.REFUND_WEBHOOK_CALLBACK_URL
    return request.build_absolute_uri(reverse("refunds:gateway-webhook"))


class BaseRefundInitiateView(APIView):
    """
    Shared request handling for refund initiation.

    Responses:
        201: Refund created (serialized refund)
        400: Business rule or gateway failure (ServiceResult.to_response())
        422: Request validation failed
        500: Unexpected error, or the gateway refund could not be stored
    """

    permission_classes = [IsAdminUser]
    serializer_class = RefundRequestSerializer
    operation = "refund"

    def initiate(self, validated_data, options):
        raise NotImplementedError

    def post(self, request):
        serializer = self.serializer_class(data=request.data)
        if not serializer.is_valid():
            return validation_failed_response(serializer.errors)

        data = serializer.validated_data
        try:
            result = self.initiate(data, serializer.to_options(callback_url_for(request)))
        except Exception:
            logger.exception(
                f"Unexpected error during {self.operation}",
                extra={"charge_id": data["charge_id"]},
            )
            return internal_error_response()

        if not result.success:
            if result.error_code == RefundErrorCode.REFUND_PERSISTENCE_ERROR:
                return internal_error_response()
            return Response(result.to_response(), status=status.HTTP_400_BAD_REQUEST)

        return Response(
            {"success": True, "data": RefundSerializer(result.data).data},
            status=status.HTTP_201_CREATED,
        )


class FullRefundView(BaseRefundInitiateView):
    """POST /api/v1/refunds/full/"""

    operation = "full refund"

    @extend_schema(
        operation_id="initiate_full_refund",
        summary="Initiate full refund",
        request=RefundRequestSerializer,
        responses={
            201: RefundSerializer,
            400: OpenApiResponse(description="Already refunded or gateway error"),
            422: OpenApiResponse(description="Validation failed"),
        },
        tags=["Refunds"],
    )
    def post(self, request):
        return super().post(request)

    def initiate(self, validated_data, options):
        return RefundService.initiate_full(
            charge_id=validated_data["charge_id"],
            amount=validated_data["amount"],
            currency=validated_data["currency"],
            options=options,
        )


class PartialRefundView(BaseRefundInitiateView):
    """POST /api/v1/refunds/partial/"""

    serializer_class = PartialRefundRequestSerializer
    operation = "partial refund"

    @extend_schema(
        operation_id="initiate_partial_refund",
        summary="Initiate partial refund",
        request=PartialRefundRequestSerializer,
        responses={
            201: RefundSerializer,
            400: OpenApiResponse(description="Amount exceeds remaining balance or gateway error"),
            422: OpenApiResponse(description="Validation failed"),
        },
        tags=["Refunds"],
    )
    def post(self, request):
        return super().post(request)

    def initiate(self, validated_data, options):
        return RefundService.initiate_partial(
            charge_id=validated_data["charge_id"],
            amount=validated_data["amount"],
            currency=validated_data["currency"],
            options=options,
        )


class RefundStatusView(APIView):
    """
    GET /api/v1/refunds/{refund_id}/

    Returns the stored refund, refreshed from the gateway while it is
    still in flight.
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="get_refund_status",
        summary="Get refund status",
        responses={200: RefundSerializer, 404: OpenApiResponse(description="Refund not found")},
        tags=["Refunds"],
    )
    def get(self, request, refund_id: str):
        result = RefundService.get_refund_status(refund_id)
        if not result.success:
            http_status = (
                status.HTTP_404_NOT_FOUND
                if result.error_code == RefundErrorCode.NOT_FOUND
                else status.HTTP_400_BAD_REQUEST
            )
            return Response(result.to_response(), status=http_status)
        return Response({"success": True, "data": RefundSerializer(result.data).data})


class RefundListView(generics.ListAPIView):
    """GET /api/v1/refunds/ - newest first, optionally filtered by charge."""

    permission_classes = [IsAdminUser]
    serializer_class = RefundSerializer

    @extend_schema(
        operation_id="list_refunds",
        summary="List refunds",
        parameters=[
            OpenApiParameter(
                name="charge_id",
                type=str,
                location=OpenApiParameter.QUERY,
                description="Only refunds of this charge",
                required=False,
            ),
        ],
        tags=["Refunds"],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        return RefundService.list_refunds(self.request.query_params.get("charge_id"))


class ChargeRefundSummaryView(APIView):
    """GET /api/v1/refunds/charges/{charge_id}/summary/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="get_charge_refund_summary",
        summary="Refund totals for a charge",
        parameters=[
            OpenApiParameter(
                name="check_gateway",
                type=bool,
                location=OpenApiParameter.QUERY,
                description="Also ask the gateway whether the charge can still be refunded",
                required=False,
            ),
        ],
        responses={200: RefundSummarySerializer},
        tags=["Refunds"],
    )
    def get(self, request, charge_id: str):
        check_gateway = request.query_params.get("check_gateway", "").lower() in ("1", "true", "yes")
        summary = RefundService.get_refund_summary(charge_id, check_gateway=check_gateway)
        return Response({"success": True, "data": RefundSummarySerializer(summary).data})
