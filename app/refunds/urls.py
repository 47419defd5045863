"""
URL configuration for the refunds app.

Routes:
    - GET  / - List refunds
    - POST /full/ - Initiate full refund
    - POST /partial/ - Initiate partial refund
    - GET  /charges/<charge_id>/summary/ - Refund totals for a charge
    - POST /webhooks/gateway/ - Gateway refund webhook (inline)
    - POST /webhooks/gateway/queued/ - Gateway refund webhook (queued)
    - GET  /<refund_id>/ - Refund status

All routes are prefixed with /api/v1/refunds/ when included in the main URLconf.
"""

from django.urls import path

from refunds.views import (
    ChargeRefundSummaryView,
    FullRefundView,
    PartialRefundView,
    RefundListView,
    RefundStatusView,
)
from refunds.webhooks.views import gateway_refund_webhook, gateway_refund_webhook_queued

app_name = "refunds"

urlpatterns = [
    path("", RefundListView.as_view(), name="refund-list"),
    path("full/", FullRefundView.as_view(), name="refund-full"),
    path("partial/", PartialRefundView.as_view(), name="refund-partial"),
    path(
        "charges/<str:charge_id>/summary/",
        ChargeRefundSummaryView.as_view(),
        name="charge-summary",
    ),
    # Webhook endpoints
    path("webhooks/gateway/", gateway_refund_webhook, name="gateway-webhook"),
    path(
        "webhooks/gateway/queued/",
        gateway_refund_webhook_queued,
        name="gateway-webhook-queued",
    ),
    # Keep last: matches any refund id
    path("<str:refund_id>/", RefundStatusView.as_view(), name="refund-status"),
]
