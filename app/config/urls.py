"""
URL configuration for the refund service.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/refunds/               - Refund endpoints (staff only)
        (GET)                      - List refunds, optional ?charge_id=
        full/                      - Initiate a full refund (POST)
        partial/                   - Initiate a partial refund (POST)
        <refund_id>/               - Refund status lookup (GET)
        charges/<charge_id>/summary/ - Refunded/remaining totals for a charge
        webhooks/gateway/          - Gateway refund webhook, processed inline (POST)
        webhooks/gateway/queued/   - Gateway refund webhook, processed by Celery (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("refunds/", include("refunds.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Refunds Admin"
admin.site.site_title = "Refunds Admin Portal"
admin.site.index_title = "Refund administration"
