"""
Tests for the refund API views.

Tests cover:
- Staff-only access
- Request validation (422)
- Business and gateway failures (400), unexpected failures (500)
- Successful initiation (201)
- Status lookup, listing and charge summary
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.urls import reverse

from refunds.adapters import GatewayResponse
from refunds.models import Refund
from refunds.state_machines import RefundStatus
from refunds.tests.factories import RefundFactory

pytestmark = pytest.mark.django_db

FULL_URL = "/api/v1/refunds/full/"
PARTIAL_URL = "/api/v1/refunds/partial/"


def valid_request(**overrides):
    data = {
        "charge_id": "chg_test_main",
        "amount": "40.00",
        "currency": "usd",
        "reason": "requested_by_customer",
        "description": "Damaged item",
        "metadata": {"order_id": "ord_77"},
    }
    data.update(overrides)
    return data


# =============================================================================
# Access
# =============================================================================


class TestAccess:
    def test_anonymous_is_rejected(self, client):
        response = client.post(FULL_URL, valid_request(), content_type="application/json")

        assert response.status_code in (401, 403)

    def test_non_staff_is_rejected(self, client, django_user_model):
        user = django_user_model.objects.create_user(username="plain", password="testpass123")
        client.force_login(user)

        assert client.get("/api/v1/refunds/").status_code == 403


# =============================================================================
# Initiation
# =============================================================================


class TestInitiateViews:
    def test_partial_refund_created(self, staff_client, payment, fake_gateway):
        fake_gateway.create_refund.return_value = GatewayResponse.ok({"id": "re_api_1", "status": "PENDING"})

        response = staff_client.post(PARTIAL_URL, valid_request(), content_type="application/json")

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["refund_id"] == "re_api_1"
        assert body["data"]["currency"] == "USD"
        assert body["data"]["type"] == "partial"
        assert body["data"]["status"] == "pending"

    def test_callback_url_built_from_request(self, staff_client, payment, fake_gateway):
        fake_gateway.create_refund.return_value = GatewayResponse.ok({"id": "re_api_2", "status": "PENDING"})

        staff_client.post(FULL_URL, valid_request(amount="100.00"), content_type="application/json")

        params = fake_gateway.create_refund.call_args.args[0]
        assert params.callback_url == "http://testserver" + reverse("refunds:gateway-webhook")

    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"amount": "0"}, "amount"),
            ({"amount": "1.0001"}, "amount"),
            ({"currency": "US"}, "currency"),
            ({"currency": "U$D"}, "currency"),
            ({"reason": "because"}, "reason"),
            ({"description": "x" * 501}, "description"),
            ({"metadata": {"k": "v" * 256}}, "metadata"),
            ({"charge_id": ""}, "charge_id"),
        ],
    )
    def test_validation_errors_return_422(self, staff_client, fake_gateway, overrides, field):
        response = staff_client.post(PARTIAL_URL, valid_request(**overrides), content_type="application/json")

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Validation failed"
        assert field in body["errors"]
        fake_gateway.create_refund.assert_not_called()

    def test_business_rule_failure_returns_400(self, staff_client, payment, refunded_refund, fake_gateway):
        response = staff_client.post(FULL_URL, valid_request(amount="100.00"), content_type="application/json")

        assert response.status_code == 400
        assert response.json()["error_code"] == "ALREADY_REFUNDED"

    def test_gateway_error_returns_400(self, staff_client, payment, fake_gateway):
        fake_gateway.create_refund.return_value = GatewayResponse.failed("Charge is not captured", 400)

        response = staff_client.post(PARTIAL_URL, valid_request(), content_type="application/json")

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Charge is not captured",
            "error_code": "GATEWAY_ERROR",
        }

    def test_unexpected_error_returns_500(self, staff_client, fake_gateway):
        with patch(
            "refunds.views.RefundService.initiate_partial",
            side_effect=RuntimeError("boom"),
        ):
            response = staff_client.post(PARTIAL_URL, valid_request(), content_type="application/json")

        assert response.status_code == 500
        assert response.json()["success"] is False

    def test_refund_not_stored_after_gateway_success_returns_500(self, staff_client, payment, fake_gateway):
        fake_gateway.create_refund.return_value = GatewayResponse.ok({"id": "re_api_lost", "status": "PENDING"})

        with patch.object(Refund, "save", side_effect=DatabaseError("disk full")):
            response = staff_client.post(PARTIAL_URL, valid_request(), content_type="application/json")

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "An unexpected error occurred"}
        assert not Refund.objects.filter(refund_id="re_api_lost").exists()


# =============================================================================
# Reads
# =============================================================================


class TestReadViews:
    def test_status_lookup(self, staff_client, refunded_refund, fake_gateway):
        response = staff_client.get(f"/api/v1/refunds/{refunded_refund.refund_id}/")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == RefundStatus.REFUNDED

    def test_status_lookup_unknown_refund(self, staff_client, fake_gateway):
        response = staff_client.get("/api/v1/refunds/re_missing/")

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_list_filters_by_charge(self, staff_client, pending_refund):
        RefundFactory(charge_id="chg_other")

        response = staff_client.get("/api/v1/refunds/", {"charge_id": pending_refund.charge_id})

        body = response.json()
        assert body["count"] == 1
        assert body["results"][0]["refund_id"] == pending_refund.refund_id

    def test_charge_summary(self, staff_client, payment, refunded_refund):
        response = staff_client.get(f"/api/v1/refunds/charges/{payment.charge_id}/summary/")

        data = response.json()["data"]
        assert Decimal(data["refunded_total"]) == Decimal("40")
        assert Decimal(data["remaining"]) == Decimal("60")
        assert data["refund_count"] == 1
        assert data["in_flight_count"] == 0
        assert data["can_refund"] is None

    def test_charge_summary_checks_gateway_on_request(self, staff_client, payment, refunded_refund, fake_gateway):
        fake_gateway.get_charge.return_value = GatewayResponse.ok(
            {"id": payment.charge_id, "amount": 100, "currency": "USD", "status": "CAPTURED"}
        )

        response = staff_client.get(
            f"/api/v1/refunds/charges/{payment.charge_id}/summary/",
            {"check_gateway": "true"},
        )

        assert response.json()["data"]["can_refund"] is True
        fake_gateway.get_charge.assert_called_once_with(payment.charge_id)
