"""
Pytest fixtures shared by all refund test packages, including webhook
payloads in the shapes the gateway (and co-located admin tools) send.

Usage:
    def test_rollup(payment, pending_refund):
        ...
"""

from decimal import Decimal

import pytest

from refunds.services import RefundService
from refunds.state_machines import RefundStatus
from refunds.tests.factories import PaymentFactory, RefundFactory


@pytest.fixture
def payment(db):
    """A succeeded 100.00 USD payment."""
    return PaymentFactory(charge_id="chg_test_main", amount=Decimal("100.00"))


@pytest.fixture
def pending_refund(db, payment):
    """A pending 40.000 USD refund against `payment`."""
    return RefundFactory(refund_id="re_test_main", charge_id=payment.charge_id)


@pytest.fixture
def refunded_refund(db, payment):
    """A refund that already reached REFUNDED."""
    refund = RefundFactory(refund_id="re_test_done", charge_id=payment.charge_id)
    refund.apply_status(RefundStatus.REFUNDED)
    refund.save()
    return refund


@pytest.fixture
def fake_gateway():
    """
    Install a MagicMock gateway client on RefundService.

    Configure return values per test, e.g.
        fake_gateway.create_refund.return_value = GatewayResponse.ok({...})
    """
    from unittest.mock import MagicMock

    client = MagicMock()
    RefundService.set_gateway_client(client)
    yield client
    RefundService.set_gateway_client(None)


@pytest.fixture
def staff_user(db, django_user_model):
    return django_user_model.objects.create_user(
        username="refund-admin",
        password="testpass123",
        is_staff=True,
    )


@pytest.fixture
def staff_client(client, staff_user):
    client.force_login(staff_user)
    return client


# =============================================================================
# Payload Fixtures
# =============================================================================


@pytest.fixture
def created_payload():
    """refund.created event nested under data, amount in minor units."""
    return {
        "event_type": "refund.created",
        "created": 1700000000,
        "data": {
            "id": "re_webhook_001",
            "object": "refund",
            "charge": {"id": "chg_test_main"},
            "amount": 4000,
            "currency": "USD",
            "status": "PENDING",
            "reason": "requested_by_customer",
            "description": "Created from dashboard",
            "reference": {"merchant": "dash_77"},
            "metadata": {"ticket": "T-1"},
        },
    }


@pytest.fixture
def notification_payload():
    """Bare gateway refund object (no event type)."""
    return {
        "id": "re_webhook_002",
        "object": "refund",
        "charge_id": "chg_test_main",
        "amount": 25.5,
        "currency": "KWD",
        "status": "REFUNDED",
    }


@pytest.fixture
def status_update_payload():
    """Bare status update for an existing refund."""
    return {"id": "re_test_main", "status": "REFUNDED"}
