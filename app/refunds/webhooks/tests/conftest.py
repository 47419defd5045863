"""
Pytest fixtures for webhook tests.

Signed request helpers. Sample payloads live in refunds/conftest.py so
the service tests share them.
"""

import hashlib
import hmac
import json

import pytest
from django.test import RequestFactory

SECRET = "whsec_test_secret"


def sign(body: bytes, secret: str = SECRET) -> str:
    """Hex HMAC-SHA256 of the raw body."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def rf():
    """Request factory for creating test requests."""
    return RequestFactory()


@pytest.fixture
def signed_request(rf):
    """
    Build a signed POST request.

    Usage:
        request = signed_request(payload)
        request = signed_request(payload, signature="bad")
    """

    def _build(payload, signature=None, path="/api/v1/refunds/webhooks/gateway/"):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        return rf.post(
            path,
            data=body,
            content_type="application/json",
            HTTP_X_TAP_SIGNATURE=sign(body) if signature is None else signature,
        )

    return _build
