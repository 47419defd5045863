"""
Pytest fixtures for gateway client tests.

The client is built on an httpx.MockTransport so no request leaves the
process. Each test installs its own handler.
"""

import httpx
import pytest

from refunds.adapters import GatewayClient, GatewayConfig


@pytest.fixture
def gateway_config():
    return GatewayConfig(
        base_url="https://gateway.test/v2",
        secret_key="sk_test_123",
        timeout=5,
    )


@pytest.fixture
def make_client(gateway_config):
    """
    Build a GatewayClient around a request handler.

    Usage:
        client = make_client(lambda request: httpx.Response(200, json={...}))
    """
    clients = []

    def _make(handler):
        client = GatewayClient(gateway_config, transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.close()
