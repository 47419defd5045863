"""
Adapters for external services.

All gateway API calls go through GatewayClient to ensure consistent
authentication, timeouts, error normalization and logging.
"""

from refunds.adapters.gateway_client import (
    CreateRefundParams,
    GatewayClient,
    GatewayConfig,
    GatewayResponse,
    extract_error_message,
)

__all__ = [
    "CreateRefundParams",
    "GatewayClient",
    "GatewayConfig",
    "GatewayResponse",
    "extract_error_message",
]
