"""
HTTP client for the payment gateway REST API.

All outbound gateway calls go through GatewayClient so that authentication,
timeouts, error normalization and logging are handled in one place.

Every call returns a GatewayResponse. Failures are never raised: a non-2xx
response and a transport failure (timeout, DNS, connection reset) both come
back as `success=False` with a human-readable `error`. `status_code` is the
gateway's HTTP status, or None when no response was received.

Configuration (via settings, read by GatewayConfig.from_settings()):
- GATEWAY_BASE_URL: API base URL
- GATEWAY_SECRET_KEY: Bearer token
- GATEWAY_API_TIMEOUT_SECONDS: Per-request timeout (default: 10)

Usage:
    from refunds.adapters import GatewayClient, CreateRefundParams

    client = GatewayClient.from_settings()
    response = client.create_refund(
        CreateRefundParams(
            charge_id="chg_123",
            amount=Decimal("40.00"),
            currency="USD",
            merchant_reference="refund_1700000000",
        )
    )
    if response.success:
        refund_id = response.data["id"]
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

import httpx
from django.conf import settings

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)

UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"


# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class GatewayConfig:
    """
    Connection settings for the gateway API.

    Attributes:
        base_url: API base URL without trailing slash
        secret_key: Bearer token for the Authorization header
        timeout: Per-request timeout in seconds
    """

    base_url: str
    secret_key: str
    timeout: float = 10.0

    @classmethod
    def from_settings(cls) -> GatewayConfig:
        return cls(
            base_url=settings.GATEWAY_BASE_URL.rstrip("/"),
            secret_key=settings.GATEWAY_SECRET_KEY,
            timeout=float(settings.GATEWAY_API_TIMEOUT_SECONDS),
        )


@dataclass
class CreateRefundParams:
    """
    Parameters for creating a refund at the gateway.

    Attributes:
        charge_id: Charge to refund
        amount: Amount in major currency units
        currency: ISO 4217 currency code
        merchant_reference: Merchant reference echoed back in webhooks
        description: Description shown in the gateway dashboard
        reason: Reason code
        metadata: String-to-string metadata
        callback_url: Webhook URL for status updates (optional)
    """

    charge_id: str
    amount: Decimal
    currency: str
    merchant_reference: str
    description: str = "Refund request"
    reason: str = "requested_by_customer"
    metadata: dict[str, str] = field(default_factory=dict)
    callback_url: str | None = None

    def __post_init__(self) -> None:
        if not self.charge_id:
            raise ValueError("charge_id is required")
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if not self.currency:
            raise ValueError("currency is required")

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "charge_id": self.charge_id,
            "amount": float(self.amount),
            "currency": self.currency.upper(),
            "description": self.description,
            "reason": self.reason,
            "reference": {"merchant": self.merchant_reference},
            "metadata": self.metadata,
        }
        if self.callback_url:
            payload["post"] = {"url": self.callback_url}
        return payload


@dataclass
class GatewayResponse:
    """
    Normalized result of a gateway call.

    Attributes:
        success: True for 2xx responses
        data: Decoded JSON body on success
        error: Error message on failure
        status_code: HTTP status, None when the request never got a response
    """

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    status_code: int | None = None

    @classmethod
    def ok(cls, data: dict[str, Any], status_code: int = 200) -> GatewayResponse:
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def failed(cls, error: str, status_code: int | None = None) -> GatewayResponse:
        return cls(success=False, error=error, status_code=status_code)


def extract_error_message(response: httpx.Response) -> str:
    """
    Pull a readable error out of a failed gateway response.

    Uses the `errors` list (joined with ", ") when present, then `message`,
    then a generic fallback.
    """
    try:
        body = response.json()
    except ValueError:
        return UNKNOWN_ERROR_MESSAGE

    if not isinstance(body, dict):
        return UNKNOWN_ERROR_MESSAGE

    errors = body.get("errors")
    if errors:
        if isinstance(errors, list):
            parts = []
            for error in errors:
                if isinstance(error, dict):
                    parts.append(
                        str(error.get("description") or error.get("message") or error.get("code") or "")
                    )
                else:
                    parts.append(str(error))
            message = ", ".join(part for part in parts if part)
            if message:
                return message
        else:
            return str(errors)

    if body.get("message"):
        return str(body["message"])

    return UNKNOWN_ERROR_MESSAGE


# =============================================================================
# Client
# =============================================================================


class GatewayClient:
    """
    Bearer-token client for the gateway refund and charge endpoints.

    Args:
        config: Connection settings
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(self, config: GatewayConfig, transport: httpx.BaseTransport | None = None):
        self.config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {config.secret_key}",
                "Accept": "application/json",
            },
        )

    @classmethod
    def from_settings(cls) -> GatewayClient:
        return cls(GatewayConfig.from_settings())

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GatewayClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ==========================================================================
    # Endpoints
    # ==========================================================================

    def create_refund(self, params: CreateRefundParams) -> GatewayResponse:
        return self._request(
            "POST",
            "/refunds",
            operation="create_refund",
            json=params.to_payload(),
            log_context={"charge_id": params.charge_id},
        )

    def get_refund(self, refund_id: str) -> GatewayResponse:
        return self._request(
            "GET",
            f"/refunds/{refund_id}",
            operation="get_refund",
            log_context={"refund_id": refund_id},
        )

    def list_refunds(self, charge_id: str) -> GatewayResponse:
        return self._request(
            "GET",
            "/refunds",
            operation="list_refunds",
            params={"charge_id": charge_id},
            log_context={"charge_id": charge_id},
        )

    def get_charge(self, charge_id: str) -> GatewayResponse:
        return self._request(
            "GET",
            f"/charges/{charge_id}",
            operation="get_charge",
            log_context={"charge_id": charge_id},
        )

    # ==========================================================================
    # Internals
    # ==========================================================================

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        log_context: dict[str, Any],
        **kwargs: Any,
    ) -> GatewayResponse:
        log_context = {"operation": operation, **log_context}
        start_time = time.time()
        logger.debug("Starting gateway operation", extra=log_context)

        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Gateway {operation} transport failure: {type(e).__name__}",
                extra={**log_context, "duration_ms": duration_ms},
            )
            return GatewayResponse.failed(f"Service unavailable: {e}")

        duration_ms = (time.time() - start_time) * 1000
        log_context = {**log_context, "status_code": response.status_code, "duration_ms": duration_ms}

        if response.is_success:
            try:
                data = response.json()
            except ValueError:
                logger.error("Gateway returned a non-JSON success body", extra=log_context)
                return GatewayResponse.failed(
                    "Invalid response from payment gateway", response.status_code
                )
            logger.info(f"Gateway {operation} succeeded", extra=log_context)
            return GatewayResponse.ok(data, response.status_code)

        error = extract_error_message(response)
        logger.error(
            f"Gateway {operation} failed",
            extra={**log_context, "error": error},
        )
        return GatewayResponse.failed(error, response.status_code)
