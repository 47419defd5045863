"""
HMAC-SHA256 verification for gateway webhooks.

The gateway signs the exact raw request body with the shared webhook secret
and sends the hex digest in a header (X-Tap-Signature by default). The body
must be verified as received: re-serializing the decoded JSON changes key
order and whitespace and breaks the digest.

Usage:
    from refunds.webhooks.signature import WebhookSignatureVerifier

    verifier = WebhookSignatureVerifier.from_settings()
    try:
        verifier.require_valid(request.body, request.headers.get(verifier.header_name))
    except WebhookSignatureError:
        return JsonResponse({"error": "Invalid signature"}, status=401)
"""

from __future__ import annotations

import hashlib
import hmac

from django.conf import settings

from refunds.exceptions import WebhookSignatureError


class WebhookSignatureVerifier:
    """
    Verifies webhook signatures against a shared secret.

    The secret is passed in explicitly; use from_settings() for the
    configured one. Verification fails closed: an empty secret or a
    missing signature never verifies.
    """

    DEFAULT_HEADER_NAME = "X-Tap-Signature"

    def __init__(self, secret: str | None, header_name: str = DEFAULT_HEADER_NAME):
        self._secret = secret or ""
        self.header_name = header_name

    @classmethod
    def from_settings(cls) -> WebhookSignatureVerifier:
        return cls(
            secret=settings.GATEWAY_WEBHOOK_SECRET,
            header_name=getattr(
                settings, "GATEWAY_WEBHOOK_SIGNATURE_HEADER", cls.DEFAULT_HEADER_NAME
            ),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._secret)

    def compute_signature(self, raw_body: bytes) -> str:
        """Return the lowercase hex HMAC-SHA256 of `raw_body`."""
        return hmac.new(
            self._secret.encode("utf-8"),
            raw_body,
            hashlib.sha256,
        ).hexdigest()

    def verify(self, raw_body: bytes, signature: str | None) -> bool:
        """
        Check `signature` against the digest of `raw_body`.

        Args:
            raw_body: Request body bytes exactly as received
            signature: Header value sent by the gateway (may be None)

        Returns:
            True only if a secret is configured and the signature matches
        """
        if not self._secret or not signature:
            return False

        expected = self.compute_signature(raw_body)
        return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))

    def require_valid(self, raw_body: bytes, signature: str | None) -> None:
        """
        Like verify(), but raise instead of returning False.

        Raises:
            WebhookSignatureError: If the signature is missing or wrong, or
                no secret is configured
        """
        if not signature:
            raise WebhookSignatureError(
                "Missing webhook signature",
                details={"header": self.header_name},
            )
        if not self.verify(raw_body, signature):
            raise WebhookSignatureError(
                "Invalid webhook signature",
                details={"header": self.header_name, "secret_configured": self.is_configured},
            )
