"""Tests for WebhookSignatureVerifier."""

import pytest

from refunds.exceptions import WebhookSignatureError
from refunds.webhooks.signature import WebhookSignatureVerifier
from refunds.webhooks.tests.conftest import sign

BODY = b'{"id":"re_1","status":"REFUNDED"}'


class TestWebhookSignatureVerifier:
    def test_valid_signature(self):
        verifier = WebhookSignatureVerifier("whsec_test_secret")

        assert verifier.verify(BODY, sign(BODY)) is True

    def test_uppercased_signature_is_rejected(self):
        verifier = WebhookSignatureVerifier("whsec_test_secret")

        assert verifier.verify(BODY, sign(BODY).upper()) is False

    def test_padded_signature_is_rejected(self):
        verifier = WebhookSignatureVerifier("whsec_test_secret")

        assert verifier.verify(BODY, f" {sign(BODY)} ") is False

    @pytest.mark.parametrize("position", range(64))
    def test_any_changed_signature_character_is_rejected(self, position):
        verifier = WebhookSignatureVerifier("whsec_test_secret")
        signature = sign(BODY)
        replacement = "0" if signature[position] != "0" else "1"
        mutated = signature[:position] + replacement + signature[position + 1 :]

        assert verifier.verify(BODY, mutated) is False

    @pytest.mark.parametrize("position", range(len(BODY)))
    def test_any_changed_body_byte_is_rejected(self, position):
        verifier = WebhookSignatureVerifier("whsec_test_secret")
        signature = sign(BODY)
        mutated = BODY[:position] + bytes([BODY[position] ^ 0x01]) + BODY[position + 1 :]

        assert verifier.verify(mutated, signature) is False

    def test_wrong_signature(self):
        verifier = WebhookSignatureVerifier("whsec_test_secret")

        assert verifier.verify(BODY, sign(BODY, secret="other")) is False

    def test_body_tampering_is_detected(self):
        verifier = WebhookSignatureVerifier("whsec_test_secret")
        signature = sign(BODY)

        assert verifier.verify(BODY.replace(b"REFUNDED", b"FAILED"), signature) is False

    @pytest.mark.parametrize("signature", [None, ""])
    def test_missing_signature(self, signature):
        verifier = WebhookSignatureVerifier("whsec_test_secret")

        assert verifier.verify(BODY, signature) is False

    @pytest.mark.parametrize("secret", [None, ""])
    def test_unconfigured_secret_rejects_everything(self, secret):
        verifier = WebhookSignatureVerifier(secret)

        assert verifier.is_configured is False
        # Even a digest computed with an empty key must not verify
        assert verifier.verify(BODY, sign(BODY, secret="")) is False

    def test_non_hex_signature(self):
        verifier = WebhookSignatureVerifier("whsec_test_secret")

        assert verifier.verify(BODY, "not-a-signature-ü") is False

    def test_from_settings(self, settings):
        settings.GATEWAY_WEBHOOK_SECRET = "from_settings"
        settings.GATEWAY_WEBHOOK_SIGNATURE_HEADER = "X-Custom-Signature"

        verifier = WebhookSignatureVerifier.from_settings()

        assert verifier.header_name == "X-Custom-Signature"
        assert verifier.verify(BODY, sign(BODY, secret="from_settings")) is True


class TestRequireValid:
    def test_passes_for_valid_signature(self):
        WebhookSignatureVerifier("whsec_test_secret").require_valid(BODY, sign(BODY))

    @pytest.mark.parametrize("signature", [None, "", "deadbeef"])
    def test_raises_signature_error(self, signature):
        with pytest.raises(WebhookSignatureError) as exc_info:
            WebhookSignatureVerifier("whsec_test_secret").require_valid(BODY, signature)

        assert exc_info.value.error_code == "INVALID_SIGNATURE"
