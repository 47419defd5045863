"""
Webhook endpoint views for gateway refund notifications.

Two endpoints share signature verification:

- gateway_refund_webhook: reconciles the event inline and reports the
  outcome. The gateway retries on non-2xx, so only transient failures
  return 5xx.
- gateway_refund_webhook_queued: stores the event (idempotent on the body
  digest) and hands it to Celery, returning immediately.

Usage:
    # In urls.py
    from refunds.webhooks.views import gateway_refund_webhook

    urlpatterns = [
        path("webhooks/gateway/", gateway_refund_webhook, name="gateway-webhook"),
    ]
"""

from __future__ import annotations

import hashlib
import json
import logging

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from refunds.exceptions import MalformedWebhookError, WebhookSignatureError
from refunds.models import WebhookEvent
from refunds.services import RefundReconciler
from refunds.state_machines import WebhookEventStatus
from refunds.webhooks.normalizer import normalize_refund_event
from refunds.webhooks.signature import WebhookSignatureVerifier

logger = logging.getLogger(__name__)


def _verified_payload(request: HttpRequest) -> tuple[dict | None, JsonResponse | None]:
    """
    Verify the signature and decode the body.

    Returns:
        (payload, None) on success, (None, error response) otherwise
    """
    verifier = WebhookSignatureVerifier.from_settings()
    signature = request.headers.get(verifier.header_name)

    try:
        verifier.require_valid(request.body, signature)
    except WebhookSignatureError as e:
        logger.warning(
            f"Refund webhook rejected: {e.message}",
            extra={
                "has_signature": bool(signature),
                "secret_configured": verifier.is_configured,
                "remote_addr": request.META.get("REMOTE_ADDR"),
            },
        )
        return None, JsonResponse(
            {"status": "error", "message": "Invalid signature"},
            status=401,
        )

    try:
        payload = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Refund webhook body is not valid JSON")
        return None, JsonResponse(
            {"status": "error", "message": "Invalid JSON payload"},
            status=400,
        )

    return payload, None


@csrf_exempt
@require_POST
def gateway_refund_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive a refund webhook and reconcile it inline.

    Returns:
        JsonResponse with status:
        - 200: Event applied, ignored or dropped (no gateway retry needed)
        - 400: Body is not JSON or the event is malformed
        - 401: Missing or invalid signature
        - 500: Unexpected error (gateway will retry)
    """
    payload, error_response = _verified_payload(request)
    if error_response is not None:
        return error_response

    try:
        event = normalize_refund_event(payload)
        if event is None:
            return JsonResponse({"status": "success", "action": "ignored"})

        logger.info(
            "Received refund webhook",
            extra={"refund_id": event.refund_id, "event_kind": event.kind.value},
        )
        result = RefundReconciler.reconcile(event)

    except MalformedWebhookError as e:
        logger.warning(
            "Malformed refund webhook",
            extra={"error": e.message, "details": e.details},
        )
        return JsonResponse({"status": "error", "message": e.message}, status=400)

    except Exception:
        logger.exception("Unexpected error processing refund webhook")
        return JsonResponse(
            {"status": "error", "message": "Webhook processing failed"},
            status=500,
        )

    outcome = result.data
    return JsonResponse(
        {
            "status": "success",
            "action": outcome.action.value,
            "refund_id": outcome.refund.refund_id if outcome.refund else event.refund_id,
        }
    )


@csrf_exempt
@require_POST
def gateway_refund_webhook_queued(request: HttpRequest) -> HttpResponse:
    """
    Receive a refund webhook and queue it for async processing.

    Redeliveries of the same body map to the same WebhookEvent (SHA-256
    digest), so an already processed event is acknowledged without being
    queued again.

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new or duplicate)
        - 400: Body is not JSON
        - 401: Missing or invalid signature
    """
    payload, error_response = _verified_payload(request)
    if error_response is not None:
        return error_response

    event_type = ""
    if isinstance(payload, dict):
        event_type = str(payload.get("event_type") or payload.get("event") or payload.get("type") or "")

    payload_digest = hashlib.sha256(request.body).hexdigest()
    webhook_event, created = WebhookEvent.objects.get_or_create(
        payload_digest=payload_digest,
        defaults={
            "event_type": event_type[:100],
            "payload": payload,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.status == WebhookEventStatus.PROCESSED:
        logger.info(
            "Refund webhook already processed, returning success",
            extra={"webhook_event_id": str(webhook_event.id)},
        )
        return HttpResponse("Already processed", status=200)

    try:
        from refunds.tasks import process_webhook_event

        process_webhook_event.delay(str(webhook_event.id))
        logger.info(
            "Refund webhook queued for processing",
            extra={"webhook_event_id": str(webhook_event.id), "event_type": event_type},
        )
    except Exception:
        # Marked failed so retry_failed_webhooks picks it up
        webhook_event.mark_failed("Could not be queued for processing")
        webhook_event.save()
        logger.error(
            "Failed to queue refund webhook",
            extra={"webhook_event_id": str(webhook_event.id)},
            exc_info=True,
        )

    return HttpResponse("Accepted", status=200)
