"""
Refund-specific exceptions.

Exception Hierarchy:
    RefundError (base for refund domain)
    ├── MalformedWebhookError - Authentic refund payload missing a mandatory field
    └── WebhookSignatureError - Missing or invalid webhook signature

    InvalidStatusTransitionError - FSM transition not allowed (inherits ConflictError)

Usage:
    from refunds.exceptions import MalformedWebhookError

    if not refund_id:
        raise MalformedWebhookError(
            "Refund webhook is missing the refund id",
            details={"event_type": event_type},
        )
"""

from __future__ import annotations

from core.exceptions import BaseApplicationError, ConflictError


# =============================================================================
# Refund Domain Exceptions
# =============================================================================


class RefundError(BaseApplicationError):
    """Base exception for all refund operations."""

    default_error_code: str = "REFUND_ERROR"


class MalformedWebhookError(RefundError):
    """
    Raised when a payload claims to be a refund event but cannot be used.

    The sender must not retry: the payload itself is broken, so the webhook
    endpoint answers 400 rather than 500.
    """

    default_error_code: str = "MALFORMED_WEBHOOK"


class WebhookSignatureError(RefundError):
    """
    Raised when a webhook signature is missing or does not match.

    Maps to HTTP 401. The body must not be processed.
    """

    default_error_code: str = "INVALID_SIGNATURE"


class InvalidStatusTransitionError(ConflictError):
    """
    Raised when a refund status transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed with our standard error format.

    Example:
        try:
            refund.complete()
        except TransitionNotAllowed:
            raise InvalidStatusTransitionError(
                f"Cannot complete refund from '{refund.status}'",
                details={"current_status": refund.status, "target_status": "refunded"},
            )
    """

    default_error_code: str = "INVALID_STATUS_TRANSITION"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "InvalidStatusTransitionError",
    "MalformedWebhookError",
    "RefundError",
    "WebhookSignatureError",
]
