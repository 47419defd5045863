"""
Refund domain models.

This module contains all refund-related models:
- Payment: Original gateway charge, status rolled up from its refunds
- Refund: One refund attempt against a charge, forward-only status
- WebhookEvent: Queued webhook deliveries for retryable processing
"""

from refunds.models.payment import Payment
from refunds.models.refund import Refund
from refunds.models.webhook_event import WebhookEvent

__all__ = [
    "Payment",
    "Refund",
    "WebhookEvent",
]
