"""
Refund services.

- RefundReconciler: applies gateway refund events to local state
- RefundService: refund initiation, status lookup and query helpers
"""

from refunds.services.reconciler import (
    ReconcileAction,
    ReconcileOutcome,
    RefundReconciler,
)
from refunds.services.refund_service import (
    RefundErrorCode,
    RefundRequestOptions,
    RefundService,
    RefundSummary,
)

__all__ = [
    "ReconcileAction",
    "ReconcileOutcome",
    "RefundErrorCode",
    "RefundReconciler",
    "RefundRequestOptions",
    "RefundService",
    "RefundSummary",
]
