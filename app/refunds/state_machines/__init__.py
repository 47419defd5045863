"""
State machine enums and helpers for refund models.

This module defines the state enums used with django-fsm and the
forward-only transition policy shared by the reconciler and the models.
"""

from refunds.state_machines.policy import (
    TERMINAL_FAILURE_STATUSES,
    TERMINAL_STATUSES,
    TERMINAL_SUCCESS_STATUSES,
    TransitionDecision,
    decide_transition,
    is_terminal,
    is_terminal_failure,
    is_terminal_success,
    parse_gateway_status,
)
from refunds.state_machines.states import (
    PaymentStatus,
    RefundReason,
    RefundStatus,
    RefundType,
    WebhookEventStatus,
)

__all__ = [
    "PaymentStatus",
    "RefundReason",
    "RefundStatus",
    "RefundType",
    "TERMINAL_FAILURE_STATUSES",
    "TERMINAL_STATUSES",
    "TERMINAL_SUCCESS_STATUSES",
    "TransitionDecision",
    "WebhookEventStatus",
    "decide_transition",
    "is_terminal",
    "is_terminal_failure",
    "is_terminal_success",
    "parse_gateway_status",
]
