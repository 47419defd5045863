"""
Forward-only transition policy for refund statuses.

Webhooks are delivered at least once and in no particular order, so the
stored status may only move to a strictly later stage:

    stage 0: pending
    stage 1: accepted
    stage 2: refunded | declined | failed | restricted | rejected

Terminal statuses are absorbing. Re-delivery of the same terminal status is
a no-op; a different terminal status is a conflict that is logged and
ignored.

Usage:
    from refunds.state_machines.policy import TransitionDecision, decide_transition

    decision = decide_transition(refund.status, RefundStatus.REFUNDED)
    if decision is TransitionDecision.APPLY:
        ...
"""

from __future__ import annotations

import enum

from refunds.state_machines.states import RefundStatus

TERMINAL_SUCCESS_STATUSES = frozenset([RefundStatus.REFUNDED])

TERMINAL_FAILURE_STATUSES = frozenset(
    [
        RefundStatus.DECLINED,
        RefundStatus.FAILED,
        RefundStatus.RESTRICTED,
        RefundStatus.REJECTED,
    ]
)

TERMINAL_STATUSES = TERMINAL_SUCCESS_STATUSES | TERMINAL_FAILURE_STATUSES

NON_TERMINAL_STATUSES = frozenset([RefundStatus.PENDING, RefundStatus.ACCEPTED])

STATUS_STAGE: dict[str, int] = {
    RefundStatus.PENDING: 0,
    RefundStatus.ACCEPTED: 1,
    **{status: 2 for status in TERMINAL_STATUSES},
}

# Spellings used by older gateway payloads and admin tools.
GATEWAY_STATUS_ALIASES: dict[str, RefundStatus] = {
    "succeeded": RefundStatus.REFUNDED,
    "success": RefundStatus.REFUNDED,
    "completed": RefundStatus.REFUNDED,
    "initiated": RefundStatus.PENDING,
    "in_progress": RefundStatus.PENDING,
    "cancelled": RefundStatus.REJECTED,
    "canceled": RefundStatus.REJECTED,
}


class TransitionDecision(enum.Enum):
    """Outcome of comparing a stored status with an incoming one."""

    APPLY = "apply"
    NOOP = "noop"
    STALE = "stale"
    CONFLICT = "conflict"


def parse_gateway_status(raw: str | None) -> RefundStatus | None:
    """
    Map a raw gateway status string onto RefundStatus.

    Matching is case-insensitive. Returns None for missing or
    unrecognised values.
    """
    if not raw or not isinstance(raw, str):
        return None
    value = raw.strip().lower()
    if value in RefundStatus.values:
        return RefundStatus(value)
    return GATEWAY_STATUS_ALIASES.get(value)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def is_terminal_success(status: str) -> bool:
    return status in TERMINAL_SUCCESS_STATUSES


def is_terminal_failure(status: str) -> bool:
    return status in TERMINAL_FAILURE_STATUSES


def decide_transition(current: str, incoming: str) -> TransitionDecision:
    """
    Decide whether an incoming status may replace the stored one.

    Args:
        current: Status currently stored on the refund
        incoming: Status reported by the gateway

    Returns:
        TransitionDecision.APPLY when incoming is a strictly later stage,
        NOOP for the same status, CONFLICT for a different terminal status
        after a terminal one, STALE for anything earlier.
    """
    if incoming == current:
        return TransitionDecision.NOOP

    if is_terminal(current):
        if is_terminal(incoming):
            return TransitionDecision.CONFLICT
        return TransitionDecision.STALE

    if STATUS_STAGE[incoming] > STATUS_STAGE[current]:
        return TransitionDecision.APPLY

    return TransitionDecision.STALE


__all__ = [
    "GATEWAY_STATUS_ALIASES",
    "NON_TERMINAL_STATUSES",
    "STATUS_STAGE",
    "TERMINAL_FAILURE_STATUSES",
    "TERMINAL_STATUSES",
    "TERMINAL_SUCCESS_STATUSES",
    "TransitionDecision",
    "decide_transition",
    "is_terminal",
    "is_terminal_failure",
    "is_terminal_success",
    "parse_gateway_status",
]
