"""
Normalization of gateway refund webhook payloads.

Gateway refund notifications arrive in several shapes:

    {"event_type": "refund.created", "data": {"id": ..., "charge": {"id": ...}}}
    {"event": "refund.updated", "data": {"id": ..., "charge_id": ...}}
    {"type": "refund.failed", "data": {"id": ..., "failure_reason": ...}}
    {"object": "refund", "id": ..., "status": "REFUNDED", ...}   # bare gateway object
    {"id": ..., "status": "REFUNDED"}                              # bare status update

Each payload is classified into an EventKind and passed to the normalizer
registered for that kind, which produces a RefundEvent. Payloads that are not
refund events normalize to None and are acknowledged without processing.

Usage:
    from refunds.webhooks.normalizer import normalize_refund_event

    event = normalize_refund_event(payload)
    if event is None:
        return  # not a refund event

Raises:
    MalformedWebhookError: payload is a refund event but lacks a refund id
        (or a charge id on creation)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Callable

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from refunds.exceptions import MalformedWebhookError
from refunds.state_machines import RefundStatus, parse_gateway_status

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# Currency Minor Units
# =============================================================================

THREE_DECIMAL_CURRENCIES = frozenset(["BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND"])

ZERO_DECIMAL_CURRENCIES = frozenset(
    ["CLP", "ISK", "JPY", "KRW", "UGX", "VND", "XAF", "XOF"]
)


def minor_unit_factor(currency: str | None) -> int:
    """Number of minor units in one major unit of `currency`."""
    code = (currency or "").upper()
    if code in THREE_DECIMAL_CURRENCIES:
        return 1000
    if code in ZERO_DECIMAL_CURRENCIES:
        return 1
    return 100


def parse_amount(value: Any, currency: str | None) -> Decimal | None:
    """
    Convert a payload amount to a major-unit Decimal.

    JSON integers are minor units and are divided by the currency factor.
    Floats and decimal strings are already major units.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Decimal(value) / minor_unit_factor(currency)
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


# =============================================================================
# Canonical Event
# =============================================================================


class EventKind(enum.Enum):
    """Closed set of refund webhook shapes."""

    CREATED = "refund.created"
    UPDATED = "refund.updated"
    SUCCEEDED = "refund.succeeded"
    FAILED = "refund.failed"
    NOTIFICATION = "notification"  # bare gateway refund object
    STATUS_UPDATE = "status_update"  # bare {id, status}

    @property
    def may_create(self) -> bool:
        """Whether an event of this kind may create a missing refund record."""
        return self in (EventKind.CREATED, EventKind.NOTIFICATION)


EVENT_TYPE_KINDS: dict[str, EventKind] = {
    "refund.created": EventKind.CREATED,
    "refund.updated": EventKind.UPDATED,
    "refund.succeeded": EventKind.SUCCEEDED,
    "refund.failed": EventKind.FAILED,
}


@dataclass(frozen=True)
class RefundEvent:
    """
    Canonical refund event.

    `status` is the raw gateway string; `target_status` maps it onto
    RefundStatus (None when unrecognised).
    """

    kind: EventKind
    refund_id: str
    charge_id: str | None
    amount: Decimal | None
    currency: str | None
    status: str | None
    reason: str | None
    failure_reason: str | None
    description: str | None
    reference: str | None
    metadata: dict[str, str]
    raw_payload: dict[str, Any] = field(repr=False)
    observed_at: datetime = field(default_factory=timezone.now)

    @property
    def target_status(self) -> RefundStatus | None:
        return parse_gateway_status(self.status)


# =============================================================================
# Shape Registry
# =============================================================================

EVENT_NORMALIZERS: dict[EventKind, Callable[[dict, dict], RefundEvent]] = {}


def register_normalizer(kind: EventKind) -> Callable:
    """
    Decorator to register the normalizer for one payload shape.

    The normalizer receives (payload, body) where body is the refund object
    unwrapped from the payload.
    """

    def decorator(func: Callable[[dict, dict], RefundEvent]) -> Callable:
        EVENT_NORMALIZERS[kind] = func
        return func

    return decorator


def _event_type(payload: dict) -> str | None:
    for key in ("event_type", "event", "type"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value.strip().lower()
    return None


def _unwrap_body(payload: dict) -> dict:
    body = payload.get("data")
    if not isinstance(body, dict):
        return payload
    # {"data": {"object": {...}}} envelope
    nested = body.get("object")
    if isinstance(nested, dict):
        return nested
    return body


def classify_payload(payload: Any) -> tuple[EventKind, dict] | None:
    """
    Work out which shape a payload has.

    Returns:
        (kind, body) for refund events, None for anything else
    """
    if not isinstance(payload, dict):
        return None

    event_type = _event_type(payload)
    body = _unwrap_body(payload)
    object_type = body.get("object")

    if isinstance(object_type, str) and object_type.lower() != "refund":
        return None

    if event_type:
        kind = EVENT_TYPE_KINDS.get(event_type)
        if kind is None:
            logger.info(
                "Ignoring webhook with unhandled event type",
                extra={"event_type": event_type},
            )
            return None
        return kind, body

    if object_type:
        return EventKind.NOTIFICATION, body

    if "id" in body and "status" in body:
        return EventKind.STATUS_UPDATE, body

    return None


# =============================================================================
# Field Extraction
# =============================================================================


def _string(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _charge_id(body: dict) -> str | None:
    charge = body.get("charge")
    if isinstance(charge, dict):
        return _string(charge.get("id"))
    if isinstance(charge, str):
        return _string(charge)
    return _string(body.get("charge_id"))


def _reference(body: dict) -> str | None:
    reference = body.get("reference")
    if isinstance(reference, dict):
        return _string(reference.get("merchant"))
    return _string(reference)


def _metadata(body: dict) -> dict[str, str]:
    metadata = body.get("metadata")
    if not isinstance(metadata, dict):
        return {}
    return {str(key): str(value) for key, value in metadata.items() if value is not None}


def _observed_at(payload: dict, body: dict) -> datetime:
    created = body.get("created", payload.get("created"))
    if isinstance(created, (int, float)) and not isinstance(created, bool):
        seconds = created / 1000 if created > 1e12 else created
        try:
            return datetime.fromtimestamp(seconds, tz=dt_timezone.utc)
        except (OverflowError, OSError, ValueError):
            return timezone.now()
    if isinstance(created, str):
        parsed = parse_datetime(created)
        if parsed is not None:
            return parsed if timezone.is_aware(parsed) else timezone.make_aware(parsed, dt_timezone.utc)
    return timezone.now()


def _build_event(
    kind: EventKind,
    payload: dict,
    body: dict,
    default_status: str | None = None,
) -> RefundEvent:
    refund_id = _string(body.get("id")) or _string(body.get("refund_id"))
    if not refund_id:
        raise MalformedWebhookError(
            "Refund webhook is missing the refund id",
            details={"event_kind": kind.value},
        )

    currency = _string(body.get("currency"))
    currency = currency.upper() if currency else None

    return RefundEvent(
        kind=kind,
        refund_id=refund_id,
        charge_id=_charge_id(body),
        amount=parse_amount(body.get("amount"), currency),
        currency=currency,
        status=_string(body.get("status")) or default_status,
        reason=_string(body.get("reason")),
        failure_reason=_string(body.get("failure_reason")),
        description=_string(body.get("description")),
        reference=_reference(body),
        metadata=_metadata(body),
        raw_payload=payload,
        observed_at=_observed_at(payload, body),
    )


# =============================================================================
# Shape Normalizers
# =============================================================================


@register_normalizer(EventKind.CREATED)
def normalize_created(payload: dict, body: dict) -> RefundEvent:
    event = _build_event(EventKind.CREATED, payload, body, default_status=RefundStatus.PENDING)
    if not event.charge_id:
        raise MalformedWebhookError(
            "Refund creation webhook is missing the charge id",
            details={"refund_id": event.refund_id},
        )
    return event


@register_normalizer(EventKind.UPDATED)
def normalize_updated(payload: dict, body: dict) -> RefundEvent:
    return _build_event(EventKind.UPDATED, payload, body)


@register_normalizer(EventKind.SUCCEEDED)
def normalize_succeeded(payload: dict, body: dict) -> RefundEvent:
    return _build_event(
        EventKind.SUCCEEDED, payload, body, default_status=RefundStatus.REFUNDED
    )


@register_normalizer(EventKind.FAILED)
def normalize_failed(payload: dict, body: dict) -> RefundEvent:
    return _build_event(EventKind.FAILED, payload, body, default_status=RefundStatus.FAILED)


@register_normalizer(EventKind.NOTIFICATION)
def normalize_notification(payload: dict, body: dict) -> RefundEvent:
    return _build_event(EventKind.NOTIFICATION, payload, body)


@register_normalizer(EventKind.STATUS_UPDATE)
def normalize_status_update(payload: dict, body: dict) -> RefundEvent:
    return _build_event(EventKind.STATUS_UPDATE, payload, body)


def normalize_refund_event(payload: Any) -> RefundEvent | None:
    """
    Turn a decoded webhook body into a RefundEvent.

    Returns:
        RefundEvent, or None when the payload is not a refund event

    Raises:
        MalformedWebhookError: If a refund event lacks a mandatory field
    """
    classified = classify_payload(payload)
    if classified is None:
        return None

    kind, body = classified
    return EVENT_NORMALIZERS[kind](payload, body)
