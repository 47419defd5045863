"""
Application exception hierarchy.

Domain errors carry a machine-readable ``error_code`` so admin views and
API responses can report them without parsing messages.

    BaseApplicationError
    └── ConflictError - operation clashes with stored state

App-specific errors (refunds.exceptions) subclass these.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base for domain errors.

    Attributes:
        message: Human-readable description
        error_code: Stable code for callers
        details: Extra context such as ids or statuses
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ConflictError(BaseApplicationError):
    """
    Raised when a write conflicts with what is already stored, e.g. reassigning
    the gateway id of a stored refund or moving a status backwards.
    """

    default_error_code: str = "CONFLICT"
