"""
Service layer base classes.

Refund operations return a ServiceResult instead of raising for outcomes
an operator is expected to see (already refunded, amount over the
remaining balance, gateway declined). Exceptions stay reserved for bugs
and infrastructure failures.

Usage:
    class RefundService(BaseService):
        @classmethod
        def initiate_full(cls, charge_id: str) -> ServiceResult[Refund]:
            ...
            return ServiceResult.failure(
                "Charge has already been refunded",
                error_code=RefundErrorCode.ALREADY_REFUNDED,
            )

    result = RefundService.initiate_full(charge_id)
    if not result.success:
        return Response(result.to_response(), status=400)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    Attributes:
        success: Whether the operation completed
        data: Payload on success, usually a model instance
        error: Message shown to the caller on failure
        error_code: Stable code callers branch on (see RefundErrorCode)
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code)

    def to_response(self) -> dict[str, Any]:
        """Body for an API error response; the code is omitted when unset."""
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {"success": False, "error": self.error}
        if self.error_code:
            response["error_code"] = self.error_code
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Stateless base for services. Subclasses expose classmethods only.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        # e.g. "refunds.services.refund_service.RefundService"
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """Wrap a block of service writes in one database transaction."""
        with transaction.atomic():
            yield
