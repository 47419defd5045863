"""
Shared infrastructure for the refund service: abstract models, the
service base class and the exception hierarchy.

Models and mixins live in core.models and core.model_mixins and are not
re-exported here, so importing ``core`` never touches the app registry.
"""

from .exceptions import BaseApplicationError, ConflictError
from .services import BaseService, ServiceResult

__all__ = [
    "BaseService",
    "ServiceResult",
    "BaseApplicationError",
    "ConflictError",
]
