"""
Workflow Exceptions

Typed errors raised by the workflow engine and entity stores.
Each error carries a human-readable message suitable for the acting user.
"""

from typing import Any
from typing import Dict
from typing import Optional


class WorkflowError(Exception):
    """Base class for all workflow errors."""

    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(WorkflowError):
    """Unknown request (or referenced user, vehicle, driver)."""


class NotAuthorizedError(WorkflowError):
    """Actor is not permitted to perform this action on this request."""


class NotOwnerError(WorkflowError):
    """Actor is not the requestor where ownership is required."""


class InvalidStateError(WorkflowError):
    """Action is illegal for the request's current status (includes lost races)."""


class WorkflowValidationError(WorkflowError):
    """Required payload field missing or malformed."""


class VersionConflictError(WorkflowError):
    """
    Optimistic concurrency loss.

    Callers should re-read the request and retry; this is not a business-rule failure.
    """

    retryable = True


# Name used by API consumers; kept distinct from pydantic.ValidationError internally
ValidationError = WorkflowValidationError

__all__ = [
    "WorkflowError",
    "NotFoundError",
    "NotAuthorizedError",
    "NotOwnerError",
    "InvalidStateError",
    "WorkflowValidationError",
    "ValidationError",
    "VersionConflictError",
]
