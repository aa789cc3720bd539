"""
Exception hierarchy for the problem service.

Each error carries the HTTP status the error handlers map it to.
"""

from contextlib import contextmanager
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError


class ProblemServiceError(Exception):
    """Base class for all problem service errors."""

    status_code: int = 500
    error_type: str = "problem_service_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(ProblemServiceError):
    """An id lookup missed."""

    status_code = 404
    error_type = "not_found"


class InvalidTransitionError(ProblemServiceError):
    """A status change not allowed by the problem lifecycle."""

    status_code = 409
    error_type = "invalid_transition"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot move problem from '{current}' to '{requested}'",
            details={"current_status": current, "requested_status": requested},
        )
        self.current = current
        self.requested = requested


class StoreFailureError(ProblemServiceError):
    """A read or write against the store failed."""

    status_code = 500
    error_type = "store_failure"


class CollaboratorError(ProblemServiceError):
    """
    A call to the notification or user-management service failed.

    Never returned to API clients: the outbox worker records it on the
    message and reschedules the delivery.
    """

    status_code = 502
    error_type = "collaborator_failure"

    def __init__(self, collaborator: str, message: str, retryable: bool = True):
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator
        self.retryable = retryable


@contextmanager
def store_operation(action: str):
    """
    Translate store errors raised inside the block into StoreFailureError.

    Usage:
        with store_operation("create problem"):
            await repo.create_problem(...)
    """
    try:
        yield
    except SQLAlchemyError as e:
        raise StoreFailureError(f"Failed to {action}") from e
