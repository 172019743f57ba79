# This project was developed with assistance from AI tools.
"""Workflow error taxonomy.

Services raise these; ``main.py`` renders them as RFC 7807 problem details.
Every error is recoverable by the caller except ``StorageFailureError``,
which is retryable because nothing was committed.
"""

from fastapi import status


class WorkflowError(Exception):
    """Base class for errors raised by the loan workflow services."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, *, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(WorkflowError, LookupError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransitionError(WorkflowError, ValueError):
    """Wrong or out-of-order workflow event.

    Unknown event names are a bad request; known events fired at the wrong
    stage are a conflict with the loan's current state.
    """

    status_code = status.HTTP_409_CONFLICT


class ValidationFailedError(WorkflowError, ValueError):
    """A submission is missing required data. Carries every violated rule."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, errors: list[str], detail: str | None = None):
        super().__init__(detail or (errors[0] if errors else "Validation failed."))
        self.errors = list(errors)


class LockedError(WorkflowError):
    status_code = status.HTTP_423_LOCKED


class ConflictError(WorkflowError):
    status_code = status.HTTP_409_CONFLICT


class UnauthorizedError(WorkflowError, PermissionError):
    status_code = status.HTTP_401_UNAUTHORIZED


class StorageFailureError(WorkflowError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class RateLimitedError(WorkflowError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class UpstreamError(WorkflowError):
    """An external provider (valuation data, email) failed or returned nothing usable."""

    status_code = status.HTTP_502_BAD_GATEWAY
