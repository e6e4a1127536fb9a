"""
PROCTO - Service Errors
Domain failures raised by services and mapped to HTTP responses by the API layer
"""
from typing import Any


class ServiceError(Exception):
    """Base class for expected, user-facing service failures."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(ServiceError):
    """Referenced entity does not exist."""
    status_code = 404


class ForbiddenError(ServiceError):
    """Authenticated but not entitled (ownership, eligibility, timing, attempts)."""
    status_code = 403


class InvalidStateError(ServiceError):
    """Operation is not valid for the entity's current state."""
    status_code = 400


class ValidationFailedError(ServiceError):
    """Input is well-formed but semantically invalid."""
    status_code = 400

    def __init__(self, detail: str, details: list[dict[str, Any]] | None = None):
        super().__init__(detail)
        self.details = details or []
