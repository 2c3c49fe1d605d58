"""
Built-in exception types. Add new ones here or via exception_factory().
"""
from __future__ import annotations

from typing import Any, Iterable, Optional

from theaterops.core.exceptions.base import ProjectError, exception_factory


class ConfigurationError(ProjectError):
    """Invalid or missing configuration."""

    default_code = "CONFIGURATION_ERROR"
    default_http_status = 500


class ValidationError(ProjectError):
    """Request or input validation failed."""

    default_code = "VALIDATION_ERROR"
    default_http_status = 400


class NotFoundError(ProjectError):
    """Requested resource not found."""

    default_code = "NOT_FOUND"
    default_http_status = 404


class UnauthorizedError(ProjectError):
    """Caller identity missing."""

    default_code = "UNAUTHORIZED"
    default_http_status = 401


class ForbiddenError(ProjectError):
    """Caller role or ownership does not allow the operation."""

    default_code = "FORBIDDEN"
    default_http_status = 403


class ConflictError(ProjectError):
    """Resource state conflict (overlapping booking, overlapping block)."""

    default_code = "CONFLICT"
    default_http_status = 409


class QuotaExceededError(ProjectError):
    """User already holds the maximum number of active slot locks."""

    default_code = "QUOTA_EXCEEDED"
    default_http_status = 429


class StateMachineViolationError(ProjectError):
    """Requested status change is not a legal edge from the current status."""

    default_code = "STATE_MACHINE_VIOLATION"
    default_http_status = 409


class GateIncompleteError(ProjectError):
    """A required checklist phase is not finalized for the target status."""

    default_code = "GATE_INCOMPLETE"
    default_http_status = 422

    def __init__(
        self,
        message: str,
        *,
        missing_items: Iterable[str] = (),
        details: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> None:
        self.missing_items: list[str] = list(missing_items)
        merged = {"missing_items": self.missing_items}
        merged.update(details or {})
        super().__init__(message, details=merged, **kwargs)


class ExternalServiceError(ProjectError):
    """Transactional store or another collaborator failed."""

    default_code = "EXTERNAL_SERVICE_ERROR"
    default_http_status = 502


LockExpiredError = exception_factory(
    "LockExpiredError",
    code="LOCK_EXPIRED",
    http_status=410,
    base=ConflictError,
)
