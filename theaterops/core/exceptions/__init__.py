"""
theaterops exception system.

Usage:
    from theaterops.core.exceptions import ConflictError, GateIncompleteError

    raise ConflictError("Slot already taken", details={"booking_id": str(existing.id)})
    raise GateIncompleteError("Sign-In not finalized", missing_items=["Site marked"])

    # Add a new type on demand
    from theaterops.core.exceptions import exception_factory
    ImportError_ = exception_factory("RosterImportError", code="ROSTER_IMPORT", http_status=422)
"""
from theaterops.core.exceptions.base import ProjectError, exception_factory
from theaterops.core.exceptions.errors import (
    ConfigurationError,
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    GateIncompleteError,
    LockExpiredError,
    NotFoundError,
    QuotaExceededError,
    StateMachineViolationError,
    UnauthorizedError,
    ValidationError,
)

__all__ = [
    "ProjectError",
    "exception_factory",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "UnauthorizedError",
    "ForbiddenError",
    "ConflictError",
    "QuotaExceededError",
    "StateMachineViolationError",
    "GateIncompleteError",
    "LockExpiredError",
    "ExternalServiceError",
]
