"""Harbor error taxonomy.

Every error raised out of a component is a HarborError subclass carrying a
stable machine-readable ``code``, the HTTP status the API layer maps it to,
and optional structured ``details``.
"""

from __future__ import annotations

from typing import Any


class HarborError(Exception):
    """Base class for all Harbor errors."""

    code: str = "internal_error"
    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class SecurityViolationError(HarborError):
    """Path escapes the workspace root, or a disallowed command."""

    code = "security_violation"
    status_code = 403
    default_message = "Operation not allowed"


class NotFoundError(HarborError):
    """Missing file, version, session or container."""

    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class ConflictError(HarborError):
    """File already exists, or catalog/directory mismatch."""

    code = "conflict"
    status_code = 409
    default_message = "Resource conflict"


class ResourceLimitError(HarborError):
    """File too large, quota exceeded."""

    code = "resource_limit"
    status_code = 413
    default_message = "Resource limit exceeded"


class TimeoutExceededError(ResourceLimitError):
    """A bounded operation (exec, lint) ran past its timeout."""

    code = "timeout"
    status_code = 504
    default_message = "Operation timed out"


class InfrastructureError(HarborError):
    """Container runtime unreachable, disk I/O failure."""

    code = "infrastructure_failure"
    status_code = 503
    default_message = "Infrastructure failure"


class ValidationError(HarborError):
    """Bad parameters: invalid line range, missing field, unknown operation."""

    code = "validation_error"
    status_code = 400
    default_message = "Invalid request"
