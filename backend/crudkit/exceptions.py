"""
crudkit — Custom Exception Hierarchy
======================================

What:  Application-specific exceptions for every failure a service reports.
How:   Each exception class carries a message, an optional context dict and
       the HTTP status it maps to. The Resource Controller's routes convert
       ResourceError subclasses into failure envelopes on the spot; everything
       else reaches the centralized handlers registered by the bootstrap.
Who:   Raised by the controller, auth, middleware and the database handle.

Exception Hierarchy:
    CrudKitError (base)                 → 500
    ├── ResourceError                   (recovered locally by the controller)
    │   ├── ValidationError             → 400 Bad Request
    │   ├── ConfigurationError          → 400 Bad Request (mode not enabled)
    │   ├── NotFoundError               → 404 Not Found
    │   └── ConflictError               → 409 Conflict (duplicate key)
    ├── UnauthorizedError               → 401 Unauthorized
    ├── PayloadTooLargeError            → 413 Payload Too Large
    └── ServiceUnavailableError         → 503 Service Unavailable

Every one of them is rendered as {"success": false, "message": ...}.
"""

from typing import Any, Dict, Optional


class CrudKitError(Exception):
    """
    Base exception for all crudkit errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ResourceError(CrudKitError):
    """Errors the Resource Controller detects and formats itself."""


class ValidationError(ResourceError):
    """
    Raised when client input fails validation.

    When:    Malformed identifier, validator rejection, missing required field,
             value that cannot be coerced to the column type.
    HTTP:    400 Bad Request
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class ConfigurationError(ResourceError):
    """
    Raised when an operation is invoked in a mode the resource does not support.

    When:    POST /R/{id}/restore on a resource configured for hard delete.
    HTTP:    400 Bad Request
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Operation is not enabled for this resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(ResourceError):
    """
    Raised when the target record is absent after ownership/soft-delete scoping.

    HTTP:    404 Not Found
    """

    status_code = 404

    def __init__(
        self,
        resource: str = "Document",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message or f"{resource} not found", context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(ResourceError):
    """
    Raised when a uniqueness constraint is violated.

    What:    The message names the offending field, e.g. "email already exists".
    HTTP:    409 Conflict
    """

    status_code = 409

    def __init__(
        self,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{field} already exists" if field else "Duplicate value violates a unique constraint"
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class UnauthorizedError(CrudKitError):
    """
    Raised by the auth collaborator for a missing or invalid credential.

    HTTP:    401 Unauthorized
    """

    status_code = 401

    def __init__(
        self,
        message: str = "Invalid or expired token",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PayloadTooLargeError(CrudKitError):
    """
    Raised when a request body exceeds the configured ceiling.

    HTTP:    413 Payload Too Large
    """

    status_code = 413

    def __init__(self, limit: int, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["limit"] = limit
        super().__init__(
            message=f"Request body exceeds the {limit} byte limit",
            context=ctx,
        )
        self.limit = limit


class ServiceUnavailableError(CrudKitError):
    """
    Raised when a dependency (the database) cannot be reached.

    What:    `reason` is "timeout" when the probe exceeded its deadline and
             "unreachable" when the connection itself failed.
    When:    Fatal during startup; 503 if it happens while serving a request.
    HTTP:    503 Service Unavailable
    """

    status_code = 503

    def __init__(
        self,
        message: str = "Service temporarily unavailable. Please try again later.",
        reason: str = "unreachable",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["reason"] = reason
        super().__init__(message=message, context=ctx)
        self.reason = reason

