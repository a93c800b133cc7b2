"""
Mailroom Backend — Custom Exception Hierarchy
===============================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Custom exceptions enable targeted error handling with appropriate HTTP
       status codes and user-friendly messages.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return `{"success": false, "error": ...}` envelopes.
Who:   Raised by services and the repository; caught by global handlers.

Exception Hierarchy:
    MailroomError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    │   └── DuplicateKeyError    → 400 Bad Request (unique key already taken)
    ├── UnauthorizedError        → 401 Unauthorized
    ├── ForbiddenError           → 403 Forbidden (token belongs to another user)
    ├── NotFoundError            → 404 Not Found
    ├── FileStorageError         → 500 Internal Server Error
    └── DatabaseError            → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class MailroomError(Exception):
    """
    Base exception for all Mailroom application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, only returned for validation errors)
    """

    status_code = 500
    code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(MailroomError):
    """
    Raised when client input fails validation.

    When:    Missing required fields, malformed ids, bad email format,
             upload type or size rejected.
    HTTP:    400 Bad Request
    """

    status_code = 400
    code = "validation_error"

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


class DuplicateKeyError(ValidationError):
    """
    Raised when a write would violate a resource's unique key.

    Kept distinct from generic failures so callers see "Email already exists"
    or "Template with this name already exists" instead of a 500.
    """

    code = "duplicate_key"

    def __init__(
        self,
        message: str = "A record with this key already exists",
        key_field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, field=key_field, context=context)


class UnauthorizedError(MailroomError):
    """
    Raised for bad credentials or a missing/invalid session token.

    The message is deliberately generic for login failures so the response
    does not reveal whether the email or the password was wrong.
    """

    status_code = 401
    code = "unauthorized"

    def __init__(
        self,
        message: str = "Invalid email or password",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(MailroomError):
    """Raised when a valid session token acts on another user's record."""

    status_code = 403
    code = "forbidden"

    def __init__(
        self,
        message: str = "Not allowed to access this resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(MailroomError):
    """
    Raised when a requested record or stored file does not exist.

    SQLAlchemy returns None for missing rows; the repository converts that
    into this exception so the handler can answer 404.
    """

    status_code = 404
    code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            label = resource[:1].upper() + resource[1:]
            message = f"{label} not found"
            if resource_id:
                message = f"{label} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class FileStorageError(MailroomError):
    """
    Raised when writing an attachment to disk fails.

    HTTP:    500 Internal Server Error
    The OS error and path go into `context` for the logs, never to the client.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(MailroomError):
    """
    Raised when database operations fail unexpectedly.

    Security Note:
        The message returned to the client is always generic.
        Detailed error info is logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
