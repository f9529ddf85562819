"""
PlaceShare Backend: Custom Exception Hierarchy
===============================================

What:  Defines application-specific exceptions for different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services, the document store and collaborators; caught by
       global handlers.

Exception Hierarchy:
    PlaceShareError (base)
    ├── ValidationError           → 422 Unprocessable Entity
    ├── DuplicateEmailError       → 422 Unprocessable Entity
    ├── GeocodeError              → 422 Unprocessable Entity
    ├── UnauthorizedError         → 401 Unauthorized
    ├── ForbiddenError            → 403 Forbidden
    ├── NotFoundError             → 404 Not Found
    ├── GeocoderUnavailableError  → 503 Service Unavailable
    ├── FileStorageError          → 500 Internal Server Error
    └── StoreError                → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class PlaceShareError(Exception):
    """
    Base exception for all PlaceShare application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PlaceShareError):
    """
    Raised when client input fails a business rule.

    When:    Unsupported upload type, empty upload, saving one's own place.
    HTTP:    422 Unprocessable Entity (same status FastAPI uses for schema errors)
    """

    def __init__(
        self,
        message: str = "Invalid input, please check your data",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class DuplicateEmailError(PlaceShareError):
    """Raised on signup when the email already belongs to an account."""

    def __init__(
        self,
        message: str = "Email already registered, please login instead",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class GeocodeError(PlaceShareError):
    """
    Raised when an address cannot be resolved to coordinates.

    When:    The geocoder answered but returned no matching feature.
    HTTP:    422 Unprocessable Entity (the client can fix the address)
    """

    def __init__(
        self,
        address: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if address:
            ctx["address"] = address
        super().__init__(
            message="Could not find location for the specified address",
            context=ctx,
        )
        self.address = address


class UnauthorizedError(PlaceShareError):
    """
    Raised when the caller is not allowed to act on a resource.

    When:    Missing/invalid bearer token, or editing/deleting a place the
             caller did not create.
    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Authentication failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(PlaceShareError):
    """
    Raised when a credential check fails.

    When:    Login with an unknown email or wrong password, account deletion
             with a wrong password, acting on another user's account.
    HTTP:    403 Forbidden
    """

    def __init__(
        self,
        message: str = "Could not identify you, credentials seem to be wrong",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(PlaceShareError):
    """
    Raised when a requested resource does not exist.

    The ORM returns None for missing records; the service layer converts
    None → NotFoundError so HTTP concerns stay out of service logic.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class GeocoderUnavailableError(PlaceShareError):
    """
    Raised when the geocoding service fails after all retries, or while its
    circuit breaker is open.

    HTTP:    503 Service Unavailable, with Retry-After when known
    """

    def __init__(
        self,
        message: str = "Geocoding service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class FileStorageError(PlaceShareError):
    """
    Raised when writing an uploaded file fails.

    Deletes never raise this: cleanup is best-effort and only logs.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StoreError(PlaceShareError):
    """
    Raised when the document store fails: transaction aborted, constraint
    violation, lost connection.

    The message returned to the client is always generic; the driver error
    is kept in `context` and logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
