"""
MasterMinds Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions, one per error family of the API.
How:   Each exception carries a user-facing message, a machine-readable code
       and an optional context dict. Global exception handlers (registered in
       main.py) turn them into the JSON error envelope with the matching status.
Who:   Raised by services, storage backends and auth dependencies.

Exception Hierarchy:
    MasterMindsError (base)
    ├── ValidationError          → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    │   ├── TokenExpiredError    → 401 (TOKEN_EXPIRED)
    │   └── MalformedTokenError  → 401 (MALFORMED_TOKEN)
    ├── AuthorizationError       → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 400 Bad Request (duplicates)
    ├── InvalidStateError        → 400 Bad Request (lifecycle violations)
    ├── AccountLockedError       → 423 Locked
    ├── RateLimitExceededError   → 429 Too Many Requests
    └── StorageError             → 500 Internal Server Error
"""

from typing import Any, Dict, Iterable, List, Optional


class MasterMindsError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        code:     Machine-readable code, e.g. "TOKEN_EXPIRED"
        context:  Extra details returned in the envelope's `details` field
    """

    status_code: int = 500
    error: str = "server_error"
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.context = context or {}
        super().__init__(self.message)

    def to_response(self, request_id: Optional[str] = None) -> Dict[str, Any]:
        """The JSON error envelope shared by every error response."""
        return {
            "success": False,
            "error": self.error,
            "code": self.code,
            "message": self.message,
            "details": self.context or None,
            "request_id": request_id,
        }


class ValidationError(MasterMindsError):
    """
    Raised when client input fails a business validation rule.

    Schema-level failures are raised by FastAPI as RequestValidationError and
    share this status and envelope; this class covers the rules checked
    inside handlers (password strength, empty updates, missing refresh token).
    """

    status_code = 400
    error = "validation_error"
    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation failed",
        code: Optional[str] = None,
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        if errors is not None:
            ctx["errors"] = errors
        super().__init__(message=message, code=code, context=ctx)
        self.field = field


class AuthenticationError(MasterMindsError):
    """Missing, invalid or unusable credentials."""

    status_code = 401
    error = "authentication_error"
    default_code = "AUTH_REQUIRED"

    def __init__(
        self,
        message: str = "Access denied. Authentication required.",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class TokenExpiredError(AuthenticationError):
    """The bearer token's signature is valid but its `exp` has passed."""

    default_code = "TOKEN_EXPIRED"

    def __init__(self, message: str = "Access denied. Token has expired."):
        super().__init__(message=message)


class MalformedTokenError(AuthenticationError):
    """The bearer token could not be decoded or its signature/claims are wrong."""

    default_code = "MALFORMED_TOKEN"

    def __init__(self, message: str = "Access denied. Malformed token."):
        super().__init__(message=message)


class AuthorizationError(MasterMindsError):
    """Authenticated, but not allowed to perform the action."""

    status_code = 403
    error = "authorization_error"
    default_code = "INSUFFICIENT_PERMISSIONS"

    def __init__(
        self,
        message: str = "Access denied. Insufficient permissions.",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class NotFoundError(MasterMindsError):
    """
    Raised when a requested resource does not exist.

    Storage returns None for missing records; services convert that into
    this exception so routes never deal with None.
    """

    status_code = 404
    error = "not_found"
    default_code = "NOT_FOUND"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource.capitalize()} not found"
        if resource_id:
            message = f"{resource.capitalize()} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, code=code, context=ctx)


class ConflictError(MasterMindsError):
    """A uniqueness invariant would be violated (duplicate user or application)."""

    status_code = 400
    error = "conflict"
    default_code = "CONFLICT"

    def __init__(
        self,
        message: str = "The resource already exists",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class InvalidStateError(MasterMindsError):
    """
    The resource exists but its lifecycle status does not allow the action.

    The envelope enumerates the current status and the statuses that would
    have allowed it so the client can explain the refusal.
    """

    status_code = 400
    error = "invalid_state"
    default_code = "INVALID_STATE"

    def __init__(
        self,
        message: str,
        current_status: str,
        allowed_statuses: Iterable[str],
        code: Optional[str] = None,
    ):
        allowed = list(allowed_statuses)
        super().__init__(
            message=message,
            code=code,
            context={"currentStatus": current_status, "allowedStatuses": allowed},
        )
        self.current_status = current_status
        self.allowed_statuses = allowed


class AccountLockedError(MasterMindsError):
    """Too many failed authentication attempts for one identifier."""

    status_code = 423
    error = "account_locked"
    default_code = "ACCOUNT_LOCKED"

    def __init__(self, retry_after: int, message: Optional[str] = None):
        minutes = max(1, -(-retry_after // 60))
        message = message or (
            f"Account temporarily locked due to too many failed login attempts. "
            f"Try again in {minutes} minutes."
        )
        super().__init__(message=message, context={"retry_after": retry_after})
        self.retry_after = retry_after


class RateLimitExceededError(MasterMindsError):
    """
    Raised when a client exceeds a sliding-window request limit.

    Response includes a Retry-After header with the seconds until the
    oldest request in the window expires. `headers` carries any limiter
    headers (X-RateLimit-*) the handler should add to the 429 response.
    """

    status_code = 429
    error = "rate_limit_exceeded"
    default_code = "RATE_LIMIT_EXCEEDED"

    def __init__(
        self,
        retry_after: int = 60,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        message = message or (
            f"Too many requests. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
        self.headers = headers or {}


class StorageError(MasterMindsError):
    """
    Raised when the storage backend fails unexpectedly.

    The message returned to the client is always generic; the context
    (exception type, operation) is logged server-side only.
    """

    status_code = 500
    error = "server_error"
    default_code = "STORAGE_ERROR"

    def __init__(
        self,
        message: str = "A storage error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)

    def to_response(self, request_id: Optional[str] = None) -> Dict[str, Any]:
        body = super().to_response(request_id)
        body["details"] = None
        return body
