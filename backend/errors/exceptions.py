"""
Custom exception hierarchy for Polychat.

All exceptions inherit from PolychatError and include:
- code: ErrorCode for categorization
- message: Human-readable error message (safe to show the user)
- details: Optional additional context
- recoverable: Whether the user can retry/fix the issue
- status_code: HTTP status used when the error crosses the API boundary
- context: Additional key-value pairs for debugging
"""

from typing import Any, Optional
from .codes import ErrorCode


class PolychatError(Exception):
    """Base exception for all Polychat errors.

    Attributes:
        code: The ErrorCode categorizing this error
        message: Human-readable error message
        details: Optional additional context for the user
        recoverable: Whether the error can be resolved by user action
        status_code: HTTP status code for API responses
        context: Additional debugging information
    """

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED
    recoverable: bool = False
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Any] = None,
        code: Optional[ErrorCode] = None,
        recoverable: Optional[bool] = None,
        **context: Any,
    ):
        self.message = message
        self.details = details
        self.context = context if context else None

        # Allow overriding class defaults
        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable

        super().__init__(message)

    def __str__(self) -> str:
        if self.details and isinstance(self.details, str):
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
        }


class ValidationError(PolychatError):
    """Bad input. Never retried; the caller has to fix it."""

    code = ErrorCode.VALIDATION_MISSING_PARAM
    recoverable = True
    status_code = 400

    def __init__(
        self,
        message: str,
        details: Optional[Any] = None,
        parameter: Optional[str] = None,
        expected: Optional[str] = None,
        received: Optional[str] = None,
        **context: Any,
    ):
        ctx = {**context}
        if parameter:
            ctx["parameter"] = parameter
        if expected:
            ctx["expected"] = expected
        if received:
            ctx["received"] = received
        super().__init__(message, details, **ctx)


class NotFoundOrForbiddenError(PolychatError):
    """Resource is missing, or exists but is not owned by the caller."""

    code = ErrorCode.NOT_FOUND_RESOURCE
    recoverable = True
    status_code = 404

    def __init__(
        self,
        message: str,
        details: Optional[Any] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        **context: Any,
    ):
        # Set appropriate code based on resource type
        if resource_type == "conversation":
            code = ErrorCode.NOT_FOUND_CONVERSATION
        elif resource_type == "user":
            code = ErrorCode.NOT_FOUND_USER
        else:
            code = ErrorCode.NOT_FOUND_RESOURCE

        ctx = {**context}
        if resource_type:
            ctx["resource_type"] = resource_type
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message, details, code=code, **ctx)


class ForbiddenError(NotFoundOrForbiddenError):
    """Resource exists but the supplied user does not own it."""

    status_code = 403

    def __init__(self, message: str, details: Optional[Any] = None, **context: Any):
        super().__init__(message, details, **context)
        self.code = ErrorCode.FORBIDDEN_NOT_OWNER


class ConflictError(PolychatError):
    """Resource already exists (e.g. duplicate catalog entry)."""

    code = ErrorCode.CONFLICT_DUPLICATE
    recoverable = True
    status_code = 409


class RateLimitExceeded(PolychatError):
    """Too many messages in the trailing window. Back off and retry later."""

    code = ErrorCode.RATE_LIMIT_EXCEEDED
    recoverable = True
    status_code = 429

    def __init__(
        self,
        message: str = "Too many messages sent in a short period. Please wait and try again.",
        details: Optional[Any] = None,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None,
        **context: Any,
    ):
        ctx = {**context}
        if limit is not None:
            ctx["limit"] = limit
        if window_seconds is not None:
            ctx["window_seconds"] = window_seconds
        super().__init__(message, details, **ctx)


class ProviderError(PolychatError):
    """External language-model provider failure.

    The message is always the generic user-facing string; the raw cause is
    logged where the error is raised.
    """

    code = ErrorCode.PROVIDER_UNAVAILABLE
    recoverable = True
    status_code = 502
    default_message = "Mentor is unavailable right now. Please try again in a moment."

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Any] = None,
        model: Optional[str] = None,
        **context: Any,
    ):
        ctx = {**context}
        if model:
            ctx["model"] = model
        super().__init__(message or self.default_message, details, **ctx)


class ProviderUnavailable(ProviderError):
    """Provider answered with a non-success status or could not be reached."""


class ProviderTimeout(ProviderError):
    """Provider did not answer within the bounded timeout."""

    code = ErrorCode.PROVIDER_TIMEOUT
    status_code = 504
    default_message = "Mentor is taking too long to respond. Please try again."


class ProviderEmptyResponse(ProviderError):
    """Provider answered successfully but with no usable completion text."""

    code = ErrorCode.PROVIDER_EMPTY_RESPONSE
    default_message = "Mentor returned an empty response. Please try again."


class PersistenceError(PolychatError):
    """Storage failure. Surfaced to the caller, not retried internally."""

    code = ErrorCode.PERSISTENCE_FAILED
    recoverable = False
    status_code = 500

    def __init__(
        self,
        message: str,
        details: Optional[Any] = None,
        operation: Optional[str] = None,
        **context: Any,
    ):
        ctx = {**context}
        if operation:
            ctx["operation"] = operation
        super().__init__(message, details, **ctx)


class ApiError(PolychatError):
    """Client-side failure talking to the Polychat HTTP API."""

    code = ErrorCode.API_REQUEST_FAILED
    recoverable = True
    status_code = 502

    def __init__(
        self,
        message: str,
        details: Optional[Any] = None,
        status: Optional[int] = None,
        **context: Any,
    ):
        ctx = {**context}
        if status is not None:
            ctx["status"] = status
        super().__init__(message, details, **ctx)
        self.status = status
