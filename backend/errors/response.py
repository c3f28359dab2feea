"""
Standard error response builders for Polychat.

Every error crossing the HTTP boundary has the shape
``{"error": true, "message": ..., "details": ...}`` (details optional).
"""

from typing import Any, Optional
from .codes import ErrorCode
from .exceptions import PolychatError

GENERIC_ERROR_MESSAGE = "Unexpected error"


def error_response(
    error: PolychatError | Exception,
    include_code: bool = True,
    details: Optional[Any] = None,
) -> dict:
    """Build a standard error response dictionary.

    Args:
        error: The exception to convert to a response
        include_code: Whether to include the machine-readable error code
        details: Explicit details, overriding the ones carried by the error

    Returns:
        Standard error response dict with error=True

    Example:
        >>> from errors import ValidationError, error_response
        >>> error_response(ValidationError("Message cannot be empty", parameter="message"))
        {"error": True, "message": "Message cannot be empty", "code": "VALIDATION_MISSING_PARAM"}
    """
    if isinstance(error, PolychatError):
        body = {"error": True, "message": error.message}
        resolved = details if details is not None else error.details
        if resolved is not None:
            body["details"] = resolved
        if include_code:
            body["code"] = error.code.value
        return body

    # Non-Polychat exceptions never leak their text to the caller
    body = {"error": True, "message": GENERIC_ERROR_MESSAGE}
    if details is not None:
        body["details"] = details
    if include_code:
        body["code"] = ErrorCode.INTERNAL_UNEXPECTED.value
    return body


def status_for(error: Exception) -> int:
    """HTTP status code for an exception (500 for anything unknown)."""
    if isinstance(error, PolychatError):
        return error.status_code
    return 500


def success_response(data: Optional[dict] = None, **kwargs: Any) -> dict:
    """Build a standard success response dictionary.

    Example:
        >>> success_response()
        {"success": True}
    """
    response = {"success": True}

    if data:
        response.update(data)
    if kwargs:
        response.update(kwargs)

    return response
