"""
Polychat Error Handling Module

Provides standardized error codes, exceptions, and response builders
for consistent error handling across the application.

Usage:
    from errors import (
        # Error codes
        ErrorCode,

        # Exceptions
        PolychatError,
        ValidationError,
        NotFoundOrForbiddenError,
        ForbiddenError,
        ConflictError,
        RateLimitExceeded,
        ProviderError,
        ProviderUnavailable,
        ProviderTimeout,
        ProviderEmptyResponse,
        PersistenceError,
        ApiError,

        # Response builders
        error_response,
        success_response,

        # Hooks
        register_exception_handlers,
        log_error,
    )

Example:
    from errors import NotFoundOrForbiddenError

    async def delete_conversation(store, user_id, conversation_id):
        row = await store.get_owned(conversation_id, user_id)
        if not row:
            raise NotFoundOrForbiddenError(
                "Conversation not found or does not belong to the user",
                resource_type="conversation",
                resource_id=conversation_id,
            )
"""

from .codes import ErrorCode
from .exceptions import (
    PolychatError,
    ValidationError,
    NotFoundOrForbiddenError,
    ForbiddenError,
    ConflictError,
    RateLimitExceeded,
    ProviderError,
    ProviderUnavailable,
    ProviderTimeout,
    ProviderEmptyResponse,
    PersistenceError,
    ApiError,
)
from .response import (
    error_response,
    status_for,
    success_response,
)
from .handlers import (
    register_exception_handlers,
    log_error,
)

__all__ = [
    # Error codes
    "ErrorCode",
    # Exceptions
    "PolychatError",
    "ValidationError",
    "NotFoundOrForbiddenError",
    "ForbiddenError",
    "ConflictError",
    "RateLimitExceeded",
    "ProviderError",
    "ProviderUnavailable",
    "ProviderTimeout",
    "ProviderEmptyResponse",
    "PersistenceError",
    "ApiError",
    # Response builders
    "error_response",
    "status_for",
    "success_response",
    # Hooks
    "register_exception_handlers",
    "log_error",
]
