"""
Error codes for Polychat.

Provides a standardized taxonomy of error codes organized by category.
Use these codes consistently across all error responses.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for Polychat.

    Categories:
    - VALIDATION_*: Input validation errors (user-fixable, never retried)
    - NOT_FOUND_*: Missing or not-owned resources
    - FORBIDDEN_*: Resource exists but belongs to someone else
    - CONFLICT_*: Duplicate resources
    - RATE_LIMIT_*: Temporary throttling
    - PROVIDER_*: Language-model provider failures
    - PERSISTENCE_*: Storage failures
    - API_*: Client-side transport failures
    - INTERNAL_*: Internal/unexpected errors
    """

    # Validation errors (input checking)
    VALIDATION_MISSING_PARAM = "VALIDATION_MISSING_PARAM"
    VALIDATION_INVALID_FORMAT = "VALIDATION_INVALID_FORMAT"
    VALIDATION_OUT_OF_RANGE = "VALIDATION_OUT_OF_RANGE"
    VALIDATION_BUSY = "VALIDATION_BUSY"
    VALIDATION_CATALOG_EMPTY = "VALIDATION_CATALOG_EMPTY"

    # Not found errors (missing resources)
    NOT_FOUND_CONVERSATION = "NOT_FOUND_CONVERSATION"
    NOT_FOUND_USER = "NOT_FOUND_USER"
    NOT_FOUND_RESOURCE = "NOT_FOUND_RESOURCE"

    # Ownership errors
    FORBIDDEN_NOT_OWNER = "FORBIDDEN_NOT_OWNER"

    # Conflicts
    CONFLICT_DUPLICATE = "CONFLICT_DUPLICATE"

    # Throttling
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Provider errors (LLM interactions)
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    PROVIDER_TIMEOUT = "PROVIDER_TIMEOUT"
    PROVIDER_EMPTY_RESPONSE = "PROVIDER_EMPTY_RESPONSE"

    # Storage errors
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"

    # Client transport errors
    API_REQUEST_FAILED = "API_REQUEST_FAILED"

    # Internal errors (unexpected failures)
    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"
    INTERNAL_CONFIG_ERROR = "INTERNAL_CONFIG_ERROR"
