"""
Error code catalog for the location ping service.

This module defines all error codes used throughout the application.
There are only two families: the caller sent something we cannot store
(4xx), or the backing store failed (5xx).
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used in the application.

    Each error code maps to a specific HTTP status code:
    - Validation errors (4xx): Client request issues
    - Storage errors (5xx): Elasticsearch failures
    - Internal errors (5xx): Anything else
    """

    # Validation errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Location payload failed validation (HTTP 400)"""

    INVALID_REQUEST = "INVALID_REQUEST"
    """Malformed request structure (HTTP 400)"""

    # Storage errors (5xx)
    STORAGE_ERROR = "STORAGE_ERROR"
    """Persistent store read/write failed (HTTP 500)"""

    # Internal errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected server error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.STORAGE_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
