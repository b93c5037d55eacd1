"""
Exception classes for the location ping service.

AppException carries an error code, the message the caller is allowed to
see, and optional details that are only ever written to the server log.
"""

from typing import Any, Optional

from errors.codes import ErrorCode, get_default_status_code


# Messages returned to API callers. Storage and internal failures share a
# single generic message so store internals never leak.
INVALID_COORDINATES_MESSAGE = "invalid lat/lon"
SERVER_ERROR_MESSAGE = "server error"


class AppException(Exception):
    """
    Base exception class for all application-specific errors.

    Attributes:
        error_code: A standardized error code from the ErrorCode enum
        message: Human-readable message returned to the caller
        status_code: The HTTP status code to return
        details: Optional additional context, logged but not returned

    Example:
        raise AppException(
            error_code=ErrorCode.VALIDATION_ERROR,
            message="invalid lat/lon",
            details={"field": "latitude", "value": "abc"}
        )
    """

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """
        Initialize an AppException.

        Args:
            error_code: The error code from the ErrorCode enum
            message: A human-readable error message
            status_code: The HTTP status code (defaults to the error code's default)
            details: Optional dictionary with additional error context
        """
        self.error_code = error_code
        self.message = message
        self.status_code = status_code or get_default_status_code(error_code)
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to the API error envelope.

        Returns:
            Dictionary with ``ok`` set to False and the caller-facing message
        """
        return {"ok": False, "error": self.message}

    def __repr__(self) -> str:
        return (
            f"AppException(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, status_code={self.status_code}, "
            f"details={self.details!r})"
        )


# Convenience factory functions for common error types

def validation_error(
    message: str = INVALID_COORDINATES_MESSAGE,
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create a validation error exception."""
    return AppException(
        error_code=ErrorCode.VALIDATION_ERROR,
        message=message,
        details=details
    )


def invalid_request(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create an invalid request exception."""
    return AppException(
        error_code=ErrorCode.INVALID_REQUEST,
        message=message,
        details=details
    )


def storage_error(
    operation: str,
    error: Optional[BaseException] = None,
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """
    Create a storage error exception for a failed store operation.

    The operation name and underlying error go into ``details`` for the
    server log; the caller only ever sees the generic server error message.
    """
    error_details = {"operation": operation}
    if error is not None:
        error_details["error"] = str(error)
        error_details["error_type"] = type(error).__name__
    if details:
        error_details.update(details)
    return AppException(
        error_code=ErrorCode.STORAGE_ERROR,
        message=SERVER_ERROR_MESSAGE,
        details=error_details
    )


def internal_error(
    message: str = SERVER_ERROR_MESSAGE,
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create an internal error exception."""
    return AppException(
        error_code=ErrorCode.INTERNAL_ERROR,
        message=message,
        details=details
    )
