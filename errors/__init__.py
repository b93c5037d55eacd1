"""
Error handling module for the location ping service.

This module provides structured error handling with:
- ErrorCode enum for standardized error codes
- AppException class and factories (validation, storage, internal)
- The ``{"ok": false, "error": ...}`` response model
- Exception handlers for FastAPI integration
"""

from errors.codes import ErrorCode
from errors.exceptions import (
    AppException,
    validation_error,
    invalid_request,
    storage_error,
    internal_error,
)
from errors.handlers import (
    ErrorResponse,
    handle_app_exception,
    handle_unexpected_exception,
    register_exception_handlers,
)

__all__ = [
    "ErrorCode",
    "AppException",
    "validation_error",
    "invalid_request",
    "storage_error",
    "internal_error",
    "ErrorResponse",
    "handle_app_exception",
    "handle_unexpected_exception",
    "register_exception_handlers",
]
