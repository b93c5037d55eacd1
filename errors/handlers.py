"""
Exception handlers for the location ping service.

This module provides FastAPI exception handlers that convert exceptions
to the ``{"ok": false, "error": ...}`` envelope used by every endpoint.
Details and stack traces are logged, never returned.
"""

import logging
import traceback
import uuid

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from errors.codes import ErrorCode
from errors.exceptions import AppException, SERVER_ERROR_MESSAGE

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Error envelope returned by all endpoints."""
    ok: bool = False
    error: str


def get_request_id(request: Request) -> str:
    """
    Get the request ID from the request state or generate a new one.

    Args:
        request: The FastAPI request object

    Returns:
        The request ID string
    """
    # Set by RequestIDMiddleware
    if hasattr(request.state, "request_id"):
        return request.state.request_id

    return str(uuid.uuid4())


async def handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle known application exceptions and convert to the error envelope.

    Client errors are logged as warnings, store failures as errors so that
    the underlying cause (kept in ``exc.details``) shows up server-side.

    Args:
        request: The FastAPI request object
        exc: The AppException that was raised

    Returns:
        JSONResponse with the error envelope
    """
    request_id = get_request_id(request)

    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "Application error occurred",
        extra={"extra_data": {
            "error_code": exc.error_code.value,
            "error_message": exc.message,
            "status_code": exc.status_code,
            "details": exc.details,
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        }}
    )

    error_response = ErrorResponse(error=exc.message)

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(),
    )


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions safely without exposing internal details.

    Args:
        request: The FastAPI request object
        exc: The unexpected exception that was raised

    Returns:
        JSONResponse with the generic server error envelope
    """
    request_id = get_request_id(request)

    logger.error(
        "Unexpected error occurred",
        extra={"extra_data": {
            "error_code": ErrorCode.INTERNAL_ERROR.value,
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
            "stack_trace": traceback.format_exc(),
        }},
        exc_info=True,
    )

    error_response = ErrorResponse(error=SERVER_ERROR_MESSAGE)

    return JSONResponse(
        status_code=500,
        content=error_response.model_dump(),
    )


def register_exception_handlers(app) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(AppException, handle_app_exception)

    # Catch-all for anything that escapes a route
    app.add_exception_handler(Exception, handle_unexpected_exception)

    logger.info("Exception handlers registered successfully")
