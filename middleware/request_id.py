"""
Request ID middleware for request correlation.

Every location ping, listing and clear gets a request ID so its log lines
can be tied together and matched against the X-Request-ID a device or
dashboard saw in the response.
"""

import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Read by telemetry.JSONFormatter for every log record
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"

# Caller-supplied IDs longer than this are replaced
MAX_REQUEST_ID_LENGTH = 128


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Attach a request ID to each request and its response.

    The ID is taken from the X-Request-ID header when the caller sends a
    usable one, otherwise a UUID4 is generated. It is stored in
    ``request.state.request_id`` for the exception handlers and in
    ``request_id_var`` for logging, and echoed back in the response header.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER, "").strip()
        if not request_id or len(request_id) > MAX_REQUEST_ID_LENGTH:
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            request_id_var.reset(token)


def get_request_id() -> str:
    """Return the current request's ID, or "" outside a request."""
    return request_id_var.get()
