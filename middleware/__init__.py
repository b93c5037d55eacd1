"""
Middleware components for the location ping service.
"""

from middleware.request_id import (
    RequestIDMiddleware,
    request_id_var,
    get_request_id,
    REQUEST_ID_HEADER,
)

__all__ = [
    "RequestIDMiddleware",
    "request_id_var",
    "get_request_id",
    "REQUEST_ID_HEADER",
]
