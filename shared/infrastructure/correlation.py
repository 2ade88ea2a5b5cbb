"""
Request Correlation Middleware.

Every request gets a correlation ID that is attached to all log records
produced while serving it. Mercado Pago sends its own ``x-request-id`` on
notifications; reusing it lets a delivery be matched against the gateway's
notification history.
"""

import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Context variable for request ID (task-local)
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    - If X-Request-ID header is present, uses that value
    - Otherwise generates a new UUID
    - Returns the ID in response headers
    """

    HEADER_NAME = "X-Request-ID"
    MAX_LENGTH = 128

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = (request.headers.get(self.HEADER_NAME) or "")[: self.MAX_LENGTH]
        if not request_id:
            request_id = str(uuid.uuid4())

        token = request_id_var.set(request_id)
        try:
            request.state.request_id = request_id
            response = await call_next(request)
            response.headers[self.HEADER_NAME] = request_id
            return response
        finally:
            request_id_var.reset(token)


class CorrelationIdFilter:
    """Logging filter that adds request_id to log records."""

    def filter(self, record) -> bool:
        record.request_id = get_request_id() or "-"
        return True
