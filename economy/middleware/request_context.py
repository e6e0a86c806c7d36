"""Request context middleware: request id for log correlation, plus client IP resolution."""

import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)


def get_request_id() -> Optional[str]:
    """
    Get the current request ID from context.

    Returns:
        The current request ID or None if not in a request context.
    """
    return request_id_var.get()


def get_client_ip(request: Request) -> Optional[str]:
    """
    Best-effort client IP.

    The first ``X-Forwarded-For`` entry wins, then ``X-Real-IP``, then the
    socket peer. Returns None when none of them is available.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id.

    The request id is taken from ``X-Request-ID`` when the caller sends one,
    and echoed back on the response.
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        request_token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
            response.headers[self.HEADER_NAME] = request_id
            return response
        finally:
            request_id_var.reset(request_token)


def setup_request_context_middleware(app):
    app.add_middleware(RequestContextMiddleware)
