"""
Request context middleware for log correlation.

WHAT: Middleware that assigns every request an ID and makes it available
throughout the request lifecycle.

WHY: A payment touches the invoice, the ledger, the rate source and the
email provider; the log lines from one request need a common key so they
can be read together. Clients may supply their own X-Request-ID to
correlate with their logs.

HOW: Stores the context in request.state and in a ContextVar for async-safe
access from services. RequestIdLogFilter copies the ID onto every log
record so formatters can print %(request_id)s.
"""

import logging
import re
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


REQUEST_ID_HEADER = "X-Request-ID"

# Accept caller-supplied IDs only if they are short and printable
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


@dataclass
class RequestContext:
    """
    Container for request-scoped context data.

    Fields:
    - request_id: Unique identifier for the request (for log correlation)
    - path: Request path (for logging without full URL)
    - method: HTTP method (GET, POST, etc.)
    """

    request_id: str
    path: str
    method: str


# Each async request gets its own isolated context
_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """
    Get the current request context.

    Returns:
        RequestContext if within a request, None otherwise
    """
    return _request_context.get()


def get_request_id() -> Optional[str]:
    context = _request_context.get()
    return context.request_id if context else None


class RequestIdLogFilter(logging.Filter):
    """
    Logging filter adding request_id to every record.

    Records logged outside a request get "-".
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that captures and stores request context.

    WHAT: Reuses a valid incoming X-Request-ID or generates a UUID4, and
    echoes it on the response.

    HOW: Uses Starlette's BaseHTTPMiddleware to wrap request processing.
    Stores context in both:
    - request.state (for access from request handlers)
    - ContextVar (for access from services/DAOs without request object)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process request and add context.

        Args:
            request: Incoming request
            call_next: Next middleware/handler

        Returns:
            Response with request ID header added
        """
        incoming = request.headers.get(REQUEST_ID_HEADER)
        if incoming and _VALID_REQUEST_ID.match(incoming):
            request_id = incoming
        else:
            request_id = str(uuid.uuid4())

        context = RequestContext(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
        )
        request.state.context = context
        token = _request_context.set(context)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _request_context.reset(token)
