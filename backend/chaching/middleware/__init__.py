"""
Middleware package.

WHY: Middleware provides cross-cutting concerns like request correlation
that apply to all requests.
"""

from chaching.middleware.request_context import (
    RequestContextMiddleware,
    RequestIdLogFilter,
    get_request_context,
    get_request_id,
    RequestContext,
)

__all__ = [
    "RequestContextMiddleware",
    "RequestIdLogFilter",
    "get_request_context",
    "get_request_id",
    "RequestContext",
]
