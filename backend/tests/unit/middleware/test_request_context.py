"""
Request Context Middleware Tests.

WHAT: Unit tests for RequestContextMiddleware and RequestIdLogFilter.

WHY: Log lines of one request are correlated through the request id:
- A valid caller-supplied X-Request-ID is reused
- Anything else is replaced by a generated UUID
- The id is available to code running inside the request and on log records
"""

import logging
import uuid

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from chaching.middleware.request_context import (
    REQUEST_ID_HEADER,
    RequestContextMiddleware,
    RequestIdLogFilter,
    get_request_context,
    get_request_id,
)


@pytest.fixture
def test_app():
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)

    @app.get("/context")
    async def context():
        ctx = get_request_context()
        return {"request_id": ctx.request_id, "path": ctx.path, "method": ctx.method}

    return app


class TestRequestContextMiddleware:
    def test_generates_uuid_when_absent(self, test_app):
        response = TestClient(test_app).get("/context")
        request_id = response.headers[REQUEST_ID_HEADER]
        assert uuid.UUID(request_id)
        assert response.json()["request_id"] == request_id

    def test_reuses_valid_incoming_id(self, test_app):
        response = TestClient(test_app).get("/context", headers={REQUEST_ID_HEADER: "abc-123"})
        assert response.headers[REQUEST_ID_HEADER] == "abc-123"
        assert response.json() == {"request_id": "abc-123", "path": "/context", "method": "GET"}

    @pytest.mark.parametrize("incoming", ["has spaces", "x" * 65, "semi;colon"])
    def test_replaces_invalid_incoming_id(self, test_app, incoming):
        response = TestClient(test_app).get("/context", headers={REQUEST_ID_HEADER: incoming})
        assert response.headers[REQUEST_ID_HEADER] != incoming

    def test_context_cleared_after_request(self, test_app):
        TestClient(test_app).get("/context")
        assert get_request_context() is None
        assert get_request_id() is None


class TestRequestIdLogFilter:
    def test_outside_request_uses_dash(self):
        record = logging.LogRecord("test", logging.INFO, __file__, 1, "msg", None, None)
        assert RequestIdLogFilter().filter(record) is True
        assert record.request_id == "-"
