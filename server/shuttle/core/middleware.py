"""Request correlation and access logging middleware."""

import logging
import time
import uuid
from typing import Callable, Iterable, Optional

import structlog
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .observability import metrics_collector

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Correlates every log line of a request.

    An incoming ``X-Request-ID`` is honoured, otherwise one is generated.
    The id is bound into the structlog context variables while the
    request runs and echoed back on the response.
    """

    def __init__(self, app: ASGIApp, header_name: str = REQUEST_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.header_name) or uuid.uuid4().hex
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[self.header_name] = request_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Logs one line per request and feeds the HTTP request metrics."""

    QUIET_PATHS = frozenset({"/health", "/ready", "/metrics", "/favicon.ico"})

    def __init__(self, app: ASGIApp, quiet_paths: Optional[Iterable[str]] = None):
        super().__init__(app)
        self.quiet_paths = frozenset(quiet_paths) if quiet_paths is not None else self.QUIET_PATHS

    @staticmethod
    def _client_ip(request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.quiet_paths:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        # Label by route template so ids in paths do not explode cardinality
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        metrics_collector.record_request(request.method, endpoint, response.status_code, elapsed)

        entry = {
            "request_id": getattr(request.state, "request_id", None),
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(elapsed * 1000, 2),
            "client_ip": self._client_ip(request),
        }
        if response.status_code >= 500:
            logger.error("Request failed", extra=entry)
        elif response.status_code >= 400:
            logger.warning("Request rejected", extra=entry)
        else:
            logger.info("Request completed", extra=entry)

        return response


def setup_middleware(app: FastAPI, access_log: bool = True) -> None:
    """Install correlation and access logging; the request id is bound first."""
    if access_log:
        app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)
