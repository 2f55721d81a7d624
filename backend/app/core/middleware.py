"""Request observability: request ids, access log lines and HTTP metrics."""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.metrics import http_request_duration_seconds, http_requests_total

REQUEST_ID_HEADER = "X-Request-ID"

# Polled by orchestrators and scrapers; logged at debug only
_QUIET_PATHS = frozenset({"/health", "/health/live", "/health/ready", "/metrics"})

logger = structlog.stdlib.get_logger("workflow_router.http")


def _route_template(request: Request) -> str:
    """Route pattern ("/api/v1/workflows/{workflow_id}/canvas") to keep label cardinality low."""
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Binds request_id (reusing the client's X-Request-ID) for the whole request.

    Unhandled exceptions are counted as 500 before they propagate.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            duration = time.perf_counter() - start
            path = _route_template(request)
            http_requests_total.labels(method=request.method, path=path, status=status).inc()
            http_request_duration_seconds.labels(method=request.method, path=path).observe(
                duration
            )
            log = logger.debug if path in _QUIET_PATHS else logger.info
            log(
                "request_completed",
                method=request.method,
                path=path,
                status=status,
                duration_ms=round(duration * 1000, 2),
            )
            structlog.contextvars.clear_contextvars()
