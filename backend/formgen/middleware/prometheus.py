"""ASGI middleware that records Prometheus metrics for every HTTP request."""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from formgen.core.metrics import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
)

_SKIP_PATHS = frozenset({"/api/health", "/metrics"})

# Label used for requests that matched no route, keeps scanners from
# inflating the label set
_UNMATCHED = "unmatched"


def _endpoint_label(request: Request) -> str:
    """Route template (``/api/v1/forms/generate``) rather than the raw path."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or _UNMATCHED


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Records request count, duration, and in-progress gauge."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        method = request.method

        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        http_requests_in_progress.labels(method=method).inc()
        start = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
        finally:
            elapsed = time.perf_counter() - start
            endpoint = _endpoint_label(request)
            http_requests_total.labels(method=method, endpoint=endpoint, status=status).inc()
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(elapsed)
            http_requests_in_progress.labels(method=method).dec()

        return response
