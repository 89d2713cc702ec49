"""
Prometheus middleware recording duration and status of every HTTP request.
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.ulid_helper import is_valid_ulid
from ..monitoring.prometheus_metrics import prometheus_metrics


def _normalize_path(raw_path: str) -> str:
    # /api/v1/lessons/01J.../decline -> /api/v1/lessons/:id/decline
    return "/".join(":id" if is_valid_ulid(segment) else segment for segment in raw_path.split("/"))


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collects request metrics for everything except the scrape endpoint."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics/prometheus":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)
        prometheus_metrics.track_http_request_start(method, path)
        start_time = time.time()
        try:
            response = await call_next(request)
            prometheus_metrics.record_http_request(
                method=method,
                endpoint=path,
                duration=time.time() - start_time,
                status_code=response.status_code,
            )
            return response
        finally:
            prometheus_metrics.track_http_request_end(method, path)
