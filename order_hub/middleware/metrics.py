"""HTTP request count and latency, labelled by normalised request path."""

import re
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_COUNT = Counter(
    "order_hub_http_requests_total",
    "HTTP requests served",
    ["method", "route", "status"],
)

REQUEST_LATENCY = Histogram(
    "order_hub_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "route"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

_UUID = r"[0-9a-fA-F-]{32,36}"
_ID_SEGMENTS = [
    (re.compile(rf"^/api/products/{_UUID}"), "/api/products/{product_id}"),
    (re.compile(rf"^/api/orders/{_UUID}"), "/api/orders/{order_id}"),
]


def normalise_path(path: str) -> str:
    """Collapse id segments so each endpoint is one label value."""
    for pattern, replacement in _ID_SEGMENTS:
        path = pattern.sub(replacement, path)
    return path


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        route = normalise_path(request.url.path)
        REQUEST_COUNT.labels(method=request.method, route=route, status=str(response.status_code)).inc()
        REQUEST_LATENCY.labels(method=request.method, route=route).observe(elapsed)
        return response
