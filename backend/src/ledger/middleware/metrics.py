"""HTTP request metrics for Prometheus."""
import time

from prometheus_client import Counter, Gauge, Histogram
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

_LABELS = ["method", "path", "status_code"]

request_duration_seconds = Histogram(
    "ledger_http_request_duration_seconds",
    "Time spent serving HTTP requests",
    labelnames=_LABELS,
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 15.0, 30.0],
)

requests_total = Counter(
    "ledger_http_requests_total",
    "HTTP requests served",
    labelnames=_LABELS,
)

requests_in_progress = Gauge(
    "ledger_http_requests_in_progress",
    "HTTP requests currently being served",
    labelnames=["method"],
)

unhandled_errors_total = Counter(
    "ledger_http_errors_total",
    "Requests that raised instead of returning a response",
    labelnames=["method", "path", "error_type"],
)


def route_template(request: Request) -> str:
    """Matched route path (``/v1/orders/{task_id}``), or ``unmatched``."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Time and count every request except scrapes of ``/metrics``.

    Paths are labelled by route template so that ids in URLs do not create
    a series per order or invoice.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        method = request.method
        started = time.perf_counter()
        requests_in_progress.labels(method=method).inc()
        try:
            response = await call_next(request)
        except Exception as exc:
            unhandled_errors_total.labels(method=method, path=route_template(request), error_type=type(exc).__name__).inc()
            raise
        finally:
            requests_in_progress.labels(method=method).dec()

        labels = {"method": method, "path": route_template(request), "status_code": response.status_code}
        request_duration_seconds.labels(**labels).observe(time.perf_counter() - started)
        requests_total.labels(**labels).inc()
        return response
