"""
Request monitoring middleware: request ids, structured request logs and
Prometheus metrics.
"""

import time
import traceback
import uuid
from typing import Any, Callable

import structlog
from fastapi import Request, Response
from prometheus_client import Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

struct_logger = structlog.get_logger("events_dashboard.requests")


class EventsMetrics:
    """Request and event-store counters exposed at /metrics"""

    def __init__(self) -> None:
        self.http_requests_total = Counter(
            "http_requests_total",
            "HTTP requests served, by route template and status",
            ["method", "endpoint", "status_code"],
        )
        # Top bucket matches the list deadline
        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 15.0),
        )
        self.errors_total = Counter(
            "errors_total",
            "Requests that escaped the API error envelope",
            ["error_type", "endpoint"],
        )
        self.store_errors_total = Counter(
            "events_store_errors_total",
            "Classified event store failures, by envelope code",
            ["code"],
        )
        self.events_created_total = Counter(
            "events_created_total", "Events persisted through POST /events"
        )

    def observe_request(
        self, method: str, endpoint: str, status_code: int, duration: float
    ) -> None:
        labels = {"method": method, "endpoint": endpoint}
        self.http_requests_total.labels(status_code=status_code, **labels).inc()
        self.http_request_duration_seconds.labels(**labels).observe(duration)

    def observe_unhandled(self, error_type: str, endpoint: str) -> None:
        self.errors_total.labels(error_type=error_type, endpoint=endpoint).inc()

    def observe_store_error(self, code: str) -> None:
        self.store_errors_total.labels(code=code).inc()


# Collectors register globally, so a single instance per process
metrics = EventsMetrics()


def _route_template(request: Request) -> str:
    """Use the route path template as the metrics label to bound cardinality"""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return str(path) if path else "unmatched"


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return str(forwarded.split(",")[0].strip())
    return str(request.client.host) if request.client else "unknown"


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Attach a request id, log request lifecycle and record metrics"""

    def __init__(self, app: Any, enable_metrics: bool = True) -> None:
        super().__init__(app)
        self.enable_metrics = enable_metrics

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        client_ip = _client_ip(request)

        struct_logger.info(
            "request_started",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=client_ip,
        )

        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            if self.enable_metrics:
                metrics.observe_unhandled(
                    e.__class__.__name__, _route_template(request)
                )
            struct_logger.error(
                "request_failed",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration=duration,
                error=str(e),
                error_type=e.__class__.__name__,
                traceback=traceback.format_exc(),
            )
            raise

        duration = time.time() - start_time
        if self.enable_metrics:
            metrics.observe_request(
                request.method,
                _route_template(request),
                response.status_code,
                duration,
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"

        struct_logger.info(
            "request_completed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration=duration,
        )
        return response


def get_prometheus_metrics() -> str:
    """Render every registered collector in the text exposition format"""
    return str(generate_latest().decode("utf-8"))
