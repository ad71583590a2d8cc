"""
Request monitoring: request ids, timing headers, access logs and Prometheus
metrics.
"""

import logging
import time
import uuid
from typing import Any, Callable, Dict

from fastapi import Request, Response
from prometheus_client import Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

from ticketing.core.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


class TicketingMetrics:
    """Prometheus collectors for HTTP traffic and booking activity"""

    def __init__(self) -> None:
        self.requests = Counter(
            "ticketing_http_requests_total",
            "HTTP requests served",
            ["method", "route", "status"],
        )
        self.latency = Histogram(
            "ticketing_http_request_seconds",
            "Time spent serving a request",
            ["method", "route"],
            buckets=LATENCY_BUCKETS,
        )
        self.errors = Counter(
            "ticketing_unhandled_errors_total",
            "Requests that ended in an unhandled exception",
            ["exception", "route"],
        )
        self.events_created_total = Counter(
            "ticketing_events_created_total", "Events created by organizers"
        )
        self.bookings_total = Counter(
            "ticketing_bookings_total", "Bookings written", ["source"]
        )
        self.bookings_deactivated_total = Counter(
            "ticketing_bookings_deactivated_total",
            "Bookings switched inactive",
            ["reason"],
        )

    def record_request(self, method: str, route: str, status: int, seconds: float) -> None:
        self.requests.labels(method=method, route=route, status=status).inc()
        self.latency.labels(method=method, route=route).observe(seconds)

    def record_error(self, exception: str, route: str) -> None:
        self.errors.labels(exception=exception, route=route).inc()


metrics = TicketingMetrics()


def route_template(request: Request) -> str:
    # "/events/{event_id}" rather than the concrete path
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and records its outcome"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        log_fields = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            metrics.record_error(type(e).__name__, route_template(request))
            logger.exception("request_failed", extra=log_fields)
            raise

        elapsed = time.perf_counter() - started
        metrics.record_request(
            request.method, route_template(request), response.status_code, elapsed
        )
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed * 1000:.1f}ms"

        log_fields.update(status_code=response.status_code, elapsed_ms=round(elapsed * 1000, 2))
        logger.info("request_completed", extra=log_fields)
        return response


async def get_health_status() -> Dict[str, Any]:
    from ticketing.core.database_manager import db_manager

    database = await db_manager.health_check()
    return {
        "status": "healthy" if database["status"] == "healthy" else "degraded",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "timestamp": time.time(),
        "database": database,
    }


async def get_prometheus_metrics() -> str:
    return generate_latest().decode("utf-8")
