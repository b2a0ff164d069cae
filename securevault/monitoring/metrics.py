"""
Prometheus metrics for SecureVault
"""

import time

from prometheus_client import CollectorRegistry, Counter, Histogram
from prometheus_client.exposition import generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

UNMATCHED_ENDPOINT = "unmatched"

# Create a custom registry
metrics_registry = CollectorRegistry()

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
    registry=metrics_registry
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=(.005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0),
    registry=metrics_registry
)

# Upload metrics
files_uploaded_total = Counter(
    "files_uploaded_total",
    "Total files uploaded",
    registry=metrics_registry
)

file_upload_bytes_total = Counter(
    "file_upload_bytes_total",
    "Total bytes uploaded",
    registry=metrics_registry
)

# Audit metrics
audit_log_writes_total = Counter(
    "audit_log_writes_total",
    "Audit entries written",
    ["action"],
    registry=metrics_registry
)

audit_log_write_failures_total = Counter(
    "audit_log_write_failures_total",
    "Audit entries dropped after exhausting retries",
    registry=metrics_registry
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record request count and latency per route template"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            # Unmatched paths share one label so scans cannot add series
            route = request.scope.get("route")
            endpoint = getattr(route, "path", UNMATCHED_ENDPOINT)
            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                status=status
            ).inc()
            http_request_duration_seconds.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(time.time() - start_time)


def get_metrics() -> bytes:
    """Generate Prometheus metrics exposition format"""
    return generate_latest(metrics_registry)
