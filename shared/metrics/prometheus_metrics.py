"""Prometheus metrics definitions and helpers.

Provides the HTTP metrics recorded by the API's request middleware.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class ApiMetrics:
    """HTTP request metrics.

    Each instance owns its registry so several applications (tests) can
    coexist in one process.
    """

    def __init__(self, registry: CollectorRegistry = None) -> None:
        """Initialize API metrics.

        Args:
            registry: Prometheus registry to use (a fresh one by default)
        """
        self.registry = registry if registry is not None else CollectorRegistry()

        self.requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status"],
            registry=self.registry,
        )

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )

        self.requests_in_progress = Gauge(
            "http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method"],
            registry=self.registry,
        )

    def observe(self, method: str, endpoint: str, status_code: int, duration: float) -> None:
        self.requests_total.labels(method=method, endpoint=endpoint, status=str(status_code)).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def render(self) -> bytes:
        return generate_latest(self.registry)


__all__ = ["ApiMetrics", "CONTENT_TYPE_LATEST"]
