from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

UNMATCHED_ROUTE = "unmatched"


class HttpRequestMetrics:
    """Per-app Prometheus request counter and latency histogram.

    Requests are labelled by route template, never by raw path, so the label
    set stays bounded whatever paths callers send.
    """

    def __init__(self, namespace: str) -> None:
        self._namespace = namespace
        self._registry = CollectorRegistry()
        self._request_counter = Counter(
            f"{namespace}_http_requests_total",
            "Total HTTP requests",
            labelnames=("method", "route", "status_code"),
            registry=self._registry,
        )
        self._latency_histogram = Histogram(
            f"{namespace}_http_request_duration_ms",
            "HTTP request latency in milliseconds",
            labelnames=("method", "route"),
            buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 3000, 10000),
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def observe(self, method: str, route: str, status_code: int, duration_ms: float) -> None:
        self._request_counter.labels(method, route, str(status_code)).inc()
        self._latency_histogram.labels(method, route).observe(duration_ms)

    def request_count(self, method: str, route: str, status_code: int) -> float:
        value = self._registry.get_sample_value(
            f"{self._namespace}_http_requests_total",
            {"method": method, "route": route, "status_code": str(status_code)},
        )
        return value or 0.0

    def render(self) -> str:
        return generate_latest(self._registry).decode("utf-8")
