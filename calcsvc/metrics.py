from __future__ import annotations

from typing import Sequence

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)
from prometheus_client.exposition import CONTENT_TYPE_LATEST

DEFAULT_DURATION_BUCKETS_MS = (0.1, 5.0, 15.0, 50.0, 100.0, 500.0)


class ServiceMetrics:
    """Process-wide request metrics, built once per app and shared by handlers.

    Durations are observed in milliseconds. The request counter carries both a
    ``route`` and an ``endpoint`` label with the same value so dashboards
    written against either name keep working.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(
        self,
        *,
        registry: CollectorRegistry | None = None,
        buckets_ms: Sequence[float] = DEFAULT_DURATION_BUCKETS_MS,
        default_collectors: bool = True,
    ) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        if default_collectors:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)
        self.request_duration = Histogram(
            "http_request_duration_ms",
            "Duration of HTTP requests in ms",
            ["method", "route", "status_code"],
            registry=self.registry,
            buckets=tuple(buckets_ms),
        )
        self.requests = Counter(
            "api_requests_total",
            "Total number of API requests",
            ["method", "route", "endpoint", "status"],
            registry=self.registry,
        )
        self.inflight = Gauge(
            "http_inflight_requests",
            "In-flight HTTP requests",
            ["method"],
            registry=self.registry,
        )

    def request_started(self, method: str) -> None:
        self.inflight.labels(method=method).inc()

    def request_finished(self, method: str) -> None:
        self.inflight.labels(method=method).dec()

    def observe_request(self, *, method: str, route: str, status_code: int, duration_ms: float) -> None:
        status = str(status_code)
        self.request_duration.labels(method=method, route=route, status_code=status).observe(max(0.0, duration_ms))
        self.requests.labels(method=method, route=route, endpoint=route, status=status).inc()

    def render(self) -> bytes:
        return generate_latest(self.registry)
