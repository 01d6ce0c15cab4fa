"""Prometheus request metrics recorded by the HTTP middleware."""
from __future__ import annotations

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

REQUEST_LABELS = ("method", "route", "status_code")
UNMATCHED_ROUTE = "unmatched"


class MetricsRecorder:
    """Request counters and latency histograms on a registry owned by one app.

    The registry is not the process-global default, so several applications
    (for example one per test) can coexist in the same interpreter.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        *,
        collect_process_metrics: bool = True,
    ) -> None:
        self.registry = registry or CollectorRegistry()
        if collect_process_metrics:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "Duration of HTTP requests in seconds",
            REQUEST_LABELS,
            registry=self.registry,
        )
        self.requests_total = Counter(
            "http_requests_total",
            "Total number of HTTP requests",
            REQUEST_LABELS,
            registry=self.registry,
        )

    def observe(self, method: str, route: str, status_code: int, duration: float) -> None:
        labels = (method.upper(), route, str(status_code))
        self.request_duration.labels(*labels).observe(max(duration, 0.0))
        self.requests_total.labels(*labels).inc()

    def render(self) -> bytes:
        """Return the registry snapshot in the text exposition format."""
        return generate_latest(self.registry)


__all__ = ["MetricsRecorder", "REQUEST_LABELS", "UNMATCHED_ROUTE"]
