"""
Shared metrics configuration for the integration auth gateway.
"""

from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram


class MetricsCollector:
    """Centralized metrics collector for the gateway.

    Metrics are registered on ``registry`` when one is given; with no registry
    they are created unregistered, so several collectors can coexist (tests).
    """

    def __init__(self, service_name: str = "integration", registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up the gateway metrics."""
        self._metrics["cache_requests_total"] = Counter(
            "cache_requests_total",
            "Total cache lookups",
            ["cache", "result"],
            registry=self.registry
        )

        self._metrics["cache_loads_total"] = Counter(
            "cache_loads_total",
            "Total cache loads and refreshes",
            ["cache", "outcome"],
            registry=self.registry
        )

        self._metrics["upstream_requests_total"] = Counter(
            "upstream_requests_total",
            "Total requests sent to the platform",
            ["target", "status"],
            registry=self.registry
        )

        self._metrics["upstream_request_duration_seconds"] = Histogram(
            "upstream_request_duration_seconds",
            "Platform request duration in seconds",
            ["target"],
            registry=self.registry
        )

        self._metrics["token_verifications_total"] = Counter(
            "token_verifications_total",
            "Total token verifications",
            ["operation", "result"],
            registry=self.registry
        )

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).observe(value)

    def record_upstream_request(self, target: str, status: Any, duration: float):
        """Record a platform round trip."""
        self.increment_counter("upstream_requests_total", target=target, status=str(status))
        self.observe_histogram("upstream_request_duration_seconds", duration, target=target)
