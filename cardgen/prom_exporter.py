"""Prometheus self-monitoring for the generator itself."""
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server
import logging

logger = logging.getLogger(__name__)


class SelfMetrics:
    """Self-monitoring metrics for the generator."""

    def __init__(self, registry=None, prefix="cardgen_"):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.ticks_total = Counter(
            f"{prefix}ticks_total",
            "Total number of ticks by export outcome",
            ["service", "outcome"],
            registry=registry
        )

        self.exported_points_total = Counter(
            f"{prefix}exported_points_total",
            "Total number of data points exported",
            ["service"],
            registry=registry
        )

        self.tick_duration_seconds = Histogram(
            f"{prefix}tick_duration_seconds",
            "Duration of each tick in seconds",
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=registry
        )

        self.configured_series = Gauge(
            f"{prefix}configured_series",
            "Number of series configured across all services",
            registry=registry
        )

    def record_tick(self, service: str, outcome: str, points: int, duration: float):
        """Record the result of one tick."""
        self.ticks_total.labels(service=service, outcome=outcome).inc()
        if outcome == "success":
            self.exported_points_total.labels(service=service).inc(points)
        self.tick_duration_seconds.observe(duration)

    def set_configured_series(self, count: int):
        self.configured_series.set(count)


def start_self_metrics_server(port: int, registry: CollectorRegistry, bind_address: str = "0.0.0.0"):
    """Serve self-metrics over HTTP in a background thread."""
    start_http_server(port, addr=bind_address, registry=registry)
    logger.info(f"Self-metrics available on http://{bind_address}:{port}/metrics")
