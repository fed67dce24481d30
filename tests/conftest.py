"""Shared fixtures: in-process exporters standing in for an OTLP collector."""
import threading
import time

import pytest
from opentelemetry.sdk.metrics.export import MetricExporter, MetricExportResult

from cardgen.config import AttributeConfig, Config


class RecordingExporter(MetricExporter):
    """Accepts every batch and remembers it."""

    def __init__(self, result=MetricExportResult.SUCCESS, error=None, delay=0.0):
        super().__init__()
        self.result = result
        self.error = error
        self.delay = delay
        self.batches = []
        self.timeouts = []
        self.shutdown_calls = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def export(self, metrics_data, timeout_millis=10_000, **kwargs):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            self.batches.append(metrics_data)
            self.timeouts.append(timeout_millis)
            if self.error is not None:
                raise self.error
            return self.result
        finally:
            with self._lock:
                self.active -= 1

    def force_flush(self, timeout_millis=10_000):
        return True

    def shutdown(self, timeout_millis=30_000, **kwargs):
        self.shutdown_calls += 1


class BlockingExporter(RecordingExporter):
    """Hangs inside export until shut down."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def export(self, metrics_data, timeout_millis=10_000, **kwargs):
        self.entered.set()
        self.release.wait(10)
        return super().export(metrics_data, timeout_millis, **kwargs)

    def shutdown(self, timeout_millis=30_000, **kwargs):
        self.release.set()
        super().shutdown(timeout_millis, **kwargs)


def wait_until(predicate, timeout=5.0, interval=0.01):
    """Poll until predicate() is truthy or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def small_config():
    return Config(
        metrics=2,
        interval=1,
        services=1,
        attributes=[
            AttributeConfig(name="a", cardinality=2),
            AttributeConfig(name="b", cardinality=3),
        ],
        seed=7,
    )
