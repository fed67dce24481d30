"""Per-service record, collect and export cycle."""
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Optional
import logging
import queue
import threading
import time

import numpy as np
from opentelemetry.sdk.metrics.export import MetricExporter, MetricExportResult, MetricsData

from cardgen.cancellation import CancellationToken
from cardgen.otel_exporter import ServiceInstruments, count_data_points
from cardgen.series import SeriesCatalog

logger = logging.getLogger(__name__)


class ExportOutcome(Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class TickResult:
    """Outcome of a single tick for one service."""
    outcome: ExportOutcome
    points: int = 0
    duration_s: float = 0.0
    error: Optional[str] = None


def export_deadline(interval_s: float, fraction: float = 0.25, floor_s: float = 1.0) -> float:
    """Deadline for one export: a fraction of the interval, never below the floor."""
    return max(floor_s, interval_s * fraction)


class ExportWorker:
    """
    Single daemon thread that runs a service's export calls in order.

    An export abandoned after its deadline or on cancellation keeps running
    here, but never holds up interpreter exit.
    """

    def __init__(self, name: str):
        self._queue: "queue.Queue" = queue.Queue()
        self._lock = threading.Lock()
        self._pending = 0
        self._idle = threading.Event()
        self._idle.set()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def submit(self, fn, *args, **kwargs) -> Future:
        future: Future = Future()
        with self._lock:
            self._pending += 1
            self._idle.clear()
        self._queue.put((future, fn, args, kwargs))
        return future

    def _run(self):
        while True:
            item = self._queue.get()
            if item is None:
                return

            future, fn, args, kwargs = item
            if future.set_running_or_notify_cancel():
                try:
                    result = fn(*args, **kwargs)
                except Exception as e:
                    future.set_exception(e)
                else:
                    future.set_result(result)

            self._done()

    def _done(self):
        with self._lock:
            self._pending -= 1
            if self._pending == 0:
                self._idle.set()

    @property
    def busy(self) -> bool:
        return not self._idle.is_set()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued and running exports to finish; True if they did."""
        return self._idle.wait(timeout)

    def shutdown(self):
        """Drop pending exports and let the thread exit after the current one."""
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is not None:
                item[0].cancel()
                self._done()
        self._queue.put(None)


class ExportPipeline:
    """
    Runs one tick for one service: record, collect, export.

    The exporter is only ever called from the pipeline's single export
    thread, so consecutive exports for a service are serialized even when
    an earlier one was abandoned after its deadline.
    """

    def __init__(
        self,
        service_name: str,
        catalog: SeriesCatalog,
        instruments: ServiceInstruments,
        exporter: MetricExporter,
        token: CancellationToken,
        deadline_s: float,
        rng: Optional[np.random.Generator] = None,
    ):
        self.service_name = service_name
        self.catalog = catalog
        self.instruments = instruments
        self.exporter = exporter
        self.token = token
        self.deadline_s = deadline_s
        self.rng = rng if rng is not None else np.random.default_rng()

        self._worker = ExportWorker(f"export-{service_name}")
        self._shut_down = False

    def record(self):
        """Record one uniform [0, 1) sample per metric and attribute set."""
        attribute_sets = self.catalog.attribute_sets
        if not attribute_sets:
            return

        for index in range(len(self.catalog.metric_names)):
            values = self.rng.random(len(attribute_sets))
            for value, attributes in zip(values, attribute_sets):
                self.instruments.record(index, float(value), attributes)

    def collect(self) -> MetricsData:
        return self.instruments.collect()

    def export(self, batch: MetricsData) -> TickResult:
        """Hand a snapshot to the sink, bounded by the deadline and cancellation."""
        points = count_data_points(batch)
        settled = threading.Event()

        start = time.monotonic()
        future = self._worker.submit(
            self.exporter.export,
            batch,
            timeout_millis=self.deadline_s * 1000,
        )
        future.add_done_callback(lambda _: settled.set())

        with self.token.linked(settled):
            settled.wait(self.deadline_s)
        elapsed = time.monotonic() - start

        if self.token.cancelled:
            future.cancel()
            return TickResult(ExportOutcome.CANCELLED, points, elapsed)

        if not future.done():
            future.cancel()
            logger.warning(
                f"Timeout after {self.deadline_s:g}s exporting metrics for {self.service_name}"
            )
            return TickResult(ExportOutcome.TIMEOUT, points, elapsed,
                              error=f"timeout after {self.deadline_s:g}s")

        try:
            result = future.result()
        except Exception as e:
            logger.error(f"Failed to export metrics for {self.service_name}: {e}")
            return TickResult(ExportOutcome.FAILED, points, elapsed, error=str(e))

        if result is not MetricExportResult.SUCCESS:
            logger.error(f"Failed to export metrics for {self.service_name}: exporter returned {result.name}")
            return TickResult(ExportOutcome.FAILED, points, elapsed, error=result.name)

        logger.info(
            f"Exported {points} points for {self.service_name} in {elapsed * 1000:.0f}ms"
        )
        return TickResult(ExportOutcome.SUCCESS, points, elapsed)

    @property
    def export_in_flight(self) -> bool:
        return self._worker.busy

    def wait_export_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for an abandoned export to return; True if none is left running."""
        return self._worker.wait_idle(timeout)

    def tick(self) -> TickResult:
        """Execute one full record, collect, export cycle."""
        self.record()
        batch = self.collect()
        if self.token.cancelled:
            return TickResult(ExportOutcome.CANCELLED, count_data_points(batch))
        return self.export(batch)

    def shutdown(self):
        """Release the sink and instrument state. Safe to call more than once."""
        if self._shut_down:
            return
        self._shut_down = True

        self._worker.shutdown()
        try:
            self.exporter.shutdown(timeout_millis=self.deadline_s * 1000)
        except Exception as e:
            logger.warning(f"Exporter shutdown failed for {self.service_name}: {e}")
        self.instruments.shutdown()
