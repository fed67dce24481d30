"""Per-service schedulers and the orchestrator that owns them."""
from dataclasses import replace
from enum import Enum
from typing import Callable, List, Optional
import logging
import threading
import time

import numpy as np
from opentelemetry.sdk.metrics.export import MetricExporter

from cardgen.cancellation import CancellationToken
from cardgen.config import Config
from cardgen.otel_exporter import ExporterOptions, ServiceInstruments, create_exporter
from cardgen.pipeline import ExportPipeline, TickResult, export_deadline
from cardgen.prom_exporter import SelfMetrics
from cardgen.series import SeriesCatalog, service_name

logger = logging.getLogger(__name__)


def stagger_offset(index: int, count: int, interval_s: float) -> float:
    """Delay before a service's first tick, spreading services across one interval."""
    return interval_s * index / count


class SchedulerState(Enum):
    IDLE = "idle"
    OFFSETTING = "offsetting"
    TICKING = "ticking"
    STOPPED = "stopped"


class ServiceScheduler:
    """
    Drives one service's pipeline on a fixed interval.

    Sleeps for the stagger offset, ticks once immediately and then once per
    interval until the token is cancelled. Ticks run on the scheduler thread
    so they never overlap. Firings missed by a slow tick are coalesced into
    a single immediate tick.
    """

    def __init__(
        self,
        pipeline: ExportPipeline,
        token: CancellationToken,
        interval_s: float,
        offset_s: float = 0.0,
        self_metrics: Optional[SelfMetrics] = None,
    ):
        self.pipeline = pipeline
        self.service_name = pipeline.service_name
        self.token = token
        self.interval_s = interval_s
        self.offset_s = offset_s
        self.self_metrics = self_metrics

        self.state = SchedulerState.IDLE
        self.tick_count = 0
        self.last_result: Optional[TickResult] = None
        self._thread = threading.Thread(
            target=self.run,
            name=f"scheduler-{self.service_name}",
            daemon=True,
        )

    def start(self):
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker to exit; True if it did."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _tick(self):
        tick_start = time.monotonic()
        result = self.pipeline.tick()
        self.tick_count += 1
        self.last_result = result

        if self.self_metrics:
            self.self_metrics.record_tick(
                self.service_name,
                result.outcome.value,
                result.points,
                time.monotonic() - tick_start,
            )

    def run(self):
        """Scheduler loop. Always releases the pipeline on exit."""
        try:
            self.state = SchedulerState.OFFSETTING
            if self.token.wait(self.offset_s):
                return

            self.state = SchedulerState.TICKING
            next_tick = time.monotonic()
            while not self.token.cancelled:
                self._tick()

                next_tick += self.interval_s
                now = time.monotonic()
                if next_tick < now:
                    missed = (now - next_tick) // self.interval_s
                    next_tick += missed * self.interval_s
                if self.token.wait(max(0.0, next_tick - now)):
                    break
        except Exception as e:
            logger.error(f"Service {self.service_name} failed: {e}", exc_info=True)
            self.token.cancel(reason=f"{self.service_name}: {e}")
        finally:
            self.state = SchedulerState.STOPPED
            self.pipeline.shutdown()


class Orchestrator:
    """Starts one scheduler per simulated service and owns the stop signal."""

    def __init__(
        self,
        config: Config,
        catalog: SeriesCatalog,
        options: ExporterOptions,
        token: Optional[CancellationToken] = None,
        self_metrics: Optional[SelfMetrics] = None,
        exporter_factory: Callable[[ExporterOptions], MetricExporter] = create_exporter,
    ):
        self.config = config
        self.catalog = catalog
        self.token = token if token is not None else CancellationToken()
        self.self_metrics = self_metrics
        self.exporter_factory = exporter_factory
        self.schedulers: List[ServiceScheduler] = []

        self.deadline_s = export_deadline(
            config.interval,
            config.export_timeout_fraction,
            config.export_timeout_floor_s,
        )
        # the transport gives up at the same deadline the tick waits for
        if options.timeout_s is None:
            options = replace(options, timeout_s=self.deadline_s)
        self.options = options

    def _rng(self, index: int) -> np.random.Generator:
        if self.config.seed is None:
            return np.random.default_rng()
        return np.random.default_rng([self.config.seed, index])

    def build_pipeline(self, index: int) -> ExportPipeline:
        """Construct a service's sink and instruments; errors here are fatal."""
        name = service_name(index)
        exporter = self.exporter_factory(self.options)
        try:
            instruments = ServiceInstruments.create(name, self.catalog.metric_names)
        except Exception:
            exporter.shutdown()
            raise

        return ExportPipeline(
            service_name=name,
            catalog=self.catalog,
            instruments=instruments,
            exporter=exporter,
            token=self.token,
            deadline_s=self.deadline_s,
            rng=self._rng(index),
        )

    def start(self):
        """Build every service up front, then launch the workers."""
        logger.info(f"Export deadline {self.deadline_s:g}s")

        pipelines = []
        try:
            for index in range(self.catalog.services):
                pipelines.append(self.build_pipeline(index))
        except Exception:
            for pipeline in pipelines:
                pipeline.shutdown()
            raise

        for index, pipeline in enumerate(pipelines):
            offset = stagger_offset(index, self.catalog.services, self.config.interval)
            self.schedulers.append(ServiceScheduler(
                pipeline,
                self.token,
                self.config.interval,
                offset_s=offset,
                self_metrics=self.self_metrics,
            ))

        if self.self_metrics:
            self.self_metrics.set_configured_series(self.catalog.total_series)

        for scheduler in self.schedulers:
            scheduler.start()
        logger.info(f"Started {len(self.schedulers)} service workers")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the stop signal fires."""
        return self.token.wait(timeout)

    def stop(self, grace_s: Optional[float] = None) -> List[str]:
        """
        Cancel every worker and join them within the grace period.

        Returns:
            Names of services whose workers were still running afterwards
        """
        if grace_s is None:
            grace_s = self.config.shutdown_grace_s
        self.token.cancel()

        deadline = time.monotonic() + grace_s
        stragglers = []
        for scheduler in self.schedulers:
            remaining = max(0.0, deadline - time.monotonic())
            if not scheduler.join(remaining):
                stragglers.append(scheduler.service_name)
                continue
            # an export abandoned on cancel may still be running on its daemon thread
            remaining = max(0.0, deadline - time.monotonic())
            if not scheduler.pipeline.wait_export_idle(remaining):
                stragglers.append(scheduler.service_name)

        if stragglers:
            logger.warning(f"{len(stragglers)} services still running after {grace_s:g}s grace period")
        return stragglers

    @property
    def failed(self) -> bool:
        return self.token.reason is not None
