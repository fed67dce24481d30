"""OpenTelemetry sink and per-service instrument construction."""
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence
import base64
import logging

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    InMemoryMetricReader,
    MetricExporter,
    MetricsData,
)
from opentelemetry.sdk.resources import SERVICE_NAME, Resource

logger = logging.getLogger(__name__)


class ExporterSetupError(Exception):
    """The OTLP exporter could not be constructed from the given options."""


class InstrumentSetupError(Exception):
    """A service's resource, meter provider or gauges could not be created."""


@dataclass(frozen=True)
class ExporterOptions:
    """Transport options taken from the command line."""
    endpoint: str = "localhost:4317"
    plaintext: bool = False
    token: str = ""
    username: str = ""
    password: str = ""
    protocol: str = "grpc"  # "grpc" or "http"
    timeout_s: Optional[float] = None  # transport deadline per export request


def build_auth_headers(options: ExporterOptions) -> Dict[str, str]:
    """Bearer token wins over Basic credentials; both parts of Basic are required."""
    headers = {}
    if options.token:
        headers["authorization"] = f"Bearer {options.token}"
    elif options.username and options.password:
        auth = base64.b64encode(f"{options.username}:{options.password}".encode()).decode()
        headers["authorization"] = f"Basic {auth}"
    return headers


def _split_endpoint(endpoint: str) -> str:
    """Normalize an endpoint to host:port, rejecting anything else."""
    address = endpoint.strip()
    for scheme in ("http://", "https://"):
        if address.startswith(scheme):
            address = address[len(scheme):]
    address = address.rstrip("/")

    host, sep, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ExporterSetupError(f"Invalid OTLP endpoint '{endpoint}', expected host:port")
    return address


def create_exporter(options: ExporterOptions) -> MetricExporter:
    """Create an OTLP metric exporter for one service."""
    address = _split_endpoint(options.endpoint)
    headers = build_auth_headers(options) or None

    try:
        if options.protocol == "http":
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter

            scheme = "http" if options.plaintext else "https"
            return OTLPMetricExporter(
                endpoint=f"{scheme}://{address}/v1/metrics",
                headers=headers,
                timeout=options.timeout_s,
            )

        if options.protocol == "grpc":
            from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (  # type: ignore[assignment]
                OTLPMetricExporter,
            )

            return OTLPMetricExporter(
                endpoint=address,
                insecure=options.plaintext,
                headers=headers,
                timeout=options.timeout_s,
            )
    except Exception as e:
        raise ExporterSetupError(f"Failed to create OTLP exporter for {address}: {e}") from e

    raise ExporterSetupError(f"Unsupported protocol '{options.protocol}'")


def count_data_points(metrics_data: MetricsData) -> int:
    """Count data points across every metric in a snapshot."""
    return sum(
        len(metric.data.data_points)
        for resource_metrics in metrics_data.resource_metrics
        for scope_metrics in resource_metrics.scope_metrics
        for metric in scope_metrics.metrics
    )


class ServiceInstruments:
    """
    Private instrument state for one simulated service.

    Each service gets its own resource, meter provider and in-memory reader,
    none of which are installed as the global provider.
    """

    def __init__(self, service_name: str, provider: MeterProvider,
                 reader: InMemoryMetricReader, gauges: List):
        self.service_name = service_name
        self.provider = provider
        self.reader = reader
        self.gauges = gauges
        self._shut_down = False

    @classmethod
    def create(cls, service_name: str, metric_names: Sequence[str],
               meter_name_prefix: str = "cardgen") -> "ServiceInstruments":
        try:
            resource = Resource.create({SERVICE_NAME: service_name})
            reader = InMemoryMetricReader()
            provider = MeterProvider(resource=resource, metric_readers=[reader])
            meter = provider.get_meter(f"{meter_name_prefix}-{service_name}")
        except Exception as e:
            raise InstrumentSetupError(f"Failed to create resource for {service_name}: {e}") from e

        gauges = []
        for name in metric_names:
            try:
                gauges.append(meter.create_gauge(name=name, unit="1"))
            except Exception as e:
                provider.shutdown()
                raise InstrumentSetupError(
                    f"Failed to create gauge metric {name} for {service_name}: {e}"
                ) from e

        return cls(service_name, provider, reader, gauges)

    def record(self, index: int, value: float, attributes: Optional[Mapping[str, str]] = None):
        self.gauges[index].set(value, attributes=attributes)

    def collect(self) -> MetricsData:
        """Snapshot everything recorded so far."""
        metrics_data = self.reader.get_metrics_data()
        if metrics_data is None:
            return MetricsData(resource_metrics=[])
        return metrics_data

    def shutdown(self):
        if self._shut_down:
            return
        self._shut_down = True
        try:
            self.provider.shutdown()
        except Exception as e:
            logger.warning(f"Meter provider shutdown failed for {self.service_name}: {e}")
