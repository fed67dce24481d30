"""Series catalog shared read-only by every simulated service."""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple
import logging

from cardgen.cardinality import attribute_cardinality, iterate_attributes
from cardgen.config import Config


def metric_name(index: int) -> str:
    return "metric-%04d" % index


def service_name(index: int) -> str:
    return "service-%04d" % index


@dataclass(frozen=True)
class SeriesCatalog:
    """Metric names and attribute sets computed once at startup."""
    services: int
    metric_names: Tuple[str, ...]
    attribute_sets: Tuple[Mapping[str, str], ...]
    attribute_cardinality: int
    attribute_count: int
    interval_s: int

    @classmethod
    def from_config(cls, config: Config) -> "SeriesCatalog":
        metric_names = tuple(metric_name(i) for i in range(config.metrics))
        attribute_sets = tuple(
            MappingProxyType(dict(combination))
            for combination in iterate_attributes(config.attributes)
        )
        return cls(
            services=config.services,
            metric_names=metric_names,
            attribute_sets=attribute_sets,
            attribute_cardinality=attribute_cardinality(config.attributes),
            attribute_count=len(config.attributes),
            interval_s=config.interval,
        )

    @property
    def series_per_service(self) -> int:
        return len(self.metric_names) * self.attribute_cardinality

    @property
    def total_series(self) -> int:
        return self.services * self.series_per_service

    def log_summary(self, logger: logging.Logger):
        """Log the workload size before any service starts."""
        logger.info(
            f"Generating {self.services} services, {len(self.metric_names)} metrics, "
            f"{self.attribute_count} attributes"
        )
        logger.info(f"Interval {self.interval_s}s")
        logger.info(f"Attribute cardinality per metric {self.attribute_cardinality}")
        logger.info(f"Series per service {self.series_per_service}")
        logger.info(f"Total series {self.total_series}")
