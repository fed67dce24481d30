"""Tests for the series catalog."""
import logging

import pytest

from cardgen.config import AttributeConfig, Config
from cardgen.series import SeriesCatalog, metric_name, service_name


def test_names():
    assert metric_name(0) == "metric-0000"
    assert metric_name(42) == "metric-0042"
    assert service_name(7) == "service-0007"


def test_total_series_count():
    config = Config(
        services=2,
        metrics=2,
        attributes=[
            AttributeConfig(name="a", cardinality=2),
            AttributeConfig(name="b", cardinality=1),
            AttributeConfig(name="c", cardinality=3),
        ],
    )
    catalog = SeriesCatalog.from_config(config)

    assert catalog.metric_names == ("metric-0000", "metric-0001")
    assert len(catalog.attribute_sets) == 6
    assert catalog.attribute_cardinality == 6
    assert catalog.series_per_service == 12
    assert catalog.total_series == 24


def test_attribute_sets_are_read_only(small_config):
    catalog = SeriesCatalog.from_config(small_config)
    assert dict(catalog.attribute_sets[0]) == {"a": "000000000", "b": "000000000"}
    assert dict(catalog.attribute_sets[-1]) == {"a": "000000001", "b": "000000002"}
    with pytest.raises(TypeError):
        catalog.attribute_sets[0]["a"] = "x"


def test_no_attributes():
    catalog = SeriesCatalog.from_config(Config(metrics=3))
    assert catalog.attribute_sets == ()
    assert catalog.attribute_cardinality == 1
    assert catalog.total_series == 3


def test_log_summary(small_config, caplog):
    catalog = SeriesCatalog.from_config(small_config)
    logger = logging.getLogger("cardgen.test")
    with caplog.at_level(logging.INFO, logger="cardgen.test"):
        catalog.log_summary(logger)

    assert "Generating 1 services, 2 metrics, 2 attributes" in caplog.text
    assert "Attribute cardinality per metric 6" in caplog.text
    assert "Total series 12" in caplog.text
