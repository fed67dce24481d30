"""Tests for configuration loading and clamping."""
import pytest
from pydantic import ValidationError

from cardgen.config import AttributeConfig, Config, load_config


def write(tmp_path, text):
    path = tmp_path / "cardgen.yaml"
    path.write_text(text)
    return str(path)


def test_load_config(tmp_path):
    config = load_config(write(tmp_path, """
metrics: 10
interval: 15
services: 3
attributes:
  - name: host
    cardinality: 4
  - name: pod
    cardinality: 2
"""))
    assert config.metrics == 10
    assert config.interval == 15
    assert config.services == 3
    assert [(a.name, a.cardinality) for a in config.attributes] == [("host", 4), ("pod", 2)]
    assert config.export_timeout_fraction == 0.25
    assert config.seed is None


def test_numeric_values_clamped_to_one(tmp_path):
    config = load_config(write(tmp_path, """
metrics: 0
interval: -5
services: 0
attributes:
  - name: a
    cardinality: 0
"""))
    assert config.metrics == 1
    assert config.interval == 1
    assert config.services == 1
    assert config.attributes[0].cardinality == 1


def test_explicit_null_sizes_clamped_to_one(tmp_path):
    config = load_config(write(tmp_path, """
metrics: null
interval: ~
services:
attributes:
  - name: a
    cardinality: null
"""))
    assert config.metrics == 1
    assert config.interval == 1
    assert config.services == 1
    assert config.attributes[0].cardinality == 1


def test_empty_file_uses_defaults(tmp_path):
    config = load_config(write(tmp_path, ""))
    assert config.metrics == 1
    assert config.attributes == []


def test_null_attributes(tmp_path):
    config = load_config(write(tmp_path, "attributes:\n"))
    assert config.attributes == []


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"))


def test_unparseable_file(tmp_path):
    with pytest.raises(ValueError):
        load_config(write(tmp_path, "metrics: [unclosed"))


def test_non_mapping_file(tmp_path):
    with pytest.raises(ValueError):
        load_config(write(tmp_path, "- just\n- a list\n"))


def test_duplicate_attribute_names_rejected(tmp_path):
    with pytest.raises(ValueError, match="unique"):
        load_config(write(tmp_path, """
attributes:
  - name: a
  - name: a
"""))


def test_log_level_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    config = load_config(write(tmp_path, "log_level: WARNING\n"))
    assert config.log_level == "DEBUG"


def test_config_is_immutable():
    config = Config(metrics=3)
    with pytest.raises(ValidationError):
        config.metrics = 4


def test_empty_attribute_name_rejected():
    with pytest.raises(ValidationError):
        AttributeConfig(name=" ", cardinality=2)


def test_export_timeout_fraction_bounds():
    with pytest.raises(ValidationError):
        Config(export_timeout_fraction=0)
    with pytest.raises(ValidationError):
        Config(export_timeout_fraction=1.5)
