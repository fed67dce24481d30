"""Configuration models using Pydantic for validation."""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
import os


class AttributeConfig(BaseModel):
    """A single attribute dimension attached to every generated series."""
    model_config = ConfigDict(frozen=True)

    name: str
    cardinality: int = 1

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Attribute name must not be empty")
        return v

    @field_validator('cardinality', mode='before')
    @classmethod
    def null_cardinality(cls, v):
        return 0 if v is None else v

    @field_validator('cardinality')
    @classmethod
    def clamp_cardinality(cls, v):
        return max(1, v)


class Config(BaseModel):
    """Root configuration model.

    Numeric sizes are clamped to at least 1 so that a sparse config file
    still describes a runnable workload.
    """
    model_config = ConfigDict(frozen=True)

    metrics: int = 1
    interval: int = 1  # seconds
    services: int = 1
    attributes: List[AttributeConfig] = Field(default_factory=list)

    # Export deadline is max(floor, interval * fraction)
    export_timeout_fraction: float = Field(default=0.25, gt=0.0, le=1.0)
    export_timeout_floor_s: float = Field(default=1.0, gt=0.0)

    shutdown_grace_s: float = Field(default=5.0, ge=0.0)
    seed: Optional[int] = None
    log_level: str = "INFO"

    @field_validator('metrics', 'interval', 'services', mode='before')
    @classmethod
    def null_sizes(cls, v):
        """An explicit null decodes to 0 and is then clamped."""
        return 0 if v is None else v

    @field_validator('metrics', 'interval', 'services')
    @classmethod
    def clamp_minimum(cls, v):
        return max(1, v)

    @field_validator('attributes', mode='before')
    @classmethod
    def default_attributes(cls, v):
        return v if v is not None else []

    @field_validator('attributes')
    @classmethod
    def validate_attributes(cls, v):
        """Attribute names become label keys and must be unique."""
        names = [a.name for a in v]
        if len(names) != len(set(names)):
            raise ValueError("Attribute names must be unique")
        return v


def load_config(config_path: str) -> Config:
    """Load and validate configuration from YAML file."""
    import yaml

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r') as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse {config_path}: {e}")

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ValueError(f"Failed to parse {config_path}: expected a mapping at top level")

    # Apply environment variable overrides
    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config['log_level'] = env_log_level

    try:
        return Config(**raw_config)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
