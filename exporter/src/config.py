"""
Exporter configuration: runtime settings and the YAML sample config.

Two layers:

- :class:`ExporterSettings` holds runtime settings loaded from environment
  variables (or a ``.env`` file) with pydantic-settings: timeouts, network
  ports, BigQuery target and state file locations.
- :class:`ExporterConfig` holds the labelling of the produced samples
  (location, entity, sample and metric types, value multiplier). It is read
  from a YAML file mounted from a ConfigMap by :func:`load_config`.

CHANGELOG:
- 2026-10-18: Add discovery tuning settings (bind port, broadcast address, queue bound)
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings

from exporter.src.errors import ConfigError
from exporter.src.models import EntityType, MetricType, SampleType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Runtime settings (environment)
# ---------------------------------------------------------------------------


class ExporterSettings(BaseSettings):
    """Runtime settings for one exporter run.

    All values are loaded from environment variables. Required variables
    must be set; optional variables have sensible defaults.

    Attributes:
        timeout_seconds: Discovery window, and per-device connect and
            response timeout, in seconds.
        bq_enable: Toggle for the BigQuery integration.
        bq_project_id: Google Cloud project holding the dataset.
        bq_dataset: BigQuery dataset name.
        bq_table: BigQuery table name.
        config_path: Path of the YAML sample config.
        measurement_file_path: Path of the mounted last-measurement file.
        measurement_file_config_map_name: ConfigMap the last measurement is
            written to.
        discovery_bind_port: Local UDP port for discovery (0 = ephemeral).
        broadcast_address: Destination address of the discovery broadcast.
        device_port: UDP discovery and TCP control port of the plugs.
        max_pending_replies: Bound of the discovery reply queue.
    """

    timeout_seconds: float = 10
    bq_enable: bool = True
    bq_project_id: str
    bq_dataset: str
    bq_table: str
    config_path: str = "/configs/config.yaml"
    measurement_file_path: str = "/configs/last-measurement.json"
    measurement_file_config_map_name: str = "jarvis-tp-link-hs-110-exporter"
    discovery_bind_port: int = 8755
    broadcast_address: str = "255.255.255.255"
    device_port: int = 9999
    max_pending_replies: int = 64

    @field_validator("timeout_seconds")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        """Validate the timeout is positive and not absurdly long."""
        if v <= 0 or v > 300:
            raise ValueError("TIMEOUT_SECONDS must be > 0 and <= 300")
        return v

    @field_validator("discovery_bind_port")
    @classmethod
    def bind_port_must_be_valid(cls, v: int) -> int:
        """Validate the local UDP port (0 lets the OS pick one)."""
        if v < 0 or v > 65535:
            raise ValueError("DISCOVERY_BIND_PORT must be between 0 and 65535")
        return v

    @field_validator("device_port")
    @classmethod
    def device_port_must_be_valid(cls, v: int) -> int:
        """Validate the plug port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("DEVICE_PORT must be between 1 and 65535")
        return v

    @field_validator("max_pending_replies")
    @classmethod
    def max_pending_must_be_valid(cls, v: int) -> int:
        """Validate the discovery queue bound is between 1 and 4096."""
        if v < 1 or v > 4096:
            raise ValueError("MAX_PENDING_REPLIES must be >= 1 and <= 4096")
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# ---------------------------------------------------------------------------
# Sample config (YAML)
# ---------------------------------------------------------------------------


class ExporterConfig(BaseModel):
    """Labelling applied to every sample the exporter produces.

    Keys are camelCase in YAML (``entityType``, ``valueMultiplier``...).

    Attributes:
        location: Location label stamped on the measurement.
        entity_type: Entity type of every sample.
        entity_name: Entity name of every sample.
        sample_type: Sample type of every sample.
        metric_type: Metric type of the energy total sample.
        value_multiplier: Factor applied to the plug's ``total_wh``.
        include_power_gauge: Also emit a gauge sample with the current power
            in watts per plug.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    location: str
    entity_type: EntityType = EntityType.DEVICE
    entity_name: str
    sample_type: SampleType = SampleType.ELECTRICITY_CONSUMPTION
    metric_type: MetricType = MetricType.COUNTER
    value_multiplier: float = 1.0
    include_power_gauge: bool = False


def load_config(path: str | Path) -> ExporterConfig:
    """Read and validate the YAML sample config.

    Args:
        path: Path of the YAML file.

    Returns:
        The validated :class:`ExporterConfig`.

    Raises:
        ConfigError: If the file cannot be read, is not valid YAML, or does
            not match the expected schema.
    """
    path = Path(path)
    logger.info("Loading config from %s", path)

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"failed reading config from {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"config in {path} must be a mapping, got {type(raw).__name__}")

    try:
        config = ExporterConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid config in {path}: {exc}") from exc

    logger.info("Loaded config from %s: %s", path, config.model_dump(mode="json"))
    return config
