"""
Pydantic models for HS110 wire messages and normalized measurements.

Two families of models live here:

- **Wire models** describe the JSON spoken by the plug firmware:
  :class:`DeviceInfoRequest` (the combined sysinfo + realtime command) and
  :class:`DeviceInfoResponse` with its nested :class:`SystemInfo` and
  :class:`RealtimeEnergy` blocks. :class:`Device` ties a response to the
  network address it came from.
- **Measurement models** describe what the exporter hands downstream:
  :class:`Sample` and :class:`Measurement`. They serialize with PascalCase
  aliases (``ID``, ``MeasuredAtTime``, ``EntityType``...) so that the state
  ConfigMap and the BigQuery rows share one JSON shape.

CHANGELOG:
- 2026-10-18: Normalize legacy realtime units (W/V/A/kWh) into milli-units
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Downstream contract enums
# ---------------------------------------------------------------------------


class EntityType(StrEnum):
    """Kind of entity a sample belongs to."""

    INVALID = ""
    TARIFF = "ENTITY_TYPE_TARIFF"
    ZONE = "ENTITY_TYPE_ZONE"
    DEVICE = "ENTITY_TYPE_DEVICE"


class SampleType(StrEnum):
    """Physical quantity a sample measures."""

    INVALID = ""
    ELECTRICITY_CONSUMPTION = "SAMPLE_TYPE_ELECTRICITY_CONSUMPTION"
    ELECTRICITY_PRODUCTION = "SAMPLE_TYPE_ELECTRICITY_PRODUCTION"
    GAS_CONSUMPTION = "SAMPLE_TYPE_GAS_CONSUMPTION"
    TEMPERATURE = "SAMPLE_TYPE_TEMPERATURE"
    PRESSURE = "SAMPLE_TYPE_PRESSURE"
    FLOW = "SAMPLE_TYPE_FLOW"
    HUMIDITY = "SAMPLE_TYPE_HUMIDITY"
    TIME = "SAMPLE_TYPE_TIME"


class MetricType(StrEnum):
    """Counters only ever grow; gauges are point-in-time readings."""

    INVALID = ""
    COUNTER = "METRIC_TYPE_COUNTER"
    GAUGE = "METRIC_TYPE_GAUGE"


# ---------------------------------------------------------------------------
# Wire models: request
# ---------------------------------------------------------------------------


class SystemCommand(BaseModel):
    get_sysinfo: dict[str, Any] = Field(default_factory=dict)


class EmeterCommand(BaseModel):
    get_realtime: dict[str, Any] = Field(default_factory=dict)


class DeviceInfoRequest(BaseModel):
    """Combined sysinfo + realtime energy command.

    The same command is broadcast during discovery and sent to each plug over
    TCP. It carries no variable data, so its serialization is identical on
    every call.
    """

    system: SystemCommand = Field(default_factory=SystemCommand)
    emeter: EmeterCommand = Field(default_factory=EmeterCommand)

    def to_bytes(self) -> bytes:
        """Return the compact JSON encoding expected by the firmware.

        Returns:
            ``b'{"system":{"get_sysinfo":{}},"emeter":{"get_realtime":{}}}'``
        """
        return self.model_dump_json().encode("utf-8")


# ---------------------------------------------------------------------------
# Wire models: response
# ---------------------------------------------------------------------------


class SystemInfo(BaseModel):
    """The ``system.get_sysinfo`` block of a plug response.

    Only *alias* is required; it names the sample series downstream. Field
    names follow the firmware keys. Unknown keys are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    alias: str
    dev_name: str = ""
    device_id: str = Field(
        default="", validation_alias=AliasChoices("deviceId", "device_id")
    )
    model: str = ""
    mac: str = ""
    hw_ver: str = ""
    sw_ver: str = ""
    product_type: str = Field(
        default="", validation_alias=AliasChoices("type", "mic_type")
    )
    relay_state: int = 0
    on_time: int = 0
    rssi: int = 0
    err_code: int = 0


class RealtimeEnergy(BaseModel):
    """The ``emeter.get_realtime`` block of a plug response.

    Hardware v2 firmware reports milli-units and watt-hours (``power_mw``,
    ``voltage_mv``, ``current_ma``, ``total_wh``). Hardware v1 firmware
    reports ``power`` (W), ``voltage`` (V), ``current`` (A) and ``total``
    (kWh); those are converted on parse so callers only see the v2 fields.

    A plug without an energy meter answers with a non-zero *err_code* and no
    readings.
    """

    model_config = ConfigDict(extra="ignore")

    err_code: int = 0
    power_mw: float = 0.0
    voltage_mv: float = 0.0
    current_ma: float = 0.0
    total_wh: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy_units(cls, data: Any) -> Any:
        """Convert v1 firmware readings into the v2 milli-unit fields."""
        if not isinstance(data, dict):
            return data
        legacy = {
            "power": ("power_mw", 1000.0),
            "voltage": ("voltage_mv", 1000.0),
            "current": ("current_ma", 1000.0),
            "total": ("total_wh", 1000.0),
        }
        data = dict(data)
        for old_key, (new_key, factor) in legacy.items():
            if old_key in data and new_key not in data:
                data[new_key] = float(data.pop(old_key)) * factor
        return data


class SystemBlock(BaseModel):
    get_sysinfo: SystemInfo


class EmeterBlock(BaseModel):
    get_realtime: RealtimeEnergy


class DeviceInfoResponse(BaseModel):
    """Parsed reply to a :class:`DeviceInfoRequest`.

    Either block may be missing, depending on what the plug supports.
    """

    model_config = ConfigDict(extra="ignore")

    system: SystemBlock | None = None
    emeter: EmeterBlock | None = None

    @property
    def alias(self) -> str | None:
        """Device alias, or ``None`` when the sysinfo block is missing."""
        if self.system is None:
            return None
        return self.system.get_sysinfo.alias

    @property
    def realtime(self) -> RealtimeEnergy | None:
        """Realtime energy block, or ``None`` when the plug has no meter."""
        if self.emeter is None or self.emeter.get_realtime.err_code != 0:
            return None
        return self.emeter.get_realtime


class Device(BaseModel):
    """A plug that answered the discovery broadcast.

    Attributes:
        host: IP address the discovery reply came from.
        port: UDP source port of the discovery reply.
        data: Raw decrypted JSON of the most recent reply from the plug.
        info: Parsed reply, replaced by the live status after a TCP query.
    """

    model_config = ConfigDict(frozen=True)

    host: str
    port: int
    data: bytes = b""
    info: DeviceInfoResponse | None = None


# ---------------------------------------------------------------------------
# Measurement models
# ---------------------------------------------------------------------------

SampleKey = tuple[EntityType, str, SampleType, str, MetricType]


class Sample(BaseModel):
    """A single scalar observation of one logical series."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    entity_type: EntityType = Field(alias="EntityType")
    entity_name: str = Field(alias="EntityName")
    sample_type: SampleType = Field(alias="SampleType")
    sample_name: str = Field(alias="SampleName")
    metric_type: MetricType = Field(alias="MetricType")
    value: float = Field(alias="Value")

    @property
    def key(self) -> SampleKey:
        """Identity of the series this sample belongs to (everything but value)."""
        return (
            self.entity_type,
            self.entity_name,
            self.sample_type,
            self.sample_name,
            self.metric_type,
        )


class Measurement(BaseModel):
    """One run's batch of samples plus identifying metadata."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="ID")
    source: str = Field(alias="Source")
    location: str = Field(alias="Location")
    samples: list[Sample] = Field(default_factory=list, alias="Samples")
    measured_at_time: datetime = Field(alias="MeasuredAtTime")
