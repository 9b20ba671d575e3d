"""
Pure builder that turns queried plugs into a Measurement.

Takes the devices returned by the fan-out, maps each plug's realtime energy
block into one or two :class:`~exporter.src.models.Sample` records using the
entity / sample / metric types from the YAML config, and wraps them into a
:class:`~exporter.src.models.Measurement`.

- Counter sample: ``total_wh * value_multiplier`` with the configured metric
  type (the multiplier converts Wh into the unit the warehouse expects).
- Optional gauge sample: current power in watts (``power_mw / 1000``), only
  when ``include_power_gauge`` is set.

This is a pure function: no side effects, no I/O, no clock. The measurement
id and timestamp are accepted as parameters so they can be injected.

CHANGELOG:
- 2026-10-18: Add optional power gauge sample per plug
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING

from exporter.src.models import Device, Measurement, MetricType, Sample

if TYPE_CHECKING:
    from exporter.src.config import ExporterConfig

logger = logging.getLogger(__name__)

SOURCE: str = "jarvis-tp-link-hs-110-exporter"
"""Source label stamped on every measurement."""


def build_samples(devices: Sequence[Device], config: ExporterConfig) -> list[Sample]:
    """Map every plug with a working energy meter to its samples.

    Plugs without sysinfo, without an emeter block, or whose emeter reports
    an error are skipped with a warning.
    """
    samples: list[Sample] = []

    for device in devices:
        info = device.info
        alias = info.alias if info is not None else None
        realtime = info.realtime if info is not None else None
        if alias is None or realtime is None:
            logger.warning(
                "Device %s has no sysinfo or energy meter readings, skipping",
                device.host,
            )
            continue

        samples.append(
            Sample(
                entity_type=config.entity_type,
                entity_name=config.entity_name,
                sample_type=config.sample_type,
                sample_name=alias,
                metric_type=config.metric_type,
                value=realtime.total_wh * config.value_multiplier,
            )
        )

        if config.include_power_gauge:
            samples.append(
                Sample(
                    entity_type=config.entity_type,
                    entity_name=config.entity_name,
                    sample_type=config.sample_type,
                    sample_name=alias,
                    metric_type=MetricType.GAUGE,
                    value=realtime.power_mw / 1000.0,
                )
            )

    return samples


def build_measurement(
    devices: Sequence[Device],
    config: ExporterConfig,
    *,
    measurement_id: str,
    measured_at: datetime,
    source: str = SOURCE,
) -> Measurement:
    """Build this run's Measurement from the queried plugs.

    Args:
        devices: Plugs with live status attached by the fan-out.
        config: Location and sample labelling from the YAML config.
        measurement_id: Unique id for the measurement (a uuid4 string).
        measured_at: UTC capture timestamp.
        source: Source label.

    Returns:
        An immutable :class:`Measurement`; samples are not yet sanitized.
    """
    return Measurement(
        id=measurement_id,
        source=source,
        location=config.location,
        samples=build_samples(devices, config),
        measured_at_time=measured_at,
    )
