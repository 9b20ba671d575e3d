"""
Tests for building measurements from queried plugs.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import pytest
from exporter.src.config import ExporterConfig
from exporter.src.measurement import SOURCE, build_measurement, build_samples
from exporter.src.models import (
    Device,
    DeviceInfoResponse,
    EntityType,
    MetricType,
    SampleType,
)

_MEASURED_AT = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


def _config(**overrides: Any) -> ExporterConfig:
    values: dict[str, Any] = {"location": "Home", "entity_name": "tp-link-hs110"}
    values.update(overrides)
    return ExporterConfig(**values)


def _plug(host: str, alias: str | None, realtime: dict[str, Any] | None) -> Device:
    raw: dict[str, Any] = {}
    if alias is not None:
        raw["system"] = {"get_sysinfo": {"alias": alias}}
    if realtime is not None:
        raw["emeter"] = {"get_realtime": realtime}
    return Device(host=host, port=9999, info=DeviceInfoResponse.model_validate(raw))


class TestBuildSamples:
    def test_one_counter_sample_per_plug(self) -> None:
        devices = [
            _plug("10.0.0.1", "Fridge", {"total_wh": 1000, "power_mw": 80000}),
            _plug("10.0.0.2", "Washer", {"total_wh": 250, "power_mw": 0}),
        ]

        samples = build_samples(devices, _config())

        assert [s.sample_name for s in samples] == ["Fridge", "Washer"]
        assert [s.value for s in samples] == [1000.0, 250.0]
        for sample in samples:
            assert sample.entity_type == EntityType.DEVICE
            assert sample.entity_name == "tp-link-hs110"
            assert sample.sample_type == SampleType.ELECTRICITY_CONSUMPTION
            assert sample.metric_type == MetricType.COUNTER

    def test_value_multiplier_is_applied(self) -> None:
        devices = [_plug("10.0.0.1", "Fridge", {"total_wh": 1500})]

        samples = build_samples(devices, _config(value_multiplier=3600))

        assert samples[0].value == pytest.approx(1500 * 3600)

    def test_configured_labels_are_used(self) -> None:
        config = _config(
            entity_type=EntityType.ZONE,
            entity_name="kitchen",
            sample_type=SampleType.ELECTRICITY_PRODUCTION,
            metric_type=MetricType.GAUGE,
        )
        samples = build_samples([_plug("10.0.0.1", "Solar", {"total_wh": 1})], config)

        assert samples[0].key == (
            EntityType.ZONE,
            "kitchen",
            SampleType.ELECTRICITY_PRODUCTION,
            "Solar",
            MetricType.GAUGE,
        )

    def test_power_gauge_when_enabled(self) -> None:
        devices = [_plug("10.0.0.1", "Fridge", {"total_wh": 1000, "power_mw": 81500})]

        samples = build_samples(devices, _config(include_power_gauge=True))

        assert [(s.metric_type, s.value) for s in samples] == [
            (MetricType.COUNTER, 1000.0),
            (MetricType.GAUGE, pytest.approx(81.5)),
        ]

    def test_legacy_firmware_totals_in_kwh(self) -> None:
        devices = [_plug("10.0.0.1", "Old plug", {"total": 1.25, "power": 12.0})]

        samples = build_samples(devices, _config())

        assert samples[0].value == pytest.approx(1250.0)

    def test_skips_plug_without_meter(self, caplog: pytest.LogCaptureFixture) -> None:
        devices = [
            _plug("10.0.0.1", "Lamp", {"err_code": -1}),
            _plug("10.0.0.2", "Fridge", {"total_wh": 10}),
            _plug("10.0.0.3", "No emeter", None),
        ]

        with caplog.at_level(logging.WARNING, logger="exporter.src.measurement"):
            samples = build_samples(devices, _config())

        assert [s.sample_name for s in samples] == ["Fridge"]
        assert "10.0.0.1" in caplog.text
        assert "10.0.0.3" in caplog.text

    def test_skips_plug_without_info(self) -> None:
        devices = [
            Device(host="10.0.0.1", port=9999),
            _plug("10.0.0.2", None, {"total_wh": 10}),
        ]

        assert build_samples(devices, _config()) == []


class TestBuildMeasurement:
    def test_wraps_samples_with_metadata(self) -> None:
        devices = [_plug("10.0.0.1", "Fridge", {"total_wh": 1000})]

        measurement = build_measurement(
            devices,
            _config(location="Cabin"),
            measurement_id="5d1c3c4e-0000-4000-8000-000000000001",
            measured_at=_MEASURED_AT,
        )

        assert measurement.id == "5d1c3c4e-0000-4000-8000-000000000001"
        assert measurement.source == SOURCE
        assert measurement.location == "Cabin"
        assert measurement.measured_at_time == _MEASURED_AT
        assert len(measurement.samples) == 1

    def test_no_devices_gives_empty_measurement(self) -> None:
        measurement = build_measurement(
            [], _config(), measurement_id="id-1", measured_at=_MEASURED_AT
        )

        assert measurement.samples == []

    def test_custom_source(self) -> None:
        measurement = build_measurement(
            [],
            _config(),
            measurement_id="id-1",
            measured_at=_MEASURED_AT,
            source="test-source",
        )

        assert measurement.source == "test-source"
