"""
One exporter run: discover plugs, query them, build and persist a measurement.

:class:`ExporterService` wires the device-communication core to its
collaborators:

1. Load the YAML sample config.
2. Create or update the BigQuery table.
3. Read the last measurement from state.
4. :meth:`ExporterService.get_measurement`: discover plugs, query all of
   them concurrently, build the measurement and sanitize it against the last
   one.
5. Insert the measurement into BigQuery.
6. Store the measurement as the new state.

Error policy:

- Discovery failures (e.g. the UDP port is already taken) are logged and
  degrade to "no plugs found"; an offline segment must not crash the
  exporter.
- Any failure in the fan-out aborts the run, so an incomplete measurement is
  never published.
- A missing or corrupt state file means "no previous measurement"; a state
  file that cannot be read at all aborts the run.

CHANGELOG:
- 2026-10-18: Degrade discovery failures to an empty device list
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from exporter.src.client import DEVICE_PORT, query_all
from exporter.src.config import load_config
from exporter.src.discovery import (
    BROADCAST_ADDRESS,
    DEFAULT_MAX_PENDING,
    DISCOVERY_BIND_PORT,
    discover,
)
from exporter.src.errors import DeviceError
from exporter.src.measurement import build_measurement
from exporter.src.sanitizer import sanitize

if TYPE_CHECKING:
    from exporter.src.config import ExporterConfig
    from exporter.src.models import Device, Measurement
    from exporter.src.state import StateClient
    from exporter.src.warehouse import BigQueryClient

logger = logging.getLogger(__name__)


class ExporterService:
    """Runs a single polling cycle against the local network.

    Args:
        config_path: Path of the YAML sample config.
        bigquery_client: Warehouse sink.
        state_client: Last-measurement state store.
        timeout_s: Discovery window and per-device query timeout.
        bind_host: Local address for the discovery socket.
        bind_port: Local UDP port for the discovery socket.
        broadcast_host: Destination of the discovery broadcast.
        device_port: Discovery and control port of the plugs.
        max_pending: Bound of the discovery reply queue.
    """

    def __init__(
        self,
        *,
        config_path: str | Path,
        bigquery_client: BigQueryClient,
        state_client: StateClient,
        timeout_s: float,
        bind_host: str = "0.0.0.0",
        bind_port: int = DISCOVERY_BIND_PORT,
        broadcast_host: str = BROADCAST_ADDRESS,
        device_port: int = DEVICE_PORT,
        max_pending: int = DEFAULT_MAX_PENDING,
    ) -> None:
        self._config_path = Path(config_path)
        self._bigquery = bigquery_client
        self._state = state_client
        self._timeout_s = timeout_s
        self._bind_host = bind_host
        self._bind_port = bind_port
        self._broadcast_host = broadcast_host
        self._device_port = device_port
        self._max_pending = max_pending

    async def run(self) -> Measurement:
        """Execute the full cycle and return the stored measurement.

        Raises:
            ExporterError: Any unrecoverable failure (config, fan-out,
                warehouse or state write).
        """
        config = load_config(self._config_path)

        await asyncio.to_thread(self._bigquery.init_table)

        last_measurement = self._state.read_state()

        measurement = await self.get_measurement(config, last_measurement)

        await asyncio.to_thread(self._bigquery.insert_measurement, measurement)
        await self._state.store_state(measurement)

        return measurement

    async def get_measurement(
        self,
        config: ExporterConfig,
        last_measurement: Measurement | None = None,
        *,
        measured_at: datetime | None = None,
    ) -> Measurement:
        """Read every plug on the network into a sanitized measurement.

        Args:
            config: Sample labelling.
            last_measurement: Previous run's measurement, if any.
            measured_at: Capture timestamp; defaults to now (UTC).

        Raises:
            DeviceError: If any plug query failed.
        """
        if measured_at is None:
            measured_at = datetime.now(tz=UTC)

        devices = await self._discover()
        devices = await query_all(devices, self._timeout_s, port=self._device_port)

        measurement = build_measurement(
            devices,
            config,
            measurement_id=str(uuid.uuid4()),
            measured_at=measured_at,
        )

        if last_measurement is not None:
            measurement = measurement.model_copy(
                update={"samples": sanitize(measurement.samples, last_measurement.samples)}
            )

        logger.info(
            "Read measurement %s with %d samples from %d devices",
            measurement.id,
            len(measurement.samples),
            len(devices),
        )
        return measurement

    async def _discover(self) -> list[Device]:
        """Discover plugs, degrading discovery failures to an empty result."""
        logger.info("Discovering devices...")
        try:
            return await discover(
                self._timeout_s,
                bind_host=self._bind_host,
                bind_port=self._bind_port,
                broadcast_host=self._broadcast_host,
                port=self._device_port,
                max_pending=self._max_pending,
            )
        except DeviceError:
            logger.warning("Failed discovering devices", exc_info=True)
            return []
