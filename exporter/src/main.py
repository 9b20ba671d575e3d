"""
Entrypoint for the HS110 exporter.

Runs a single polling cycle and exits, which suits a Kubernetes CronJob:
load settings from the environment, build the BigQuery and state clients,
run :class:`~exporter.src.exporter.ExporterService` once, and log a summary.

Exit status is 0 after a successful cycle. Any unrecoverable error (invalid
settings or config, failed device query, warehouse or state write failure)
is logged with its traceback and the process exits with status 1. SIGTERM /
SIGINT cancel the running cycle, which also exits with status 1.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from datetime import UTC, datetime

from pydantic import ValidationError

from exporter.src.errors import ExporterError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging for the exporter.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup.

    Args:
        settings: An ExporterSettings instance (or any object with the same attrs).
    """
    logger.info(
        "Exporter starting with config: "
        "timeout_seconds=%s, bq_enable=%s, bq_project_id=%s, "
        "bq_dataset=%s, bq_table=%s, config_path=%s, "
        "measurement_file_path=%s, measurement_file_config_map_name=%s, "
        "discovery_bind_port=%s, broadcast_address=%s, device_port=%s, "
        "max_pending_replies=%s",
        settings.timeout_seconds,  # type: ignore[attr-defined]
        settings.bq_enable,  # type: ignore[attr-defined]
        settings.bq_project_id,  # type: ignore[attr-defined]
        settings.bq_dataset,  # type: ignore[attr-defined]
        settings.bq_table,  # type: ignore[attr-defined]
        settings.config_path,  # type: ignore[attr-defined]
        settings.measurement_file_path,  # type: ignore[attr-defined]
        settings.measurement_file_config_map_name,  # type: ignore[attr-defined]
        settings.discovery_bind_port,  # type: ignore[attr-defined]
        settings.broadcast_address,  # type: ignore[attr-defined]
        settings.device_port,  # type: ignore[attr-defined]
        settings.max_pending_replies,  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Single run (easily testable)
# ---------------------------------------------------------------------------


async def run_once(service: object) -> int:
    """Run one exporter cycle and translate the outcome into an exit status.

    Args:
        service: An ExporterService (or any object with an async ``run()``
            returning a measurement).

    Returns:
        0 on success, 1 on any exporter error or cancellation.
    """
    try:
        measurement = await service.run()  # type: ignore[attr-defined]
    except ExporterError:
        logger.error("Exporter run failed", exc_info=True)
        return 1
    except asyncio.CancelledError:
        logger.warning("Exporter run cancelled before completion")
        return 1

    logger.info("Stored %d samples, exiting...", len(measurement.samples))
    return 0


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> int:
    """Async entrypoint: load settings, build components, run one cycle.

    Sets up SIGTERM/SIGINT handlers that cancel the running cycle.

    Returns:
        Process exit status.
    """
    configure_logging()

    from exporter.src.config import ExporterSettings
    from exporter.src.exporter import ExporterService
    from exporter.src.state import StateClient
    from exporter.src.warehouse import BigQueryClient

    try:
        settings = ExporterSettings()
    except ValidationError:
        logger.error("Invalid exporter settings", exc_info=True)
        return 1
    log_config_summary(settings)

    task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: _handle_signal(task))

    try:
        bigquery_client = BigQueryClient(
            settings.bq_project_id,
            settings.bq_dataset,
            settings.bq_table,
            enable=settings.bq_enable,
        )
    except ExporterError:
        logger.error("Failed creating BigQuery client", exc_info=True)
        return 1

    state_client = StateClient(
        settings.measurement_file_path,
        settings.measurement_file_config_map_name,
    )

    service = ExporterService(
        config_path=settings.config_path,
        bigquery_client=bigquery_client,
        state_client=state_client,
        timeout_s=settings.timeout_seconds,
        bind_port=settings.discovery_bind_port,
        broadcast_host=settings.broadcast_address,
        device_port=settings.device_port,
        max_pending=settings.max_pending_replies,
    )

    return await run_once(service)


def _handle_signal(task: asyncio.Task[int] | None) -> None:
    """Handle SIGTERM/SIGINT by cancelling the running cycle.

    Args:
        task: The task running :func:`async_main`.
    """
    logger.info("Received shutdown signal, cancelling exporter run")
    if task is not None:
        task.cancel()


def main() -> None:
    """Synchronous entrypoint for the exporter."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
