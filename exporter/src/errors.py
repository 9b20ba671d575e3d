"""
Exception hierarchy for the HS110 exporter.

Device-level failures carry the address of the plug they belong to so that a
failed fan-out can be attributed in the logs. Everything raised on purpose by
the exporter derives from :class:`ExporterError`, which is what the
entrypoint catches before exiting non-zero.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations


class ExporterError(Exception):
    """Base class for all errors raised by the exporter."""


class DeviceError(ExporterError):
    """A failure talking to a single plug.

    Args:
        message: Human-readable description of the failure.
        host: IP address of the plug, when known.
    """

    def __init__(self, message: str, *, host: str | None = None) -> None:
        super().__init__(message)
        self.host = host

    def __str__(self) -> str:
        message = super().__str__()
        if self.host:
            return f"{self.host}: {message}"
        return message


class TransportError(DeviceError):
    """Socket bind, connect, read or write failure (including timeouts)."""


class FramingError(TransportError):
    """The peer closed the stream before a full frame was received."""


class ProtocolError(DeviceError):
    """A payload could not be deciphered or parsed into a status response."""


class ConfigError(ExporterError):
    """The YAML config file is missing or invalid."""


class StateError(ExporterError):
    """The last measurement could not be read from or written to state."""


class WarehouseError(ExporterError):
    """A BigQuery table operation or row insert failed."""
