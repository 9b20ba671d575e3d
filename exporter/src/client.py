"""
TCP status queries against discovered HS110 plugs.

Operations:
- query_device(device, timeout_s): one framed request/response exchange with a
  single plug, returning a copy of the device with live status attached.
- query_all(devices, timeout_s): concurrent fan-out of query_device over every
  discovered plug, joined at a barrier with an all-or-nothing error policy.

Every query owns its connection and buffers; nothing is shared between the
concurrent tasks. Each query enforces its own timeout on connect and on the
request/response exchange, so the fan-out barrier always completes even when
a plug stops answering mid-exchange.

CHANGELOG:
- 2026-10-18: Cancel in-flight device queries when the fan-out is cancelled
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Sequence

from pydantic import ValidationError

from exporter.src.cipher import decrypt
from exporter.src.errors import ProtocolError, TransportError
from exporter.src.framing import frame, read_header, read_payload
from exporter.src.models import Device, DeviceInfoRequest, DeviceInfoResponse

logger = logging.getLogger(__name__)

DEVICE_PORT: int = 9999
"""TCP control port of the plugs."""


# ---------------------------------------------------------------------------
# Single device query
# ---------------------------------------------------------------------------


async def query_device(
    device: Device,
    timeout_s: float,
    *,
    port: int = DEVICE_PORT,
) -> Device:
    """Query one plug for its sysinfo and realtime energy readings.

    Args:
        device: Discovered plug; only its *host* is used to connect.
        timeout_s: Bound for the TCP connect, and separately for the
            write-request / read-response exchange.
        port: TCP control port on the plug.

    Returns:
        A copy of *device* whose ``info`` and ``data`` hold the live status.

    Raises:
        TransportError: Connect, read or write failure, or a timeout.
        FramingError: The plug closed the connection mid-frame.
        ProtocolError: The response could not be parsed.
    """
    host = device.host

    try:
        async with asyncio.timeout(timeout_s):
            reader, writer = await asyncio.open_connection(host, port)
    except TimeoutError as exc:
        raise TransportError(
            f"connect to port {port} timed out after {timeout_s}s", host=host
        ) from exc
    except OSError as exc:
        raise TransportError(f"connect to port {port} failed: {exc}", host=host) from exc

    try:
        async with asyncio.timeout(timeout_s):
            writer.write(frame(DeviceInfoRequest().to_bytes()))
            await writer.drain()
            length = await read_header(reader, host=host)
            payload = await read_payload(reader, length, host=host)
    except TimeoutError as exc:
        raise TransportError(
            f"no complete response within {timeout_s}s", host=host
        ) from exc
    except OSError as exc:
        raise TransportError(f"request failed: {exc}", host=host) from exc
    finally:
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()

    plaintext = decrypt(payload)
    try:
        info = DeviceInfoResponse.model_validate_json(plaintext)
    except ValidationError as exc:
        raise ProtocolError(
            f"undecodable status response ({len(payload)} bytes): {exc.errors()[0]['msg']}",
            host=host,
        ) from exc

    logger.debug("Queried %s:%d alias=%s", host, port, info.alias)
    return device.model_copy(update={"info": info, "data": plaintext})


# ---------------------------------------------------------------------------
# Concurrent fan-out
# ---------------------------------------------------------------------------


async def query_all(
    devices: Sequence[Device],
    timeout_s: float,
    *,
    port: int = DEVICE_PORT,
) -> list[Device]:
    """Query every plug concurrently and return all results, or raise.

    One task is started per device. The coordinator waits until every task
    has finished, successfully or not, before looking at the outcome. If any
    query failed, the first failure observed (in completion order) is raised
    and no devices are returned; a partial result is never produced.

    Args:
        devices: Plugs to query.
        timeout_s: Per-device timeout, passed to :func:`query_device`.
        port: TCP control port on the plugs.

    Returns:
        Updated devices, in the same order as *devices*.

    Raises:
        Exception: The first exception raised by any device query.
    """
    if not devices:
        return []

    tasks = [
        asyncio.create_task(
            query_device(device, timeout_s, port=port),
            name=f"query-{device.host}",
        )
        for device in devices
    ]

    first_error: Exception | None = None
    failures = 0
    try:
        for completed in asyncio.as_completed(tasks):
            try:
                await completed
            except Exception as exc:
                failures += 1
                if first_error is None:
                    first_error = exc
                logger.warning("Device query failed: %s", exc)
    except BaseException:
        # cancelled from outside: stop the queries still in flight
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    if first_error is not None:
        logger.warning(
            "%d of %d device queries failed, discarding all results",
            failures,
            len(tasks),
        )
        raise first_error

    return [task.result() for task in tasks]
