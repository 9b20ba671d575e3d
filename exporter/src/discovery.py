"""
UDP broadcast discovery of HS110 plugs.

Broadcasts one ciphered :class:`~exporter.src.models.DeviceInfoRequest` to
the plugs' well-known port and collects every reply that arrives within the
discovery window. Each reply already carries the plug's sysinfo and realtime
energy blocks, so the result is a list of fully parsed
:class:`~exporter.src.models.Device` records.

Design:

- The datagram protocol is the only producer. It pushes raw datagrams onto a
  bounded :class:`asyncio.Queue` and drops (and counts) datagrams once the
  queue is full, so a flood of replies cannot grow memory or tasks.
- A single consumer decrypts and parses queued datagrams. It waits on the
  queue under an :func:`asyncio.timeout` deadline that starts when the
  broadcast is sent; there is no busy polling.
- When the deadline passes the socket is closed. Late replies are lost, not
  carried into the next run.
- Replies are deduplicated by source IP (first reply wins) so every plug is
  queried once per run.
- Undecodable replies are logged and skipped. Bind failures raise
  :class:`~exporter.src.errors.TransportError`.

CHANGELOG:
- 2026-10-18: Deduplicate replies by source address
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from pydantic import ValidationError

from exporter.src.cipher import decrypt, encrypt
from exporter.src.errors import TransportError
from exporter.src.models import Device, DeviceInfoRequest, DeviceInfoResponse

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DISCOVERY_PORT: int = 9999
"""UDP port the plugs listen on for discovery requests."""

DISCOVERY_BIND_PORT: int = 8755
"""Local UDP port the broadcast is sent from and replies are received on."""

BROADCAST_ADDRESS: str = "255.255.255.255"
"""Limited broadcast address; reaches every plug on the local segment."""

DEFAULT_MAX_PENDING: int = 64
"""Maximum number of undecoded replies buffered between producer and consumer."""

_Datagram = tuple[bytes, tuple[str, int]]


# ---------------------------------------------------------------------------
# Datagram producer
# ---------------------------------------------------------------------------


class _DiscoveryProtocol(asyncio.DatagramProtocol):
    """Feeds received datagrams into a bounded queue."""

    def __init__(self, queue: asyncio.Queue[_Datagram]) -> None:
        self._queue = queue
        self.dropped: int = 0

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        try:
            self._queue.put_nowait((data, (addr[0], addr[1])))
        except asyncio.QueueFull:
            self.dropped += 1

    def error_received(self, exc: Exception) -> None:
        # ICMP errors (e.g. port unreachable) for the broadcast; nothing to do
        logger.debug("Discovery socket reported error: %s", exc)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def discover(
    timeout_s: float,
    *,
    bind_host: str = "0.0.0.0",
    bind_port: int = DISCOVERY_BIND_PORT,
    broadcast_host: str = BROADCAST_ADDRESS,
    port: int = DISCOVERY_PORT,
    max_pending: int = DEFAULT_MAX_PENDING,
) -> list[Device]:
    """Broadcast a discovery request and collect replies for *timeout_s* seconds.

    Args:
        timeout_s: Length of the discovery window in seconds.
        bind_host: Local address to bind the UDP socket to.
        bind_port: Local UDP port (0 picks an ephemeral port).
        broadcast_host: Destination of the request, normally the limited
            broadcast address.
        port: Destination UDP port on the plugs.
        max_pending: Bound of the reply queue; excess datagrams are dropped.

    Returns:
        One :class:`Device` per distinct replying IP, in arrival order. An
        empty list when nothing replied.

    Raises:
        TransportError: If the UDP socket cannot be bound.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[_Datagram] = asyncio.Queue(maxsize=max_pending)

    try:
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: _DiscoveryProtocol(queue),
            local_addr=(bind_host, bind_port),
            allow_broadcast=True,
        )
    except OSError as exc:
        raise TransportError(
            f"failed binding discovery socket to {bind_host}:{bind_port}: {exc}"
        ) from exc

    try:
        request = encrypt(DeviceInfoRequest().to_bytes())
        transport.sendto(request, (broadcast_host, port))
        logger.debug(
            "Sent discovery request to %s:%d, waiting %.1fs for replies",
            broadcast_host,
            port,
            timeout_s,
        )
        devices = await _collect_replies(queue, timeout_s)
    finally:
        transport.close()

    if protocol.dropped:
        logger.warning(
            "Dropped %d discovery replies (queue bound %d reached)",
            protocol.dropped,
            max_pending,
        )
    logger.info("Discovered %d devices", len(devices))
    return devices


# ---------------------------------------------------------------------------
# Datagram consumer
# ---------------------------------------------------------------------------


async def _collect_replies(
    queue: asyncio.Queue[_Datagram],
    timeout_s: float,
) -> list[Device]:
    """Drain *queue* until the deadline, returning deduplicated devices."""
    devices: dict[str, Device] = {}

    with contextlib.suppress(TimeoutError):
        async with asyncio.timeout(timeout_s):
            while True:
                data, addr = await queue.get()
                device = _parse_reply(data, addr)
                if device is None:
                    continue
                if device.host in devices:
                    logger.debug("Ignoring duplicate discovery reply from %s", device.host)
                    continue
                devices[device.host] = device

    return list(devices.values())


def _parse_reply(data: bytes, addr: tuple[str, int]) -> Device | None:
    """Decrypt and parse one discovery reply, or return None if it is garbage."""
    host, reply_port = addr
    plaintext = decrypt(data)
    try:
        info = DeviceInfoResponse.model_validate_json(plaintext)
    except ValidationError as exc:
        logger.warning(
            "Ignoring undecodable discovery reply from %s:%d (%d bytes): %s",
            host,
            reply_port,
            len(data),
            exc.errors()[0]["msg"],
        )
        return None

    logger.debug("Discovery reply from %s:%d alias=%s", host, reply_port, info.alias)
    return Device(host=host, port=reply_port, data=plaintext, info=info)
