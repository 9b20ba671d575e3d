"""
Tests for UDP broadcast discovery.

Runs discovery against fake plugs bound to 127.0.0.1: each fake answers the
ciphered discovery request with ciphered JSON replies. Verifies parsing,
deduplication, skipping of garbage replies, the bounded discovery window,
bind failures, and the reply queue bound.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pytest
from exporter.src.cipher import decrypt, encrypt
from exporter.src.discovery import _DiscoveryProtocol, discover
from exporter.src.errors import TransportError
from exporter.src.models import DeviceInfoRequest

_WINDOW_S = 0.3

# ---------------------------------------------------------------------------
# Helpers: fake plug answering discovery broadcasts
# ---------------------------------------------------------------------------


def _reply(alias: str, total_wh: float = 1000.0) -> bytes:
    """Return the plaintext JSON a plug sends back to a discovery request."""
    return json.dumps(
        {
            "system": {"get_sysinfo": {"alias": alias, "model": "HS110(EU)", "err_code": 0}},
            "emeter": {
                "get_realtime": {"total_wh": total_wh, "power_mw": 12000, "err_code": 0}
            },
        }
    ).encode()


class _FakePlug(asyncio.DatagramProtocol):
    """Answers every datagram with the configured (plaintext) replies, ciphered."""

    def __init__(self, replies: list[bytes]) -> None:
        self.replies = replies
        self.requests: list[bytes] = []
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.requests.append(decrypt(data))
        for reply in self.replies:
            self.transport.sendto(encrypt(reply), addr)  # type: ignore[union-attr]


@asynccontextmanager
async def _fake_plug(replies: list[bytes]) -> AsyncIterator[tuple[_FakePlug, int]]:
    """Run a fake plug on 127.0.0.1 and yield it with its UDP port."""
    loop = asyncio.get_running_loop()
    transport, plug = await loop.create_datagram_endpoint(
        lambda: _FakePlug(replies), local_addr=("127.0.0.1", 0)
    )
    try:
        yield plug, transport.get_extra_info("sockname")[1]
    finally:
        transport.close()


def _unused_udp_port() -> int:
    """Return a UDP port on 127.0.0.1 that nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def _discover_local(port: int, **kwargs: object) -> list:
    return await discover(
        _WINDOW_S,
        bind_host="127.0.0.1",
        bind_port=0,
        broadcast_host="127.0.0.1",
        port=port,
        **kwargs,  # type: ignore[arg-type]
    )


# ===========================================================================
# Replies are collected and parsed
# ===========================================================================


class TestDiscoverReplies:
    @pytest.mark.asyncio
    async def test_returns_replying_device(self) -> None:
        async with _fake_plug([_reply("Washing Machine", 4321)]) as (_plug, port):
            devices = await _discover_local(port)

        assert len(devices) == 1
        device = devices[0]
        assert device.host == "127.0.0.1"
        assert device.port == port
        assert device.info is not None
        assert device.info.alias == "Washing Machine"
        assert device.info.realtime.total_wh == 4321
        assert device.data == _reply("Washing Machine", 4321)

    @pytest.mark.asyncio
    async def test_sends_ciphered_info_request(self) -> None:
        async with _fake_plug([]) as (plug, port):
            await _discover_local(port)

        assert plug.requests == [DeviceInfoRequest().to_bytes()]

    @pytest.mark.asyncio
    async def test_duplicate_replies_are_deduplicated(self) -> None:
        async with _fake_plug([_reply("Fridge"), _reply("Fridge")]) as (_plug, port):
            devices = await _discover_local(port)

        assert [d.info.alias for d in devices] == ["Fridge"]

    @pytest.mark.asyncio
    async def test_first_reply_from_address_wins(self) -> None:
        async with _fake_plug([_reply("First", 1), _reply("Second", 2)]) as (_plug, port):
            devices = await _discover_local(port)

        assert len(devices) == 1
        assert devices[0].info.alias == "First"

    @pytest.mark.asyncio
    async def test_garbage_reply_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        async with _fake_plug([b"\x00\x01garbage", _reply("Dryer")]) as (_plug, port):
            with caplog.at_level(logging.WARNING):
                devices = await _discover_local(port)

        assert [d.info.alias for d in devices] == ["Dryer"]
        assert any("undecodable" in msg for msg in caplog.messages)


# ===========================================================================
# Discovery window
# ===========================================================================


class TestDiscoveryWindow:
    @pytest.mark.asyncio
    async def test_no_replies_returns_empty_within_window(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()

        devices = await _discover_local(_unused_udp_port())

        elapsed = loop.time() - started
        assert devices == []
        assert _WINDOW_S * 0.9 <= elapsed < _WINDOW_S + 1.0

    @pytest.mark.asyncio
    async def test_replies_do_not_extend_window(self) -> None:
        replies = [_reply(f"Plug {i}") for i in range(20)]
        loop = asyncio.get_running_loop()

        async with _fake_plug(replies) as (_plug, port):
            started = loop.time()
            await _discover_local(port)
            elapsed = loop.time() - started

        assert elapsed < _WINDOW_S + 1.0

    @pytest.mark.asyncio
    async def test_late_replies_are_not_collected(self) -> None:
        """A reply sent after the window closed is not part of any result."""
        loop = asyncio.get_running_loop()
        late: list[asyncio.TimerHandle] = []

        class _SlowPlug(_FakePlug):
            def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
                late.append(
                    loop.call_later(
                        _WINDOW_S * 2,
                        lambda: self.transport.sendto(encrypt(_reply("Late")), addr),
                    )
                )

        transport, _ = await loop.create_datagram_endpoint(
            lambda: _SlowPlug([]), local_addr=("127.0.0.1", 0)
        )
        try:
            devices = await _discover_local(transport.get_extra_info("sockname")[1])
        finally:
            for handle in late:
                handle.cancel()
            transport.close()

        assert devices == []


# ===========================================================================
# Failures and bounds
# ===========================================================================


class TestDiscoveryFailures:
    @pytest.mark.asyncio
    async def test_bind_failure_raises_transport_error(self) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as taken:
            taken.bind(("127.0.0.1", 0))
            port = taken.getsockname()[1]

            with pytest.raises(TransportError, match="binding"):
                await discover(
                    _WINDOW_S,
                    bind_host="127.0.0.1",
                    bind_port=port,
                    broadcast_host="127.0.0.1",
                    port=_unused_udp_port(),
                )


class TestReplyQueueBound:
    """The datagram producer never grows the queue past its bound."""

    def test_drops_datagrams_when_queue_full(self) -> None:
        queue: asyncio.Queue = asyncio.Queue(maxsize=2)
        protocol = _DiscoveryProtocol(queue)

        for i in range(5):
            protocol.datagram_received(bytes([i]), ("10.0.0.1", 9999))

        assert queue.qsize() == 2
        assert protocol.dropped == 3

    def test_keeps_first_datagrams(self) -> None:
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        protocol = _DiscoveryProtocol(queue)

        protocol.datagram_received(b"first", ("10.0.0.1", 9999))
        protocol.datagram_received(b"second", ("10.0.0.2", 9999))

        assert queue.get_nowait() == (b"first", ("10.0.0.1", 9999))

    def test_error_received_is_ignored(self) -> None:
        protocol = _DiscoveryProtocol(asyncio.Queue(maxsize=1))
        protocol.error_received(ConnectionRefusedError())
        assert protocol.dropped == 0
