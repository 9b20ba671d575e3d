"""
Length-prefixed framing for the HS110 TCP protocol.

Over TCP every ciphered payload is preceded by a 4-byte big-endian unsigned
length. The length is that of the plaintext, which equals the ciphertext
length because the cipher is byte-for-byte.

Reads go through :meth:`asyncio.StreamReader.readexactly`, so a frame is
either received whole or the read fails with :class:`FramingError`. A
truncated buffer is never returned to the caller.

Operations:
- frame(payload): header + ciphered payload, ready to write.
- parse_header(header): decode a 4-byte header into a payload length.
- read_header(reader): read and decode the next header from a stream.
- read_payload(reader, length): read exactly *length* payload bytes.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import struct

from exporter.src.cipher import encrypt
from exporter.src.errors import FramingError, ProtocolError

HEADER_LENGTH: int = 4
"""Size of the big-endian length prefix in bytes."""

MAX_PAYLOAD_LENGTH: int = 64 * 1024
"""Largest payload accepted from a plug. Status responses are well under 2 KiB."""

_HEADER = struct.Struct(">I")


def frame(payload: bytes) -> bytes:
    """Cipher *payload* and prepend its big-endian length.

    Args:
        payload: Plaintext command bytes.

    Returns:
        ``HEADER_LENGTH + len(payload)`` bytes ready to be written to a socket.
    """
    return _HEADER.pack(len(payload)) + encrypt(payload)


def parse_header(header: bytes) -> int:
    """Decode a length header.

    Args:
        header: Exactly :data:`HEADER_LENGTH` bytes.

    Returns:
        The advertised payload length.

    Raises:
        FramingError: If *header* is not exactly 4 bytes long.
    """
    if len(header) != HEADER_LENGTH:
        raise FramingError(
            f"frame header must be {HEADER_LENGTH} bytes, got {len(header)}"
        )
    return _HEADER.unpack(header)[0]


async def read_header(reader: asyncio.StreamReader, *, host: str | None = None) -> int:
    """Read the next frame header from *reader* and return the payload length.

    Raises:
        FramingError: If the stream ends before 4 bytes were read.
        ProtocolError: If the advertised length exceeds MAX_PAYLOAD_LENGTH.
    """
    try:
        header = await reader.readexactly(HEADER_LENGTH)
    except asyncio.IncompleteReadError as exc:
        raise FramingError(
            f"connection closed after {len(exc.partial)} of {HEADER_LENGTH} header bytes",
            host=host,
        ) from exc

    length = parse_header(header)
    if length > MAX_PAYLOAD_LENGTH:
        raise ProtocolError(
            f"frame advertises {length} bytes, limit is {MAX_PAYLOAD_LENGTH}",
            host=host,
        )
    return length


async def read_payload(
    reader: asyncio.StreamReader,
    length: int,
    *,
    host: str | None = None,
) -> bytes:
    """Read exactly *length* payload bytes from *reader*.

    The returned bytes are still ciphered; callers decrypt them.

    Raises:
        FramingError: If the stream ends before *length* bytes were read.
    """
    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as exc:
        raise FramingError(
            f"connection closed after {len(exc.partial)} of {length} payload bytes",
            host=host,
        ) from exc
