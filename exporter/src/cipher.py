"""
Autokey XOR cipher used by the HS110 firmware protocol.

Every request and response exchanged with a plug, over UDP and TCP alike, is
obscured with a single-byte autokey stream: the running key starts at
``0xAB`` and each ciphertext byte becomes the key for the next position.
This is obfuscation mandated by the firmware, not encryption.

Both functions are pure. The running key lives only for the duration of one
call, so repeated calls with the same input always produce the same output.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

INITIAL_KEY: int = 0xAB
"""Starting value of the running key for every encrypt/decrypt call."""


def encrypt(data: bytes) -> bytes:
    """Cipher *data* for transmission to a plug.

    Args:
        data: Plaintext bytes, usually a compact JSON command.

    Returns:
        Ciphertext of the same length.
    """
    key = INITIAL_KEY
    out = bytearray(len(data))
    for idx, byte in enumerate(data):
        key ^= byte
        out[idx] = key
    return bytes(out)


def decrypt(data: bytes) -> bytes:
    """Decipher bytes received from a plug.

    Args:
        data: Ciphertext bytes (without any length header).

    Returns:
        Plaintext of the same length.
    """
    key = INITIAL_KEY
    out = bytearray(len(data))
    for idx, byte in enumerate(data):
        out[idx] = byte ^ key
        key = byte
    return bytes(out)
