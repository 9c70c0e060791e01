"""Small byte conversion and prompting helpers."""

from __future__ import annotations

import getpass
import secrets
import struct

__all__ = [
    "random_key",
    "pin_prompt",
    "float32_to_bytes",
    "bytes_to_float32",
    "uint16_to_bytes",
]

_FLOAT32 = struct.Struct(">f")


def random_key(length: int) -> bytes:
    """Return ``length`` cryptographically random bytes."""
    return secrets.token_bytes(length)


def pin_prompt() -> str:
    """Ask the user for a PIN without echoing it."""
    print("Please enter 6 digit pin:")
    try:
        return getpass.getpass("Pin: ")
    except (EOFError, KeyboardInterrupt) as exc:
        print("prompt failed: err: ", exc)
        raise


def float32_to_bytes(f: float) -> bytes:
    """Big endian IEEE 754 single precision encoding; raises OverflowError if out of range."""
    return _FLOAT32.pack(f)


def bytes_to_float32(b: bytes) -> float:
    """Decode the first four bytes as a big endian single precision float."""
    data = bytes(b)
    if len(data) < _FLOAT32.size:
        raise ValueError("unexpected EOF: need 4 bytes to decode float32")
    return _FLOAT32.unpack_from(data)[0]


def uint16_to_bytes(i: int) -> bytes:
    """Big endian two byte encoding of an unsigned 16 bit integer."""
    if not 0 <= i <= 0xFFFF:
        raise ValueError(f"value {i} out of uint16 range")
    return i.to_bytes(2, "big")