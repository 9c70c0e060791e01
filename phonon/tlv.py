"""Tag-length-value encoding as used on the card's APDU interface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

__all__ = [
    "MAX_VALUE_BYTES",
    "TLVError",
    "ValueLengthExceedsMaxError",
    "DataNotFoundError",
    "TagNotFoundError",
    "TagEmptyError",
    "TLV",
    "TLVCollection",
    "parse_tlv_packet",
    "encode_tlv_list",
]

MAX_VALUE_BYTES = 256


class TLVError(Exception):
    """Base class for TLV encoding and lookup errors."""


class ValueLengthExceedsMaxError(TLVError):
    def __init__(self, message: str = "value exceeds max allowable length") -> None:
        super().__init__(message)


class DataNotFoundError(TLVError):
    def __init__(
        self, message: str = "data read hit EOF before specified length was reached"
    ) -> None:
        super().__init__(message)


class TagNotFoundError(TLVError):
    def __init__(self, message: str = "tag not found in TLV collection") -> None:
        super().__init__(message)


class TagEmptyError(TLVError):
    def __init__(self, message: str = "tag contained no parsed data") -> None:
        super().__init__(message)


def _hex_spaced(data: bytes) -> str:
    return " ".join(f"{b:02X}" for b in data)


@dataclass(frozen=True)
class TLV:
    """A single tag with its value."""

    tag: int
    value: bytes = b""

    def __post_init__(self) -> None:
        value = bytes(self.value)
        if len(value) > MAX_VALUE_BYTES:
            raise ValueLengthExceedsMaxError()
        object.__setattr__(self, "value", value)

    @property
    def length(self) -> int:
        return len(self.value)

    def encode(self) -> bytes:
        """Serialize as tag byte, length byte, value."""
        return bytes([self.tag, self.length & 0xFF]) + self.value

    def __str__(self) -> str:
        return f"Tag: {self.tag:02X}, Length: {self.length}, Value: {_hex_spaced(self.value)}"


class TLVCollection(dict):
    """Parsed TLV data: tag -> list of values, one per occurrence."""

    def find_tags(self, tag: int) -> list[bytes]:
        """All values recorded for ``tag``."""
        if tag not in self:
            raise TagNotFoundError()
        values = self[tag]
        if not values:
            raise TagEmptyError()
        return values

    def find_tag(self, tag: int) -> bytes:
        """The first value recorded for ``tag``."""
        return self.find_tags(tag)[0]

    def remaining_tlvs(self, tags: Iterable[int]) -> list[TLV]:
        """Remove ``tags`` from the collection and return the first entry of each remaining tag."""
        for tag in tags:
            self.pop(tag, None)
        return [TLV(tag, entries[0]) for tag, entries in self.items() if entries]


def parse_tlv_packet(data: bytes, *constructed_tags: int) -> TLVCollection:
    """Parse TLV encoded bytes into a flattened collection.

    Values of any tag in ``constructed_tags`` are parsed recursively and their
    entries added to the same collection after the containing entry.
    """
    buf = bytes(data)
    result = TLVCollection()
    pos = 0
    while pos < len(buf):
        tag = buf[pos]
        pos += 1
        if pos >= len(buf):
            # A trailing tag without a length byte is ignored.
            break
        length = buf[pos]
        pos += 1
        chunk = buf[pos : pos + length]
        if length and not chunk:
            raise DataNotFoundError()
        pos += len(chunk)
        # A short, non-empty read is zero padded to the declared length.
        value = chunk.ljust(length, b"\x00")
        result.setdefault(tag, []).append(value)
        if tag in constructed_tags:
            nested = parse_tlv_packet(value, *constructed_tags)
            for nested_tag, entries in nested.items():
                result.setdefault(nested_tag, []).extend(entries)
    return result


def encode_tlv_list(*tlvs: TLV) -> bytes:
    """Serialize TLVs one after another, in the given order."""
    return b"".join(t.encode() for t in tlvs)