"""Phonon descriptors, denominations and public key types."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Mapping, Union

from cryptography.hazmat.primitives.asymmetric import ec

from .keys import parse_ecc_pubkey, pubkey_to_bytes
from .tlv import TLV

__all__ = [
    "InvalidDenominationError",
    "CurrencyType",
    "CurveType",
    "Denomination",
    "ECCPubKey",
    "NativePubKey",
    "PhononPubKey",
    "Phonon",
    "key_index_from_bytes",
    "key_index_to_bytes",
    "new_phonon_pubkey",
    "pubkey_to_ecdsa",
]

_log = logging.getLogger(__name__)

_UINT8_MAX = 0xFF
_UINT16_MAX = 0xFFFF
_NATIVE_PUBKEY_SIZE = 64
_INTEGER_TEXT = re.compile(r"[+-]?[0-9]+")


class InvalidDenominationError(ValueError):
    """Raised when a value cannot be stored as base * 10**exponent in two bytes."""

    def __init__(
        self, message: str = "value cannot be represented as a phonon denomination"
    ) -> None:
        super().__init__(message)


class CurrencyType(IntEnum):
    """The asset a phonon holds."""

    UNSPECIFIED = 0x0000
    BITCOIN = 0x0001
    ETHEREUM = 0x0002
    NATIVE = 0x0003

    def __str__(self) -> str:
        return self.name.capitalize()


class CurveType(IntEnum):
    """The key type behind a phonon."""

    SECP256K1 = 0
    NATIVE_CURVE = 1
    UNKNOWN = 0xFF

    def __str__(self) -> str:
        return _CURVE_LABELS[self]


_CURVE_LABELS = {
    CurveType.SECP256K1: "Secp256k1",
    CurveType.NATIVE_CURVE: "NativeCurve",
    CurveType.UNKNOWN: "Unknown",
}


def _coerce(enum_cls: type[IntEnum], value: int) -> int:
    """Return the enum member for ``value`` or the plain integer if it has none."""
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _label(enum_cls: type[IntEnum], value: int) -> str:
    try:
        return str(enum_cls(value))
    except ValueError:
        return f"{enum_cls.__name__}({int(value)})"


def key_index_from_bytes(data: bytes) -> int:
    """Decode a big endian two byte key index."""
    raw = bytes(data)
    if len(raw) < 2:
        raise ValueError("key index needs two bytes")
    return int.from_bytes(raw[:2], "big")


def key_index_to_bytes(index: int) -> bytes:
    """Encode a key index as two big endian bytes."""
    if not 0 <= index <= _UINT16_MAX:
        raise ValueError(f"key index {index} out of uint16 range")
    return int(index).to_bytes(2, "big")


@dataclass(frozen=True)
class Denomination:
    """A currency amount stored as ``base * 10 ** exponent``, each one byte."""

    base: int = 0
    exponent: int = 0

    def __post_init__(self) -> None:
        for name, number in (("base", self.base), ("exponent", self.exponent)):
            if not 0 <= number <= _UINT8_MAX:
                raise ValueError(f"denomination {name} {number} out of uint8 range")

    @classmethod
    def from_value(cls, value: int) -> "Denomination":
        """Compress an integer amount; raises InvalidDenominationError if it loses precision."""
        remaining = int(value)
        if remaining < 0:
            raise InvalidDenominationError()
        exponent = 0
        while remaining > _UINT8_MAX:
            quotient, remainder = divmod(remaining, 10)
            if remainder:
                raise InvalidDenominationError()
            remaining = quotient
            exponent += 1
        if exponent > _UINT8_MAX:
            _log.error("remaining denomination exponent = %d", exponent)
            raise InvalidDenominationError("denomination exceeds representable precision")
        return cls(base=remaining, exponent=exponent)

    @classmethod
    def _from_text(cls, text: Any) -> "Denomination":
        if not isinstance(text, str) or not _INTEGER_TEXT.fullmatch(text):
            raise ValueError("denomination string not representable as an integer")
        return cls.from_value(int(text))

    def value(self) -> int:
        """The amount in base units."""
        return self.base * 10**self.exponent

    @classmethod
    def from_json(cls, data: str | bytes) -> "Denomination":
        """Parse a JSON string holding the decimal amount, e.g. ``"1000"``."""
        return cls._from_text(json.loads(data))

    def to_json(self) -> str:
        """The decimal amount as a JSON string."""
        return json.dumps(str(self))

    def __str__(self) -> str:
        return str(self.value())


@dataclass(frozen=True, eq=False)
class ECCPubKey:
    """A secp256k1 phonon public key."""

    key: ec.EllipticCurvePublicKey

    @classmethod
    def decode(cls, data: bytes) -> "ECCPubKey":
        return cls(parse_ecc_pubkey(data))

    def to_bytes(self) -> bytes:
        return pubkey_to_bytes(self.key)

    def __str__(self) -> str:
        return self.to_bytes().hex()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ECCPubKey):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    def __hash__(self) -> int:
        return hash(self.to_bytes())


@dataclass(frozen=True)
class NativePubKey:
    """The 64 byte hash identifying a natively mined phonon."""

    digest: bytes

    @classmethod
    def decode(cls, data: bytes) -> "NativePubKey":
        raw = bytes(data)
        if len(raw) != _NATIVE_PUBKEY_SIZE:
            _log.error(
                "native phonon pubkey data should have been 64 bytes but was %d", len(raw)
            )
            raise ValueError("native phonon pubkey was invalid length != 64")
        return cls(raw)

    def to_bytes(self) -> bytes:
        return self.digest

    def __str__(self) -> str:
        return self.digest.hex()


PhononPubKey = Union[ECCPubKey, NativePubKey]


def new_phonon_pubkey(raw_pub_key: bytes, curve: int) -> PhononPubKey:
    """Parse raw public key data according to the curve type."""
    if curve == CurveType.SECP256K1:
        return ECCPubKey.decode(raw_pub_key)
    if curve == CurveType.NATIVE_CURVE:
        return NativePubKey.decode(raw_pub_key)
    raise ValueError("unknown phonon public key curve type")


def pubkey_to_ecdsa(pub_key: PhononPubKey) -> ec.EllipticCurvePublicKey:
    """The underlying elliptic curve key of an ECC phonon public key."""
    if not isinstance(pub_key, ECCPubKey):
        raise TypeError("cannot convert non-ECC pubkey to ECC")
    return pub_key.key


def _uint(data: Mapping[str, Any], key: str, bits: int) -> int:
    number = data.get(key, 0)
    if isinstance(number, bool) or not isinstance(number, int) or not 0 <= number < 1 << bits:
        raise ValueError(f"{key} must be an unsigned {bits} bit integer")
    return number


@dataclass
class Phonon:
    """A phonon as held on a card, with the descriptors set for it."""

    key_index: int = 0
    pub_key: PhononPubKey | None = None
    curve_type: int = CurveType.SECP256K1
    schema_version: int = 0
    extended_schema_version: int = 0
    denomination: Denomination = field(default_factory=Denomination)
    currency_type: int = CurrencyType.UNSPECIFIED
    chain_id: int = 0
    extended_tlv: list[TLV] = field(default_factory=list)
    address: str = ""
    address_type: int = 0

    def __str__(self) -> str:
        extended = "".join(" " + str(item) for item in self.extended_tlv)
        pub_key = "<nil>" if self.pub_key is None else str(self.pub_key)
        return (
            f"KeyIndex: {self.key_index}\n"
            f"Denomination: {self.denomination}\n"
            f"CurrencyType: {_label(CurrencyType, self.currency_type)}\n"
            f"PubKey: {pub_key}\n"
            f"Address: {self.address}\n"
            f"ChainID: {self.chain_id}\n"
            f"CurveType: {_label(CurveType, self.curve_type)}\n"
            f"SchemaVersion: {self.schema_version}\n"
            f"ExtendedSchemaVersion: {self.extended_schema_version}\n"
            f"ExtendedTLV: {extended}\n"
        )

    def to_dict(self) -> dict[str, Any]:
        """The user facing view of the phonon, keyed as in its JSON form."""
        return {
            "KeyIndex": int(self.key_index),
            "PubKey": "" if self.pub_key is None else str(self.pub_key),
            "Address": self.address,
            "AddressType": int(self.address_type),
            "SchemaVersion": int(self.schema_version),
            "ExtendedSchemaVersion": int(self.extended_schema_version),
            "Denomination": str(self.denomination),
            "CurrencyType": int(self.currency_type),
            "ChainID": int(self.chain_id),
            "CurveType": int(self.curve_type),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Phonon":
        """Build a phonon from its user facing view."""
        curve = _coerce(CurveType, _uint(data, "CurveType", 8))
        pub_key_hex = data.get("PubKey", "")
        if not isinstance(pub_key_hex, str):
            raise ValueError("PubKey must be a hex string")
        pub_key = new_phonon_pubkey(bytes.fromhex(pub_key_hex), curve)
        address = data.get("Address", "")
        if not isinstance(address, str):
            raise ValueError("Address must be a string")
        chain_id = data.get("ChainID", 0)
        if isinstance(chain_id, bool) or not isinstance(chain_id, int):
            raise ValueError("ChainID must be an integer")
        denomination_text = data.get("Denomination")
        denomination = (
            Denomination()
            if denomination_text is None
            else Denomination._from_text(denomination_text)
        )
        return cls(
            key_index=_uint(data, "KeyIndex", 16),
            pub_key=pub_key,
            curve_type=curve,
            schema_version=_uint(data, "SchemaVersion", 8),
            extended_schema_version=_uint(data, "ExtendedSchemaVersion", 8),
            denomination=denomination,
            currency_type=_coerce(CurrencyType, _uint(data, "CurrencyType", 16)),
            chain_id=chain_id,
            address=address,
            address_type=_uint(data, "AddressType", 8),
        )

    def to_json(self) -> str:
        """Compact JSON of :meth:`to_dict`."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, data: str | bytes) -> "Phonon":
        obj = json.loads(data)
        if not isinstance(obj, dict):
            raise ValueError("phonon JSON must be an object")
        return cls.from_dict(obj)