"""secp256k1 key and signature helpers used to identify cards and phonons."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

__all__ = [
    "ECDSASignature",
    "InvalidECCPubKeyFormatError",
    "parse_ecdsa_signature",
    "parse_ecc_pubkey",
    "pubkey_to_bytes",
    "ecc_pubkey_to_hex",
    "ecc_privkey_to_hex",
    "parse_ecc_privkey",
    "card_id_from_pubkey",
]

_log = logging.getLogger(__name__)

_CURVE = ec.SECP256K1()
_CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_PRIVATE_KEY_SIZE = 32
_CARD_ID_LENGTH = 16


class InvalidECCPubKeyFormatError(ValueError):
    """Raised when the leading byte of a public key names no known encoding."""

    def __init__(self, message: str = "ECC pubkey format could not be detected") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class ECDSASignature:
    """The (r, s) pair of an ECDSA signature."""

    r: int
    s: int


def parse_ecdsa_signature(raw_sig: bytes) -> ECDSASignature:
    """Parse a DER encoded ECDSA signature."""
    raw = bytes(raw_sig)
    try:
        r, s = decode_dss_signature(raw)
    except ValueError as exc:
        _log.error("could not unmarshal raw signature into ECDSA format: %s", exc)
        _log.error("raw sig: %s", raw.hex())
        raise
    return ECDSASignature(r=r, s=s)


def parse_ecc_pubkey(raw_pub_key: bytes) -> ec.EllipticCurvePublicKey:
    """Parse a compressed (0x02/0x03) or uncompressed (0x04) secp256k1 public key."""
    raw = bytes(raw_pub_key)
    if not raw:
        raise ValueError("pubKey was zero length")
    if raw[0] not in (0x02, 0x03, 0x04):
        _log.debug("could not detect ECC pubkey format from key: %s", raw.hex(" ").upper())
        raise InvalidECCPubKeyFormatError()
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(_CURVE, raw)
    except ValueError as exc:
        kind = "uncompressed" if raw[0] == 0x04 else "compressed"
        _log.error("could not unmarshal %s ecdsa pub key from raw: %s", kind, exc)
        raise


def pubkey_to_bytes(pub_key: ec.EllipticCurvePublicKey | None) -> bytes:
    """Serialize a public key in the 65 byte uncompressed form."""
    if pub_key is None:
        return b""
    return pub_key.public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)


def ecc_pubkey_to_hex(pub_key: ec.EllipticCurvePublicKey | None) -> str:
    """Lower case hex of the uncompressed public key."""
    return pubkey_to_bytes(pub_key).hex()


def ecc_privkey_to_hex(priv_key: ec.EllipticCurvePrivateKey | None) -> str:
    """Lower case hex of the 32 byte private scalar."""
    if priv_key is None:
        return ""
    value = priv_key.private_numbers().private_value
    return value.to_bytes(_PRIVATE_KEY_SIZE, "big").hex()


def parse_ecc_privkey(priv_key: bytes) -> ec.EllipticCurvePrivateKey:
    """Build a secp256k1 private key from its 32 byte big endian scalar."""
    raw = bytes(priv_key)
    if len(raw) != _PRIVATE_KEY_SIZE:
        _log.error("could not parse ecc priv key from raw bytes: wrong length %d", len(raw))
        raise ValueError("invalid length, need 256 bits")
    value = int.from_bytes(raw, "big")
    if value >= _CURVE_ORDER:
        raise ValueError("invalid private key, >=N")
    if value == 0:
        raise ValueError("invalid private key, zero or negative")
    return ec.derive_private_key(value, _CURVE)


def card_id_from_pubkey(pub_key: ec.EllipticCurvePublicKey) -> str:
    """The card identifier: the first 16 hex characters of its uncompressed public key."""
    return ecc_pubkey_to_hex(pub_key)[:_CARD_ID_LENGTH]