"""Checks that a phonon's public key holds funds on the bitcoin chain."""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Protocol, runtime_checkable

from Crypto.Hash import RIPEMD160
from cryptography.hazmat.primitives.asymmetric import ec

from .keys import parse_ecc_pubkey
from .model import Phonon

__all__ = [
    "TRANSACTION_REQUEST_LIMIT",
    "PhononCompromisedError",
    "MissingPubKeyError",
    "Validator",
    "Coin",
    "TxInput",
    "TxOutput",
    "Transaction",
    "BcoinClient",
    "BTCValidator",
    "pubkey_to_addresses",
    "aggregate_transactions",
]

_log = logging.getLogger(__name__)

TRANSACTION_REQUEST_LIMIT = 100

_MAINNET_PUBKEY_HASH_ID = 0x00
_MAINNET_SCRIPT_HASH_ID = 0x05
_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


class PhononCompromisedError(Exception):
    """Raised when a phonon's address has been used to spend funds."""

    def __init__(self, message: str = "transaction with phonon as sender detected") -> None:
        super().__init__(message)


class MissingPubKeyError(ValueError):
    """Raised when a phonon to validate carries no public key."""

    def __init__(self, message: str = "phonon missing public key") -> None:
        super().__init__(message)


@runtime_checkable
class Validator(Protocol):
    """Validates that a phonon's public key represents an actual crypto asset."""

    def validate(self, phonon: Phonon) -> bool: ...


@dataclass(frozen=True)
class Coin:
    value: int = 0
    address: str = ""


@dataclass(frozen=True)
class TxInput:
    coin: Coin = field(default_factory=Coin)


@dataclass(frozen=True)
class TxOutput:
    value: int = 0
    address: str = ""


def _int_field(data: Mapping[str, Any], key: str) -> int:
    number = data.get(key)
    if number is None:
        return 0
    if isinstance(number, bool) or not isinstance(number, int):
        raise ValueError(f"{key} must be an integer")
    return number


def _str_field(data: Mapping[str, Any], key: str) -> str:
    text = data.get(key)
    if text is None:
        return ""
    if not isinstance(text, str):
        raise ValueError(f"{key} must be a string")
    return text


@dataclass(frozen=True)
class Transaction:
    """The parts of a bcoin transaction record that matter for balances."""

    hash: str = ""
    inputs: tuple[TxInput, ...] = ()
    outputs: tuple[TxOutput, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Transaction":
        """Build a transaction from a bcoin JSON object."""
        inputs = []
        for item in data.get("inputs") or []:
            coin = item.get("coin") or {}
            inputs.append(
                TxInput(Coin(value=_int_field(coin, "value"), address=_str_field(coin, "address")))
            )
        outputs = [
            TxOutput(value=_int_field(item, "value"), address=_str_field(item, "address"))
            for item in data.get("outputs") or []
        ]
        return cls(hash=_str_field(data, "hash"), inputs=tuple(inputs), outputs=tuple(outputs))


def _hash160(data: bytes) -> bytes:
    return RIPEMD160.new(hashlib.sha256(data).digest()).digest()


def _base58check(version: int, payload: bytes) -> str:
    data = bytes([version]) + payload
    data += hashlib.sha256(hashlib.sha256(data).digest()).digest()[:4]
    number = int.from_bytes(data, "big")
    digits = []
    while number:
        number, remainder = divmod(number, 58)
        digits.append(_BASE58_ALPHABET[remainder])
    leading_zeros = len(data) - len(data.lstrip(b"\x00"))
    return "1" * leading_zeros + "".join(reversed(digits))


def _serializations(key: ec.EllipticCurvePublicKey) -> list[bytes]:
    numbers = key.public_numbers()
    x = numbers.x.to_bytes(32, "big")
    y = numbers.y.to_bytes(32, "big")
    odd = numbers.y & 1
    return [
        bytes([0x02 | odd]) + x,
        b"\x04" + x + y,
        bytes([0x06 | odd]) + x + y,
    ]


def pubkey_to_addresses(key: ec.EllipticCurvePublicKey) -> list[str]:
    """Mainnet P2PKH and P2SH-wrapped P2WPKH addresses for the compressed,
    uncompressed and hybrid forms of ``key``, in that order, pairwise."""
    addresses = []
    for serialized in _serializations(key):
        key_hash = _hash160(serialized)
        addresses.append(_base58check(_MAINNET_PUBKEY_HASH_ID, key_hash))
        witness_script = b"\x00\x14" + key_hash
        addresses.append(_base58check(_MAINNET_SCRIPT_HASH_ID, _hash160(witness_script)))
    return addresses


def aggregate_transactions(transactions: Iterable[Transaction], addresses: Iterable[str]) -> int:
    """Sum the outputs paid to ``addresses``.

    Raises PhononCompromisedError if any of the addresses appears as a sender.
    """
    wanted = list(addresses)
    total = 0
    for transaction in transactions:
        if any(item.coin.address in wanted for item in transaction.inputs):
            raise PhononCompromisedError()
        for output in transaction.outputs:
            total += output.value * wanted.count(output.address)
    return total


class BcoinClient:
    """Minimal client for a bcoin node's transaction-by-address API."""

    def __init__(
        self,
        url: str,
        auth_token: str = "",
        *,
        timeout: float = 30.0,
        opener: Callable[..., Any] | None = None,
    ) -> None:
        self.url = url
        self.auth_token = auth_token
        self.timeout = timeout
        self._opener = opener or urllib.request.urlopen

    def get_transactions(self, addresses: Iterable[str]) -> list[Transaction]:
        """All transactions touching any of ``addresses``, following pagination."""
        result: list[Transaction] = []
        for address in addresses:
            base = f"{self.url}/tx/address/{address}?limit={TRANSACTION_REQUEST_LIMIT}"
            part = self._get_transaction_list(base)
            result.extend(part)
            while len(part) == TRANSACTION_REQUEST_LIMIT:
                part = self._get_transaction_list(f"{base}&after={result[-1].hash}")
                result.extend(part)
        return result

    def _get_transaction_list(self, url: str) -> list[Transaction]:
        request = urllib.request.Request(url, method="GET")
        if self.auth_token:
            credentials = base64.b64encode(f"x:{self.auth_token}".encode()).decode("ascii")
            request.add_header("Authorization", f"Basic {credentials}")
        try:
            with self._opener(request, timeout=self.timeout) as response:
                body = response.read()
        except OSError:
            _log.debug("Error making request to bcoin")
            raise
        try:
            records = json.loads(body)
        except ValueError:
            _log.debug("Unable to unmarshal Json response from bcoin")
            raise
        if records is None:
            return []
        if not isinstance(records, list):
            raise ValueError("bcoin response is not a list of transactions")
        return [Transaction.from_dict(record) for record in records]


class BTCValidator:
    """Validates bitcoin phonons against the balance seen by a bcoin node."""

    def __init__(self, client: BcoinClient) -> None:
        self.client = client

    def validate(self, phonon: Phonon) -> bool:
        """True if the phonon's addresses hold a non-zero balance."""
        if phonon.pub_key is None:
            raise MissingPubKeyError()
        key = parse_ecc_pubkey(phonon.pub_key.to_bytes())
        addresses = pubkey_to_addresses(key)
        transactions = self.client.get_transactions(addresses)
        balance = aggregate_transactions(transactions, addresses)
        _log.debug("Balance retrieved: %d", balance)
        return balance != 0