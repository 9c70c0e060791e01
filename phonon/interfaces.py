"""Protocols for local phonon cards and their pairing counterparties."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Callable, Protocol, runtime_checkable

from cryptography.hazmat.primitives.asymmetric import ec

from .keys import ECDSASignature
from .model import Phonon, PhononPubKey

__all__ = ["RemotePairingStatus", "PhononCard", "CounterpartyPhononCard"]


class RemotePairingStatus(IntEnum):
    """How far a session has got in pairing with a counterparty card."""

    UNCONNECTED = 0
    CONNECTED_TO_BRIDGE = 1
    CONNECTED_TO_CARD = 2
    CARD_PAIR1_COMPLETE = 3
    CARD_PAIR2_COMPLETE = 4
    PAIRED = 5


@runtime_checkable
class PhononCard(Protocol):
    """The command set of a phonon card. Methods raise on card errors."""

    def select(self) -> tuple[bytes, ec.EllipticCurvePublicKey | None, bool]:
        """Return (instance UID, secure channel public key, initialized)."""
        ...

    def pair(self) -> Any:
        """Pair the terminal with the card and return the card certificate."""
        ...

    def open_secure_channel(self) -> None: ...

    def open_secure_connection(self) -> None: ...

    def init(self, pin: str) -> None: ...

    def identify_card(
        self, nonce: bytes
    ) -> tuple[ec.EllipticCurvePublicKey, ECDSASignature]: ...

    def verify_pin(self, pin: str) -> None: ...

    def change_pin(self, pin: str) -> None: ...

    def create_phonon(self, curve_type: int) -> tuple[int, PhononPubKey]: ...

    def set_descriptor(self, phonon: Phonon) -> None: ...

    def list_phonons(
        self,
        currency_type: int,
        less_than_value: int,
        greater_than_value: int,
        continuation: bool,
    ) -> list[Phonon]: ...

    def get_phonon_pubkey(self, key_index: int, curve: int) -> PhononPubKey: ...

    def destroy_phonon(self, key_index: int) -> ec.EllipticCurvePrivateKey: ...

    def send_phonons(self, key_indices: list[int], extended_request: bool) -> bytes: ...

    def receive_phonons(self, phonon_transfer: bytes) -> None: ...

    def set_receive_list(self, phonon_pubkeys: list[ec.EllipticCurvePublicKey]) -> None: ...

    def transaction_ack(self, key_indices: list[int]) -> None: ...

    def init_card_pairing(self, receiver_certificate: Any) -> bytes: ...

    def card_pair(self, init_pairing_data: bytes) -> bytes: ...

    def card_pair2(self, card_pair_data: bytes) -> bytes: ...

    def finalize_card_pair(self, card_pair2_data: bytes) -> None: ...

    def install_certificate(self, sign_key_func: Callable[[bytes], bytes]) -> None: ...

    def generate_invoice(self) -> bytes: ...

    def receive_invoice(self, invoice_data: bytes) -> None: ...

    def set_friendly_name(self, name: str) -> None: ...

    def get_friendly_name(self) -> str: ...

    def get_available_memory(self) -> tuple[int, int, int]:
        """Return (persistent, cleared on reset, cleared on deselect) memory."""
        ...

    def mine_native_phonon(self, difficulty: int) -> tuple[int, bytes]: ...


@runtime_checkable
class CounterpartyPhononCard(Protocol):
    """The card on the other side of a pairing, local or remote."""

    pairing_status: RemotePairingStatus

    def get_certificate(self) -> Any: ...

    def card_pair(self, init_pairing_data: bytes) -> bytes: ...

    def card_pair2(self, card_pair_data: bytes) -> bytes: ...

    def finalize_card_pair(self, card_pair2_data: bytes) -> None: ...

    def receive_phonons(self, phonon_transfer: bytes) -> None: ...

    def generate_invoice(self) -> bytes: ...

    def receive_invoice(self, invoice_data: bytes) -> None: ...

    def verify_paired(self) -> None:
        """Raise if the counterparty is not paired with this card."""
        ...

    def connect_to_card(self, card_id: str) -> None: ...