"""A counterparty card reached through another session in this process."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .interfaces import RemotePairingStatus
from .terminal import new_phonon_terminal

__all__ = ["LocalCounterParty", "register_local_counterparty"]

_connected: dict[Any, "LocalCounterParty"] = {}


def register_local_counterparty(session: Any, counterparty: "LocalCounterParty") -> None:
    """Record that ``session`` reaches other local cards through ``counterparty``."""
    _connected[session] = counterparty


@dataclass(eq=False)
class LocalCounterParty:
    """Pairs a local session with another session held by the same terminal."""

    local_session: Any
    counter_session: Any = None
    pairing_status: RemotePairingStatus = RemotePairingStatus.UNCONNECTED

    def _counterparty(self) -> Any:
        if self.counter_session is None:
            raise ConnectionError("not connected to a counterparty card")
        return self.counter_session

    def connect_to_card(self, card_id: str) -> None:
        """Connect this session and the session for ``card_id`` to each other."""
        counterparty = new_phonon_terminal().session_from_id(card_id)
        if counterparty is None:
            raise LookupError("counterparty card not found")
        other = _connected.get(counterparty)
        if other is None:
            raise LookupError("counterparty card not connected to a local provider")
        self.counter_session = counterparty
        other.counter_session = self.local_session

    def get_certificate(self) -> Any:
        return self._counterparty().get_certificate()

    def card_pair(self, init_pairing_data: bytes) -> bytes:
        return self._counterparty().card_pair(init_pairing_data)

    def card_pair2(self, card_pair_data: bytes) -> bytes:
        self.pairing_status = RemotePairingStatus.PAIRED
        return self._counterparty().card_pair2(card_pair_data)

    def finalize_card_pair(self, card_pair2_data: bytes) -> None:
        self.pairing_status = RemotePairingStatus.PAIRED
        self._counterparty().finalize_card_pair(card_pair2_data)

    def receive_phonons(self, phonon_transfer: bytes) -> None:
        self._counterparty().receive_phonons(phonon_transfer)

    def generate_invoice(self) -> bytes:
        return self._counterparty().generate_invoice()

    def receive_invoice(self, invoice_data: bytes) -> None:
        self._counterparty().receive_invoice(invoice_data)

    def verify_paired(self) -> None:
        """Raise ConnectionError unless pairing has completed."""
        if self.pairing_status != RemotePairingStatus.PAIRED:
            raise ConnectionError("not paired to local counterparty")