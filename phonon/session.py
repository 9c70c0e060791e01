"""A working session with one phonon card, caching what is known about it."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from cryptography.hazmat.primitives.asymmetric import ec

from .interfaces import CounterpartyPhononCard, PhononCard, RemotePairingStatus
from .keys import ECDSASignature, card_id_from_pubkey, ecc_privkey_to_hex, parse_ecc_pubkey
from .local_counterparty import LocalCounterParty, register_local_counterparty
from .model import CurveType, Denomination, Phonon, PhononPubKey
from .session_requests import (
    RequestCardPair1,
    RequestCertificate,
    RequestFinalizeCardPair,
    RequestGetName,
    RequestIdentifyCard,
    RequestPairWithRemote,
    RequestReceivePhonons,
    RequestSetPaired,
    RequestSetRemote,
    SessionRequest,
)
from .util import random_key

__all__ = [
    "PinNotEnteredError",
    "AlreadyInitializedError",
    "CardNotPairedToCardError",
    "NameCannotBeEmptyError",
    "CertificateNotCachedError",
    "RedeemFailedError",
    "DepositConfirmation",
    "Session",
]

_log = logging.getLogger(__name__)

_UNKNOWN_CARD_ID = "unknown"
_STOP = object()


class PinNotEnteredError(PermissionError):
    """Raised when a command needs the card to be unlocked first."""

    def __init__(self, message: str = "valid PIN required") -> None:
        super().__init__(message)


class AlreadyInitializedError(RuntimeError):
    def __init__(self, message: str = "card is already initialized with a pin") -> None:
        super().__init__(message)


class CardNotPairedToCardError(ConnectionError):
    def __init__(self, message: str = "card not paired with any other card") -> None:
        super().__init__(message)


class NameCannotBeEmptyError(ValueError):
    def __init__(self, message: str = "requested name cannot be empty") -> None:
        super().__init__(message)


class CertificateNotCachedError(LookupError):
    def __init__(self, message: str = "certificate not cached by session yet") -> None:
        super().__init__(message)


class RedeemFailedError(RuntimeError):
    """The on-chain redemption failed after the phonon was destroyed.

    ``private_key_hex`` holds the key so that the asset is not lost.
    """

    def __init__(self, message: str, private_key_hex: str) -> None:
        super().__init__(message)
        self.private_key_hex = private_key_hex


class _ChainService(Protocol):
    def derive_address(self, phonon: Phonon) -> str: ...

    def check_redeemable(self, phonon: Phonon, redeem_address: str) -> None: ...

    def redeem_phonon(
        self, phonon: Phonon, priv_key: ec.EllipticCurvePrivateKey, redeem_address: str
    ) -> str: ...


@dataclass
class _CachedPhonon:
    phonon: Phonon
    pubkey_cached: bool = False
    info_cached: bool = False


@dataclass
class DepositConfirmation:
    """The outcome of a deposit for one phonon."""

    phonon: Phonon
    confirmed_on_chain: bool = False
    confirmed_on_card: bool = False


class Session:
    """A local connection to a card, with a client side cache of its state.

    If the card is already initialized a secure channel is opened at once and
    a worker starts serving requests handed in through :meth:`submit`. The
    next step is :meth:`verify_pin` to reach the secure commands.
    """

    def __init__(self, card: PhononCard, chain_service: _ChainService | None = None) -> None:
        self.card = card
        self.remote_card: CounterpartyPhononCard | None = None
        self.cert: Any = None
        self.remote_paired = False
        self._chain = chain_service
        self._identity_pub_key: ec.EllipticCurvePublicKey | None = None
        self._friendly_name = ""
        self._pin_initialized = False
        self._terminal_paired = False
        self._pin_verified = False
        self._lock = threading.RLock()
        self._cache: dict[int, _CachedPhonon] = {}
        # True once every phonon on the card is known to be in the cache.
        self._cache_populated = False
        self._requests: queue.Queue = queue.Queue()
        self._worker: threading.Thread | None = None

        self.get_card_id()
        with self._lock:
            try:
                _, _, self._pin_initialized = self.card.select()
            except Exception as exc:
                _log.error("cannot select card for new session: %s", exc)
                raise
        if not self._pin_initialized:
            return
        try:
            self.connect()
        except Exception as exc:
            _log.error("could not run session connect: %s", exc)
            raise
        self._worker = threading.Thread(
            target=self._serve_requests, name="phonon-session", daemon=True
        )
        self._worker.start()
        _log.debug("initialized new applet session")

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _serve_requests(self) -> None:
        while True:
            request = self._requests.get()
            if request is _STOP:
                return
            self.handle_request(request)

    def close(self) -> None:
        """Stop serving requests."""
        worker = self._worker
        if worker is None:
            return
        self._worker = None
        self._requests.put(_STOP)
        if worker is not threading.current_thread():
            worker.join()

    def submit(self, request: SessionRequest) -> SessionRequest:
        """Queue a request for the session worker; wait on the request for the answer."""
        if self._worker is None:
            raise RuntimeError("session is not accepting requests")
        self._requests.put(request)
        return request

    def set_paired(self, status: bool) -> None:
        """Record the pairing status reported by a remote connection."""
        self.remote_paired = status

    def get_card_id(self) -> str:
        """The card identifier, or "unknown" if the card cannot identify itself."""
        if self._identity_pub_key is None:
            try:
                pub_key, _ = self.identify_card(random_key(32))
            except Exception as exc:
                _log.error("error identifying card via get_card_id(). err: %s", exc)
                return _UNKNOWN_CARD_ID
            self._identity_pub_key = pub_key
        return card_id_from_pubkey(self._identity_pub_key)

    def get_name(self) -> str:
        """The card's friendly name, read from the card once and then cached."""
        if not self._friendly_name:
            self._friendly_name = self.card.get_friendly_name()
        return self._friendly_name

    def set_name(self, name: str) -> None:
        if not self._verified():
            raise PinNotEnteredError()
        if not name:
            raise NameCannotBeEmptyError()
        self.card.set_friendly_name(name)
        self._friendly_name = name

    def get_certificate(self) -> Any:
        if self.cert is None:
            raise CertificateNotCachedError()
        _log.debug("get_certificate returning cert: %s", self.cert)
        return self.cert

    def is_unlocked(self) -> bool:
        return self._pin_verified

    def is_paired_to_terminal(self) -> bool:
        return self._terminal_paired

    def is_initialized(self) -> bool:
        return self._pin_initialized

    def is_paired_to_card(self) -> bool:
        return self.remote_card is not None

    def connect(self) -> None:
        """Pair the terminal with the card and open a secure channel."""
        with self._lock:
            self.cert = self.card.pair()
            try:
                self._identity_pub_key = parse_ecc_pubkey(self.cert.pub_key)
            except (AttributeError, TypeError, ValueError):
                self._identity_pub_key = None
            self.card.open_secure_channel()
            self._terminal_paired = True

    def init(self, pin: str) -> None:
        """Set the card's PIN, open a secure channel and count the PIN as entered."""
        if self._pin_initialized:
            raise AlreadyInitializedError()
        with self._lock:
            self.card.init(pin)
        self._pin_initialized = True
        self.connect()
        self._pin_verified = True

    def verify_pin(self, pin: str) -> None:
        with self._lock:
            self.card.verify_pin(pin)
            self._pin_verified = True

    def change_pin(self, pin: str) -> None:
        with self._lock:
            if not self._pin_verified:
                raise PinNotEnteredError("card locked, cannot change pin")
            self.card.change_pin(pin)

    def _verified(self) -> bool:
        return self._pin_verified and self._terminal_paired

    def _require_verified(self) -> None:
        if not self._verified():
            raise PinNotEnteredError()

    def create_phonon(self) -> tuple[int, PhononPubKey]:
        """Create a secp256k1 phonon; return its key index and public key."""
        self._require_verified()
        with self._lock:
            index, pub_key = self.card.create_phonon(CurveType.SECP256K1)
            self._cache[index] = _CachedPhonon(
                phonon=Phonon(key_index=index, curve_type=CurveType.SECP256K1, pub_key=pub_key),
                pubkey_cached=True,
                info_cached=True,
            )
            return index, pub_key

    def set_descriptor(self, phonon: Phonon) -> None:
        self._require_verified()
        with self._lock:
            self.card.set_descriptor(phonon)
            self._add_info_to_cache(phonon)

    def list_phonons(
        self, currency_type: int = 0, less_than_value: int = 0, greater_than_value: int = 0
    ) -> list[Phonon]:
        """Phonons on the card matching the filter; all of them when every filter is zero."""
        self._require_verified()
        if self._cache_populated:
            return [cached.phonon for cached in self._cache.values()]
        with self._lock:
            phonons = self.card.list_phonons(
                currency_type, less_than_value, greater_than_value, False
            )
            for phonon in phonons:
                self._add_info_to_cache(phonon)
            if currency_type == 0 and less_than_value == 0 and greater_than_value == 0:
                self._cache_populated = True
            return phonons

    def get_phonon_pubkey(self, key_index: int, curve: int) -> PhononPubKey:
        self._require_verified()
        with self._lock:
            pub_key = self.card.get_phonon_pubkey(key_index, curve)
            self._add_pubkey_to_cache(key_index, pub_key)
            return pub_key

    def destroy_phonon(self, key_index: int) -> ec.EllipticCurvePrivateKey:
        """Remove the phonon from the card and return its private key."""
        self._require_verified()
        with self._lock:
            priv_key = self.card.destroy_phonon(key_index)
            self._cache.pop(key_index, None)
            return priv_key

    def identify_card(self, nonce: bytes) -> tuple[ec.EllipticCurvePublicKey, ECDSASignature]:
        with self._lock:
            return self.card.identify_card(nonce)

    def init_card_pairing(self, receiver_cert: Any) -> bytes:
        self._require_verified()
        with self._lock:
            return self.card.init_card_pairing(receiver_cert)

    def card_pair(self, init_pairing_data: bytes) -> bytes:
        self._require_verified()
        with self._lock:
            return self.card.card_pair(init_pairing_data)

    def card_pair2(self, card_pair_data: bytes) -> bytes:
        self._require_verified()
        with self._lock:
            data = self.card.card_pair2(card_pair_data)
        _log.debug("set card session paired")
        return data

    def finalize_card_pair(self, card_pair2_data: bytes) -> None:
        self._require_verified()
        with self._lock:
            self.card.finalize_card_pair(card_pair2_data)

    def _check_counterparty_access(self) -> None:
        if not self._verified() and self.remote_card is not None:
            raise CardNotPairedToCardError()

    def send_phonons(self, key_indices: Iterable[int]) -> None:
        """Send phonons to the paired counterparty card."""
        indices = list(key_indices)
        self._check_counterparty_access()
        remote = self.remote_card
        if remote is None:
            raise CardNotPairedToCardError()
        remote.verify_paired()
        with self._lock:
            packet = self.card.send_phonons(indices, False)
            remote.receive_phonons(packet)
            for index in indices:
                self._cache.pop(index, None)

    def receive_phonons(self, phonon_transfer_packet: bytes) -> None:
        self._check_counterparty_access()
        with self._lock:
            self.card.receive_phonons(phonon_transfer_packet)
            # New phonons arrived, so the cache no longer covers the card.
            self._cache_populated = False

    def generate_invoice(self) -> bytes:
        self._check_counterparty_access()
        with self._lock:
            return self.card.generate_invoice()

    def receive_invoice(self, invoice_data: bytes) -> None:
        self._check_counterparty_access()
        with self._lock:
            self.card.receive_invoice(invoice_data)

    def remote_connection_status(self) -> RemotePairingStatus:
        if self.remote_card is None:
            return RemotePairingStatus.UNCONNECTED
        return self.remote_card.pairing_status

    def connect_to_local_provider(self) -> None:
        """Reach counterparties among the other sessions of this process."""
        counterparty = LocalCounterParty(
            local_session=self, pairing_status=RemotePairingStatus.CONNECTED_TO_BRIDGE
        )
        self.remote_card = counterparty
        register_local_counterparty(self, counterparty)

    def connect_to_counterparty(self, card_id: str) -> None:
        """Connect to the card ``card_id`` through the current provider and pair with it."""
        remote = self.remote_card
        if remote is None:
            raise ConnectionError("no counterparty provider connected")
        remote.connect_to_card(card_id)
        if self.cert is None:
            raise CertificateNotCachedError()
        parse_ecc_pubkey(self.cert.pub_key)
        self.pair_with_remote_card(remote)

    def pair_with_remote_card(self, remote_card: CounterpartyPhononCard) -> None:
        remote_cert = remote_card.get_certificate()
        init_pairing_data = self.init_card_pairing(remote_cert)
        _log.debug("sending card pair request")
        card_pair_data = remote_card.card_pair(init_pairing_data)
        try:
            card_pair2_data = self.card_pair2(card_pair_data)
        except Exception as exc:
            _log.debug("pair_with_remote_card failed at card_pair2. err: %s", exc)
            raise
        remote_card.finalize_card_pair(card_pair2_data)
        self.remote_card = remote_card

    def _require_chain(self) -> _ChainService:
        if self._chain is None:
            raise RuntimeError("no chain service configured for this session")
        return self._chain

    def init_deposit_phonons(
        self, currency_type: int, denominations: Iterable[Denomination]
    ) -> list[Phonon]:
        """Create one phonon per denomination and derive its deposit address."""
        _log.debug("running init_deposit_phonons with data: %s", currency_type)
        self._require_verified()
        chain = self._require_chain()
        phonons = []
        for denomination in denominations:
            try:
                key_index, pub_key = self.create_phonon()
            except Exception as exc:
                _log.error("failed to create phonon for deposit: %s", exc)
                raise
            phonon = Phonon(
                key_index=key_index,
                pub_key=pub_key,
                denomination=denomination,
                currency_type=currency_type,
            )
            try:
                phonon.address = chain.derive_address(phonon)
            except Exception as exc:
                _log.error("failed to derive address for phonon deposit: %s", exc)
                raise
            phonons.append(phonon)
        return phonons

    def finalize_deposit_phonons(
        self, confirmations: list[DepositConfirmation]
    ) -> list[DepositConfirmation]:
        """Finalize every deposit; re-raise the last failure after trying them all."""
        _log.debug("running finalize_deposit_phonons")
        self._require_verified()
        last_error: Exception | None = None
        for confirmation in confirmations:
            try:
                self.finalize_deposit_phonon(confirmation)
            except Exception as exc:
                last_error = exc
                confirmation.confirmed_on_card = False
            else:
                confirmation.confirmed_on_card = True
        if last_error is not None:
            raise last_error
        return confirmations

    def finalize_deposit_phonon(self, confirmation: DepositConfirmation) -> None:
        """Set descriptors for a confirmed deposit, or destroy the unconfirmed phonon."""
        if confirmation.confirmed_on_chain:
            try:
                self.set_descriptor(confirmation.phonon)
            except Exception:
                _log.error(
                    "unable to finalize deposit by setting descriptor for phonon: %s",
                    confirmation.phonon,
                )
                raise
            return
        try:
            self.destroy_phonon(confirmation.phonon.key_index)
        except Exception:
            _log.error(
                "unable to clean up deposit failure by destroying phonon: %s",
                confirmation.phonon,
            )

    def handle_request(self, request: SessionRequest) -> None:
        """Answer one request from a remote connection."""
        try:
            result = self._dispatch(request)
        except Exception as exc:
            request.fail(exc)
        else:
            request.resolve(result)

    def _dispatch(self, request: SessionRequest) -> Any:
        if isinstance(request, RequestCertificate):
            return self.get_certificate()
        if isinstance(request, RequestIdentifyCard):
            return self.identify_card(request.nonce)
        if isinstance(request, RequestCardPair1):
            return self.card_pair(request.payload)
        if isinstance(request, RequestFinalizeCardPair):
            return self.finalize_card_pair(request.payload)
        if isinstance(request, RequestSetRemote):
            self.remote_card = request.card
            return None
        if isinstance(request, RequestReceivePhonons):
            return self.receive_phonons(request.payload)
        if isinstance(request, RequestGetName):
            return self.get_card_id()
        if isinstance(request, RequestPairWithRemote):
            if request.card is None:
                raise ValueError("no counterparty card given to pair with")
            return self.pair_with_remote_card(request.card)
        if isinstance(request, RequestSetPaired):
            return self.set_paired(request.status)
        raise ValueError("unrecognized request sent to session")

    def redeem_phonon(self, phonon: Phonon, redeem_address: str) -> tuple[str, str]:
        """Destroy the phonon and transfer its asset on chain.

        Returns (transaction data, private key hex). If the on-chain transfer
        fails, RedeemFailedError carries the private key instead.
        """
        chain = self._require_chain()
        chain.check_redeemable(phonon, redeem_address)
        priv_key = self.destroy_phonon(phonon.key_index)
        priv_key_hex = ecc_privkey_to_hex(priv_key)
        try:
            transaction_data = chain.redeem_phonon(phonon, priv_key, redeem_address)
        except Exception as exc:
            raise RedeemFailedError(str(exc), priv_key_hex) from exc
        return transaction_data, priv_key_hex

    def _add_pubkey_to_cache(self, key_index: int, pub_key: PhononPubKey) -> None:
        cached = self._cache.get(key_index)
        if cached is None:
            self._cache[key_index] = _CachedPhonon(
                phonon=Phonon(key_index=key_index, pub_key=pub_key), pubkey_cached=True
            )
            return
        cached.phonon.pub_key = pub_key
        cached.pubkey_cached = True

    def _add_info_to_cache(self, phonon: Phonon) -> None:
        cached = self._cache.get(phonon.key_index)
        if cached is None:
            self._cache[phonon.key_index] = _CachedPhonon(phonon=phonon, info_cached=True)
            return
        phonon.pub_key = cached.phonon.pub_key
        self._cache[phonon.key_index] = _CachedPhonon(
            phonon=phonon, pubkey_cached=cached.pubkey_cached, info_cached=True
        )