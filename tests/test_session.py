from dataclasses import dataclass

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from phonon.interfaces import RemotePairingStatus
from phonon.keys import ECDSASignature, card_id_from_pubkey, ecc_privkey_to_hex, pubkey_to_bytes
from phonon.model import CurrencyType, Denomination, ECCPubKey, Phonon, key_index_to_bytes
from phonon.session import (
    AlreadyInitializedError,
    CardNotPairedToCardError,
    CertificateNotCachedError,
    DepositConfirmation,
    NameCannotBeEmptyError,
    PinNotEnteredError,
    RedeemFailedError,
    Session,
)
from phonon.session_requests import (
    RequestCertificate,
    RequestGetName,
    RequestIdentifyCard,
    RequestSetRemote,
    SessionRequest,
)
from phonon.terminal import new_phonon_terminal

PIN = "111111"


@dataclass
class FakeCert:
    pub_key: bytes


class FakeCard:
    def __init__(self, initialized=True, identify_fails=False):
        self.identity = ec.generate_private_key(ec.SECP256K1())
        self.initialized = initialized
        self.identify_fails = identify_fails
        self.pin = PIN if initialized else None
        self.keys = {}
        self.next_index = 0
        self.list_calls = 0
        self.name_calls = 0
        self.friendly_name = ""
        self.received = []
        self.last_sent = b""
        self.descriptors = []
        self.finalized = []
        self.invoices = []
        self.channel_open = False

    def select(self):
        return b"uid", None, self.initialized

    def pair(self):
        if not self.initialized:
            raise RuntimeError("card not initialized")
        return FakeCert(pubkey_to_bytes(self.identity.public_key()))

    def open_secure_channel(self):
        self.channel_open = True

    def init(self, pin):
        self.pin = pin
        self.initialized = True

    def identify_card(self, nonce):
        if self.identify_fails:
            raise RuntimeError("identify failed")
        return self.identity.public_key(), ECDSASignature(1, 2)

    def verify_pin(self, pin):
        if pin != self.pin:
            raise ValueError("wrong pin")

    def change_pin(self, pin):
        self.pin = pin

    def create_phonon(self, curve):
        priv = ec.generate_private_key(ec.SECP256K1())
        index = self.next_index
        self.next_index += 1
        self.keys[index] = priv
        return index, ECCPubKey(priv.public_key())

    def set_descriptor(self, phonon):
        self.descriptors.append(phonon)

    def list_phonons(self, currency_type, less_than, greater_than, continuation):
        self.list_calls += 1
        return [Phonon(key_index=i, currency_type=CurrencyType.ETHEREUM) for i in sorted(self.keys)]

    def get_phonon_pubkey(self, key_index, curve):
        return ECCPubKey(self.keys[key_index].public_key())

    def destroy_phonon(self, key_index):
        return self.keys.pop(key_index)

    def send_phonons(self, key_indices, extended):
        self.last_sent = b"".join(key_index_to_bytes(i) for i in key_indices)
        for index in key_indices:
            self.keys.pop(index)
        return self.last_sent

    def receive_phonons(self, data):
        self.received.append(data)

    def init_card_pairing(self, cert):
        return b"init-pairing"

    def card_pair(self, data):
        return b"card-pair-1"

    def card_pair2(self, data):
        return b"card-pair-2"

    def finalize_card_pair(self, data):
        self.finalized.append(data)

    def generate_invoice(self):
        return b"invoice"

    def receive_invoice(self, data):
        self.invoices.append(data)

    def set_friendly_name(self, name):
        self.friendly_name = name

    def get_friendly_name(self):
        self.name_calls += 1
        return self.friendly_name


class FakeChain:
    def __init__(self, fail_redeem=False, redeemable=True):
        self.fail_redeem = fail_redeem
        self.redeemable = redeemable

    def derive_address(self, phonon):
        return f"addr-{phonon.key_index}"

    def check_redeemable(self, phonon, redeem_address):
        if not self.redeemable:
            raise ValueError("not redeemable")

    def redeem_phonon(self, phonon, priv_key, redeem_address):
        if self.fail_redeem:
            raise RuntimeError("chain unavailable")
        return f"tx:{redeem_address}"


@pytest.fixture
def card():
    return FakeCard()


@pytest.fixture
def session(card):
    s = Session(card, FakeChain())
    s.verify_pin(PIN)
    yield s
    s.close()


def test_uninitialized_card_requires_init():
    card = FakeCard(initialized=False)
    s = Session(card)
    assert not s.is_initialized()
    with pytest.raises(PinNotEnteredError):
        s.create_phonon()
    s.init(PIN)
    assert s.is_initialized() and s.is_unlocked() and s.is_paired_to_terminal()
    assert card.channel_open
    with pytest.raises(AlreadyInitializedError):
        s.init(PIN)


def test_card_id_comes_from_identity_key(session, card):
    assert session.get_card_id() == card_id_from_pubkey(card.identity.public_key())
    assert len(session.get_card_id()) == 16


def test_card_id_unknown_when_identify_fails():
    s = Session(FakeCard(initialized=False, identify_fails=True))
    assert s.get_card_id() == "unknown"


def test_wrong_pin_leaves_card_locked(card):
    s = Session(card)
    with pytest.raises(ValueError):
        s.verify_pin("000000")
    assert not s.is_unlocked()
    with pytest.raises(PinNotEnteredError):
        s.change_pin("222222")
    s.close()


def test_certificate_cached_after_connect(session, card):
    cert = session.get_certificate()
    assert cert.pub_key == pubkey_to_bytes(card.identity.public_key())
    uninitialized = Session(FakeCard(initialized=False))
    with pytest.raises(CertificateNotCachedError):
        uninitialized.get_certificate()


def test_list_phonons_populates_cache(session, card):
    index, pub_key = session.create_phonon()
    listed = session.list_phonons(0, 0, 0)
    assert [p.key_index for p in listed] == [index]
    assert listed[0].pub_key == pub_key
    again = session.list_phonons(0, 0, 0)
    assert card.list_calls == 1
    assert [p.key_index for p in again] == [index]


def test_destroy_removes_from_cache(session, card):
    first, _ = session.create_phonon()
    second, _ = session.create_phonon()
    session.list_phonons(0, 0, 0)
    priv = card.keys[first]
    assert session.destroy_phonon(first) is priv
    assert [p.key_index for p in session.list_phonons(0, 0, 0)] == [second]


def test_receive_phonons_invalidates_cache(session, card):
    index, _ = session.create_phonon()
    assert [p.key_index for p in session.list_phonons(0, 0, 0)] == [index]
    session.receive_phonons(b"packet")
    card.keys[99] = ec.generate_private_key(ec.SECP256K1())
    listed = session.list_phonons(0, 0, 0)
    assert sorted(p.key_index for p in listed) == [index, 99]
    assert card.list_calls == 2
    assert card.received == [b"packet"]


def test_get_phonon_pubkey_fills_cache(session, card):
    index, pub_key = session.create_phonon()
    assert session.get_phonon_pubkey(index, 0) == pub_key


def test_set_name(session, card):
    with pytest.raises(NameCannotBeEmptyError):
        session.set_name("")
    session.set_name("wallet")
    assert card.friendly_name == "wallet"
    assert session.get_name() == "wallet"
    assert card.name_calls == 0


def test_send_without_counterparty_raises(session):
    assert session.remote_connection_status() == RemotePairingStatus.UNCONNECTED
    with pytest.raises(CardNotPairedToCardError):
        session.send_phonons([0])


def test_local_pairing_and_send():
    terminal = new_phonon_terminal()
    card1, card2 = FakeCard(), FakeCard()
    s1, s2 = Session(card1), Session(card2)
    s1.verify_pin(PIN)
    s2.verify_pin(PIN)
    terminal.add_session(s1)
    terminal.add_session(s2)
    try:
        s1.connect_to_local_provider()
        s2.connect_to_local_provider()
        s1.connect_to_counterparty(s2.get_card_id())
        assert s1.remote_connection_status() == RemotePairingStatus.PAIRED
        assert card2.finalized == [b"card-pair-2"]
        index, _ = s1.create_phonon()
        s1.send_phonons([index])
        assert card2.received == [card1.last_sent]
        assert index not in card1.keys
    finally:
        terminal.remove_session(s1.get_card_id())
        terminal.remove_session(s2.get_card_id())
        s1.close()
        s2.close()


def test_submitted_requests_are_answered(session, card):
    name = session.submit(RequestGetName()).wait(5)
    assert name == session.get_card_id()
    cert = session.submit(RequestCertificate()).wait(5)
    assert cert is session.cert
    pub_key, sig = session.submit(RequestIdentifyCard(nonce=b"n")).wait(5)
    assert pubkey_to_bytes(pub_key) == pubkey_to_bytes(card.identity.public_key())
    assert sig == ECDSASignature(1, 2)
    marker = object()
    session.submit(RequestSetRemote(card=marker)).wait(5)
    assert session.remote_card is marker


def test_unrecognized_request_fails(session):
    request = session.submit(SessionRequest())
    with pytest.raises(ValueError):
        request.wait(5)


def test_submit_after_close_raises(card):
    s = Session(card)
    s.close()
    with pytest.raises(RuntimeError):
        s.submit(RequestGetName())


def test_init_deposit_phonons(session):
    denominations = [Denomination.from_value(1000), Denomination.from_value(5)]
    phonons = session.init_deposit_phonons(CurrencyType.ETHEREUM, denominations)
    assert [p.denomination for p in phonons] == denominations
    assert all(p.currency_type == CurrencyType.ETHEREUM for p in phonons)
    assert [p.address for p in phonons] == [f"addr-{p.key_index}" for p in phonons]


def test_finalize_deposit_phonons(session, card):
    first, _ = session.create_phonon()
    second, _ = session.create_phonon()
    p0, p1 = Phonon(key_index=first), Phonon(key_index=second)
    result = session.finalize_deposit_phonons(
        [DepositConfirmation(p0, confirmed_on_chain=True), DepositConfirmation(p1)]
    )
    assert card.descriptors == [p0]
    assert second not in card.keys
    assert [c.confirmed_on_card for c in result] == [True, True]


def test_redeem_phonon(session, card):
    index, pub_key = session.create_phonon()
    priv = card.keys[index]
    tx, key_hex = session.redeem_phonon(Phonon(key_index=index, pub_key=pub_key), "dest")
    assert tx == "tx:dest"
    assert key_hex == ecc_privkey_to_hex(priv)


def test_redeem_failure_keeps_private_key(card):
    s = Session(card, FakeChain(fail_redeem=True))
    s.verify_pin(PIN)
    index, _ = s.create_phonon()
    priv = card.keys[index]
    with pytest.raises(RedeemFailedError) as info:
        s.redeem_phonon(Phonon(key_index=index), "dest")
    assert info.value.private_key_hex == ecc_privkey_to_hex(priv)
    s.close()


def test_unredeemable_phonon_is_kept(card):
    s = Session(card, FakeChain(redeemable=False))
    s.verify_pin(PIN)
    index, _ = s.create_phonon()
    with pytest.raises(ValueError):
        s.redeem_phonon(Phonon(key_index=index), "dest")
    assert index in card.keys
    s.close()