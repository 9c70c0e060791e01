from phonon.interfaces import CounterpartyPhononCard, PhononCard, RemotePairingStatus


class _Counterparty:
    def __init__(self):
        self.pairing_status = RemotePairingStatus.CONNECTED_TO_BRIDGE
        self.received = []

    def get_certificate(self):
        return None

    def card_pair(self, init_pairing_data):
        return init_pairing_data

    def card_pair2(self, card_pair_data):
        return card_pair_data

    def finalize_card_pair(self, card_pair2_data):
        self.pairing_status = RemotePairingStatus.PAIRED

    def receive_phonons(self, phonon_transfer):
        self.received.append(phonon_transfer)

    def generate_invoice(self):
        return b""

    def receive_invoice(self, invoice_data):
        pass

    def verify_paired(self):
        if self.pairing_status != RemotePairingStatus.PAIRED:
            raise RuntimeError("not paired")

    def connect_to_card(self, card_id):
        self.pairing_status = RemotePairingStatus.CONNECTED_TO_CARD


class _UnverifiableCounterparty:
    pairing_status = RemotePairingStatus.UNCONNECTED

    def get_certificate(self):
        return None

    def card_pair(self, init_pairing_data):
        return b""

    def card_pair2(self, card_pair_data):
        return b""

    def finalize_card_pair(self, card_pair2_data):
        pass

    def receive_phonons(self, phonon_transfer):
        pass

    def generate_invoice(self):
        return b""

    def receive_invoice(self, invoice_data):
        pass

    def connect_to_card(self, card_id):
        pass


def test_pairing_status_order_follows_protocol_steps():
    assert RemotePairingStatus(0) is RemotePairingStatus.UNCONNECTED
    assert RemotePairingStatus(1) is RemotePairingStatus.CONNECTED_TO_BRIDGE
    assert RemotePairingStatus(2) is RemotePairingStatus.CONNECTED_TO_CARD
    assert RemotePairingStatus(4) is RemotePairingStatus.CARD_PAIR2_COMPLETE
    assert RemotePairingStatus(5) is RemotePairingStatus.PAIRED
    assert RemotePairingStatus(0) < RemotePairingStatus(5)


def test_pairing_status_from_int():
    assert RemotePairingStatus(3) is RemotePairingStatus.CARD_PAIR1_COMPLETE


def test_counterparty_protocol_satisfied():
    counterparty = _Counterparty()
    assert isinstance(counterparty, CounterpartyPhononCard)
    assert not isinstance(counterparty, PhononCard)
    counterparty.connect_to_card("card")
    assert counterparty.pairing_status is RemotePairingStatus(2)
    counterparty.finalize_card_pair(b"")
    assert counterparty.pairing_status is RemotePairingStatus(5)


def test_counterparty_protocol_requires_verify_paired():
    counterparty = _UnverifiableCounterparty()
    assert not isinstance(counterparty, CounterpartyPhononCard)
    assert RemotePairingStatus(counterparty.pairing_status) is RemotePairingStatus.UNCONNECTED