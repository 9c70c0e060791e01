# phonon

A Python toolkit for phonon cards: the phonon data model and its JSON
form, the card's tag-length-value encoding, a card session that caches
what it learns about a card, pairing between two cards held by the same
terminal, and a check of a phonon's Bitcoin balance against a bcoin node.

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `phonon.keys`: `parse_ecc_pubkey` reads compressed (`0x02`/`0x03`) or
  uncompressed (`0x04`) secp256k1 public keys and raises
  `InvalidECCPubKeyFormatError` for any other prefix;
  `parse_ecdsa_signature` reads a DER signature into an `ECDSASignature`
  (`r`, `s`); `parse_ecc_privkey`, `pubkey_to_bytes`, `ecc_pubkey_to_hex`,
  `ecc_privkey_to_hex`; `card_id_from_pubkey` gives the first 16 hex
  characters of the uncompressed key.
- `phonon.util`: `random_key`, `float32_to_bytes`, `bytes_to_float32`,
  `uint16_to_bytes` (big endian) and `pin_prompt`, which reads a PIN
  without echoing it.
- `phonon.tlv`: `TLV` (values of at most 256 bytes), `TLVCollection` with
  `find_tag`, `find_tags` and `remaining_tlvs`, `parse_tlv_packet` and
  `encode_tlv_list`. Errors derive from `TLVError`.
- `phonon.messages`: the `MessageName` enum and the `Message` envelope
  (`name`, `payload`).
- `phonon.model`: `Phonon` with `to_dict`/`from_dict` and
  `to_json`/`from_json`; `Denomination` (`base * 10 ** exponent`, each one
  byte) with `from_value`, `value`, `from_json`, `to_json`;
  `CurrencyType`, `CurveType`, `ECCPubKey`, `NativePubKey`,
  `new_phonon_pubkey`, `pubkey_to_ecdsa`, `key_index_from_bytes`,
  `key_index_to_bytes`.
- `phonon.interfaces`: the `PhononCard` and `CounterpartyPhononCard`
  protocols and `RemotePairingStatus`.
- `phonon.session_requests`: `SessionRequest` and its subclasses
  (`RequestCertificate`, `RequestIdentifyCard`, `RequestCardPair1`,
  `RequestFinalizeCardPair`, `RequestSetRemote`, `RequestReceivePhonons`,
  `RequestGetName`, `RequestPairWithRemote`, `RequestSetPaired`). Each is
  answered once with `resolve` or `fail`; `wait` returns the answer or
  raises the error.
- `phonon.session`: `Session` wraps an object that follows `PhononCard`.
  It tracks PIN and pairing state, caches phonons, pairs with a
  counterparty, sends and receives phonons, and answers queued
  `SessionRequest`s (`submit`, `handle_request`) on a worker thread once
  the card is initialized. Use it as a context manager or call `close`.
- `phonon.terminal`: `PhononTerminal`, a list of sessions with at most one
  per card id; `new_phonon_terminal` returns the process-wide terminal.
- `phonon.local_counterparty`: `LocalCounterParty`, which pairs a session
  with another session in the same terminal.
- `phonon.validator`: `pubkey_to_addresses` (mainnet P2PKH and
  P2SH-wrapped P2WPKH addresses for the compressed, uncompressed and hybrid
  key forms), `aggregate_transactions` (raises `PhononCompromisedError` if
  an address was ever a sender), `BcoinClient` and `BTCValidator`.

## Examples

Denominations:

```python
from phonon.model import CurrencyType, Denomination, Phonon

d = Denomination.from_value(1_000_000_000_000_000)
print(d.value())                     # 1000000000000000

p = Phonon(key_index=1, denomination=d, currency_type=CurrencyType.ETHEREUM)
print(p.to_dict()["Denomination"])   # "1000000000000000"
```

A value that is not a base of at most 255 times a power of ten raises
`InvalidDenominationError`:

```python
from phonon.model import Denomination, InvalidDenominationError

try:
    Denomination.from_value(256)
except InvalidDenominationError:
    ...
```

Parsing a TLV packet, recursing into a constructed tag:

```python
from phonon.tlv import parse_tlv_packet

collection = parse_tlv_packet(raw_bytes, 0xA4)
card_uid = collection.find_tag(0x8F)
```

Checking a Bitcoin phonon:

```python
from phonon.validator import BcoinClient, BTCValidator

client = BcoinClient("http://localhost:8332", auth_token="token")
has_funds = BTCValidator(client).validate(phonon)
```

## What this package does not do

- It does not talk to card readers and has no card command set of its
  own: a `Session` needs an object that implements `PhononCard`, and
  `PhononTerminal` only holds sessions that are added to it.
- It has no network client or relay server for pairing with cards on
  other machines; only `LocalCounterParty` is provided. `MessageName` and
  `Message` describe that protocol's messages but nothing here sends them.
- It has no chain service. `Session.init_deposit_phonons` and
  `Session.redeem_phonon` need one passed to `Session` as
  `chain_service`; without it they raise `RuntimeError`.
- It has no command-line program or interactive shell.