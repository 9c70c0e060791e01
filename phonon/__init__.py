"""Phonon cards: model, TLV encoding, sessions, local pairing and Bitcoin validation."""

__version__ = "0.1.0"

__all__ = [
    "interfaces",
    "keys",
    "local_counterparty",
    "messages",
    "model",
    "session",
    "session_requests",
    "terminal",
    "tlv",
    "util",
    "validator",
]